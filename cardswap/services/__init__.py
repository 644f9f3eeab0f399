"""
CardSwap services.

Business logic for trade proposals, shipping coordination, and the
address book.
"""

from cardswap.services.address_book import (
    add_address,
    get_addresses,
    get_default_address,
    get_owned_address,
    remove_address,
    update_address,
)
from cardswap.services.match_integrity import ensure_resolvable, unresolvable_proposals
from cardswap.services.presentation import (
    Intent,
    ProposalView,
    Step,
    TradePresenter,
    available_actions,
    select_step,
)
from cardswap.services.proposal_engine import TradeProposalEngine, check_field_ownership
from cardswap.services.rate_sessions import RateSession, RateSessionStore, get_rate_sessions
from cardswap.services.rate_shopping import eligible_quotes
from cardswap.services.reconcile import reconcile_invalid_proposals
from cardswap.services.shipping_coordinator import RateReview, ShippingCoordinator

__all__ = [
    "Intent",
    "ProposalView",
    "RateReview",
    "RateSession",
    "RateSessionStore",
    "ShippingCoordinator",
    "Step",
    "TradePresenter",
    "TradeProposalEngine",
    "add_address",
    "available_actions",
    "check_field_ownership",
    "eligible_quotes",
    "ensure_resolvable",
    "get_addresses",
    "get_default_address",
    "get_owned_address",
    "get_rate_sessions",
    "reconcile_invalid_proposals",
    "remove_address",
    "select_step",
    "unresolvable_proposals",
    "update_address",
]
