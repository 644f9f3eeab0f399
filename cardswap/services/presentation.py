"""
Presentation adapter.

Turns one proposal plus the viewer's identity into everything a client
needs to render it: effective status, current step, and the actions it may
offer. Every view is computed from a freshly read proposal; nothing here
keeps state of its own apart from the transient rate sessions.

Clients send one intent at a time; each is dispatched to the engine or the
shipping coordinator and answered with the refreshed view.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.gateway.client import ShippingGateway
from cardswap.models.failure import InvalidInputError
from cardswap.models.proposal import Party, ProposalStatus, ShippingMethod, TradeProposal
from cardswap.models.shipping import RateQuote, SavedAddress
from cardswap.services.proposal_engine import (
    CANCELLABLE_STATUSES,
    DECLINABLE_STATUSES,
    TradeProposalEngine,
)
from cardswap.services.rate_sessions import RateSession, RateSessionStore, get_rate_sessions
from cardswap.services.shipping_coordinator import ShippingCoordinator

logger = logging.getLogger(__name__)


class Step(str, Enum):
    """What the viewer is asked to do next."""

    RESPOND = "respond"
    AWAIT_RESPONSE = "await_response"
    CONFIRM = "confirm"
    SELECT_METHOD = "select_method"
    ENTER_ADDRESS = "enter_address"
    AWAIT_COUNTERPARTY_ADDRESS = "await_counterparty_address"
    SHOP_RATES = "shop_rates"
    REVIEW_RATE = "review_rate"
    ARRANGE_MEETUP = "arrange_meetup"
    AWAIT_COUNTERPARTY_CONFIRMATION = "await_counterparty_confirmation"
    CONFIRM_DELIVERY = "confirm_delivery"
    COMPLETE = "complete"
    CLOSED = "closed"


class Intent(str, Enum):
    """Actions a party can take on an existing proposal."""

    ACCEPT = "accept"
    CONFIRM = "confirm"
    DECLINE = "decline"
    CANCEL = "cancel"
    DELETE = "delete"
    SELECT_SHIPPING_METHOD = "select_shipping_method"
    SELECT_ADDRESS = "select_address"
    SHOP_RATES = "shop_rates"
    SELECT_RATE = "select_rate"
    PURCHASE_LABEL = "purchase_label"
    CONFIRM_MEETUP = "confirm_meetup"
    REQUEST_ADDRESS = "request_address"
    CONFIRM_DELIVERY = "confirm_delivery"


# Actions that belong to each step; lifecycle exits are added separately
STEP_ACTIONS: dict[Step, tuple[Intent, ...]] = {
    Step.RESPOND: (Intent.ACCEPT,),
    Step.AWAIT_RESPONSE: (),
    Step.CONFIRM: (Intent.CONFIRM,),
    Step.SELECT_METHOD: (Intent.SELECT_SHIPPING_METHOD,),
    Step.ENTER_ADDRESS: (Intent.SELECT_ADDRESS,),
    Step.AWAIT_COUNTERPARTY_ADDRESS: (
        Intent.REQUEST_ADDRESS,
        Intent.SELECT_ADDRESS,
        Intent.SHOP_RATES,
    ),
    Step.SHOP_RATES: (Intent.SHOP_RATES, Intent.SELECT_ADDRESS),
    Step.REVIEW_RATE: (Intent.PURCHASE_LABEL, Intent.SELECT_RATE, Intent.SHOP_RATES),
    Step.ARRANGE_MEETUP: (Intent.CONFIRM_MEETUP,),
    Step.AWAIT_COUNTERPARTY_CONFIRMATION: (),
    Step.CONFIRM_DELIVERY: (Intent.CONFIRM_DELIVERY,),
    Step.COMPLETE: (),
    Step.CLOSED: (),
}


def select_step(
    proposal: TradeProposal,
    party: Party,
    own_address: SavedAddress | None = None,
    counterpart_address: SavedAddress | None = None,
    rate_session: RateSession | None = None,
) -> Step:
    """
    Pick the step to show `party`.

    Addresses and the rate session only matter on the mail branch.
    """
    if proposal.status is ProposalStatus.COMPLETED:
        return Step.COMPLETE
    if proposal.is_terminal:
        return Step.CLOSED

    status = proposal.effective_status
    if status is ProposalStatus.PROPOSED:
        return Step.RESPOND if party is Party.RECIPIENT else Step.AWAIT_RESPONSE
    if status is ProposalStatus.ACCEPTED_BY_RECIPIENT:
        return Step.AWAIT_RESPONSE if proposal.acceptance.of(party) else Step.CONFIRM

    if proposal.shipping_method is None:
        return Step.SELECT_METHOD

    if proposal.fulfillment.both:
        return Step.CONFIRM_DELIVERY
    if proposal.fulfillment.of(party):
        return Step.AWAIT_COUNTERPARTY_CONFIRMATION

    if proposal.shipping_method is ShippingMethod.LOCAL_MEETUP:
        return Step.ARRANGE_MEETUP

    if own_address is None:
        return Step.ENTER_ADDRESS
    if counterpart_address is None:
        return Step.AWAIT_COUNTERPARTY_ADDRESS
    if rate_session is not None and rate_session.selected_quote is not None:
        return Step.REVIEW_RATE
    return Step.SHOP_RATES


def available_actions(proposal: TradeProposal, party: Party, step: Step) -> list[Intent]:
    """The intents `party` may send while at `step`."""
    actions = list(STEP_ACTIONS[step])
    if proposal.is_terminal:
        return actions

    status = proposal.effective_status
    if status in DECLINABLE_STATUSES:
        actions.append(Intent.DECLINE)
    if proposal.status is ProposalStatus.PROPOSED and not proposal.acceptance.both:
        actions.append(Intent.DELETE)
    if proposal.status is not ProposalStatus.SHIPPING_CONFIRMED and status in CANCELLABLE_STATUSES:
        actions.append(Intent.CANCEL)
    return actions


@dataclass
class ProposalView:
    """One proposal as one party sees it."""

    proposal: TradeProposal
    party: Party
    current_step: Step
    available_actions: list[Intent]
    quotes: list[RateQuote] = field(default_factory=list)
    selected_quote_id: str | None = None

    @property
    def effective_status(self) -> ProposalStatus:
        return self.proposal.effective_status

    def to_dict(self) -> dict[str, Any]:
        p = self.proposal
        own = self.party.value
        other = self.party.other.value
        return {
            "id": p.id,
            "match_id": p.match_id,
            "proposer_id": p.proposer_id,
            "recipient_id": p.recipient_id,
            "role": own,
            "status": p.status.value,
            "effective_status": self.effective_status.value,
            "current_step": self.current_step.value,
            "available_actions": [a.value for a in self.available_actions],
            "shipping_method": p.shipping_method.value if p.shipping_method else None,
            "my_confirmed": p.acceptance.of(self.party),
            "their_confirmed": p.acceptance.of(self.party.other),
            "my_shipping_confirmed": p.fulfillment.of(self.party),
            "their_shipping_confirmed": p.fulfillment.of(self.party.other),
            "my_tracking_number": getattr(p, f"{own}_tracking_number"),
            "my_carrier": getattr(p, f"{own}_carrier"),
            "my_label_url": getattr(p, f"{own}_label_url"),
            "their_tracking_number": getattr(p, f"{other}_tracking_number"),
            "their_carrier": getattr(p, f"{other}_carrier"),
            "quotes": [q.to_dict() for q in self.quotes],
            "selected_quote_id": self.selected_quote_id,
            "created_at": p.created_at.isoformat() if p.created_at else None,
            "updated_at": p.updated_at.isoformat() if p.updated_at else None,
            "completed_at": p.completed_at.isoformat() if p.completed_at else None,
        }


class TradePresenter:
    """Builds views and dispatches intents for one session."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: ShippingGateway,
        rate_sessions: RateSessionStore | None = None,
    ) -> None:
        self.session = session
        self.rate_sessions = rate_sessions or get_rate_sessions()
        self.engine = TradeProposalEngine(session)
        self.shipping = ShippingCoordinator(session, gateway, self.rate_sessions)

    async def build_view(self, proposal: TradeProposal, party: Party) -> ProposalView:
        own_address = counterpart_address = None
        rate_session = None
        needs_addresses = (
            proposal.shipping_method is ShippingMethod.MAIL
            and not proposal.is_terminal
            and not proposal.fulfillment.of(party)
        )
        if needs_addresses:
            own_address, counterpart_address = await self.shipping.address_readiness(
                proposal, party
            )
            rate_session = self.rate_sessions.get(proposal.id, proposal.user_of(party))

        step = select_step(proposal, party, own_address, counterpart_address, rate_session)
        return ProposalView(
            proposal=proposal,
            party=party,
            current_step=step,
            available_actions=available_actions(proposal, party, step),
            quotes=list(rate_session.quotes) if rate_session else [],
            selected_quote_id=rate_session.selected_quote_id if rate_session else None,
        )

    async def view(self, proposal_id: str, viewer_id: str) -> ProposalView:
        proposal, party = await self.engine.load_for(proposal_id, viewer_id)
        return await self.build_view(proposal, party)

    async def list_views(self, user_id: str) -> list[ProposalView]:
        """Views of every resolvable proposal the user is part of, newest first."""
        views = []
        for proposal in await self.engine.list_for_user(user_id):
            party = proposal.party_of(user_id)
            if party is not None:
                views.append(await self.build_view(proposal, party))
        return views

    async def propose(self, match_id: str, user_id: str) -> ProposalView:
        proposal = await self.engine.propose(match_id, user_id)
        return await self.build_view(proposal, Party.PROPOSER)

    async def handle(
        self,
        proposal_id: str,
        viewer_id: str,
        intent: Intent,
        payload: dict[str, Any] | None = None,
    ) -> ProposalView:
        """
        Apply one intent and return the refreshed view.

        Deleting has no view to return; use `delete`.

        Raises:
            InvalidInputError: If the intent is missing a required value or
                is a delete
        """
        values = payload or {}
        logger.debug("Intent %s on proposal %s from %s", intent.value, proposal_id, viewer_id)

        if intent is Intent.ACCEPT:
            await self.engine.accept(proposal_id, viewer_id)
        elif intent is Intent.CONFIRM:
            await self.engine.confirm(proposal_id, viewer_id)
        elif intent is Intent.DECLINE:
            await self.engine.decline(proposal_id, viewer_id)
            self.rate_sessions.discard_proposal(proposal_id)
        elif intent is Intent.CANCEL:
            await self.engine.cancel(proposal_id, viewer_id)
            self.rate_sessions.discard_proposal(proposal_id)
        elif intent is Intent.DELETE:
            raise InvalidInputError(
                "Use DELETE /proposals/{id} to delete a proposal.", "delete returns no view"
            )
        elif intent is Intent.SELECT_SHIPPING_METHOD:
            method = _required(values, "shipping_method")
            try:
                shipping_method = ShippingMethod(method)
            except ValueError:
                raise InvalidInputError(
                    "Choose mail or local meetup.", f"unknown shipping method {method!r}"
                ) from None
            await self.engine.select_shipping_method(proposal_id, shipping_method, viewer_id)
        elif intent is Intent.SELECT_ADDRESS:
            await self.shipping.select_address(
                proposal_id, viewer_id, _required(values, "address_id")
            )
        elif intent is Intent.SHOP_RATES:
            await self.shipping.shop_rates(proposal_id, viewer_id)
        elif intent is Intent.SELECT_RATE:
            await self.shipping.select_rate(proposal_id, viewer_id, _required(values, "quote_id"))
        elif intent is Intent.PURCHASE_LABEL:
            await self.shipping.purchase_label(proposal_id, viewer_id)
        elif intent is Intent.CONFIRM_MEETUP:
            await self.shipping.confirm_meetup(proposal_id, viewer_id)
        elif intent is Intent.REQUEST_ADDRESS:
            await self.shipping.request_address(proposal_id, viewer_id)
        elif intent is Intent.CONFIRM_DELIVERY:
            await self.engine.complete_delivery(proposal_id, viewer_id)
            self.rate_sessions.discard_proposal(proposal_id)

        return await self.view(proposal_id, viewer_id)

    async def delete(self, proposal_id: str, viewer_id: str) -> None:
        """Delete the proposal and forget any quotes shopped for it."""
        await self.engine.delete(proposal_id, viewer_id)
        self.rate_sessions.discard_proposal(proposal_id)


def _required(values: dict[str, Any], key: str) -> str:
    value = values.get(key)
    if not value:
        raise InvalidInputError(f"Missing {key.replace('_', ' ')}.", f"{key} is required")
    return str(value)
