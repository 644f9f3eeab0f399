"""
Shipping coordination for confirmed trades.

Mail: each party resolves a ship-from address, shops rates to the
counterparty's address, reviews one quote and buys a label. Buying the
label is that party's fulfillment acknowledgement.

Meetup: no addresses or rates. Each party acknowledges the in-person
exchange with the same fulfillment flag.

Gateway failures never touch the proposal; the party can retry.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import address_to_model, get_address
from cardswap.gateway.client import ShippingGateway
from cardswap.models.failure import (
    InvalidTransitionError,
    KnownError,
    LabelNotRecordedError,
    NoRatesAvailableError,
)
from cardswap.models.proposal import (
    MailConfirmation,
    Party,
    ProposalStatus,
    ShippingMethod,
    TradeProposal,
)
from cardswap.models.shipping import (
    STANDARD_CARD_MAILER,
    PurchasedLabel,
    RateQuote,
    SavedAddress,
    TrackingStatus,
)
from cardswap.services import notifier
from cardswap.services.address_book import get_default_address, get_owned_address
from cardswap.services.proposal_engine import TradeProposalEngine
from cardswap.services.rate_sessions import RateSession, RateSessionStore, get_rate_sessions
from cardswap.services.rate_shopping import eligible_quotes

logger = logging.getLogger(__name__)

# A purchased label is paid for: try harder to record it than ordinary writes
LABEL_RECORD_ATTEMPTS = 3

SHIPPABLE_STATUSES = frozenset({ProposalStatus.CONFIRMED, ProposalStatus.SHIPPING_PENDING})

PARTNER_ADDRESS_CHANGED = "your trade partner's address changed, shop rates again"


@dataclass(frozen=True)
class RateReview:
    """What a party sees before committing to a label purchase."""

    quote: RateQuote
    from_address: SavedAddress
    to_address: SavedAddress

    def to_dict(self) -> dict[str, Any]:
        return {
            "quote_id": self.quote.id,
            "amount": str(self.quote.amount),
            "currency": self.quote.currency,
            "provider": self.quote.provider,
            "service_name": self.quote.service_name,
            "tier": self.quote.tier.value if self.quote.tier else None,
            "estimated_days": self.quote.estimated_days,
            "from_address_id": self.from_address.id,
            "from_address_name": self.from_address.address_name,
            "to_address_id": self.to_address.id,
            "to_city": self.to_address.city,
            "to_state": self.to_address.state,
        }


class ShippingCoordinator:
    """Mail and meetup fulfillment for one session."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: ShippingGateway,
        rate_sessions: RateSessionStore | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.rate_sessions = rate_sessions or get_rate_sessions()
        self.engine = TradeProposalEngine(session)

    # -------------------------------------------------------------------------
    # Address readiness
    # -------------------------------------------------------------------------

    async def address_for(self, proposal: TradeProposal, party: Party) -> SavedAddress | None:
        """
        The address `party` ships from and receives at for this trade.

        Their snapshot on the proposal if it still exists, otherwise their
        current default.
        """
        user_id = proposal.user_of(party)
        snapshot_id = proposal.address_id_of(party)
        if snapshot_id:
            db_address = await get_address(self.session, snapshot_id)
            if db_address is not None and db_address.user_id == user_id:
                return address_to_model(db_address)
            logger.warning(
                "Address snapshot %s on proposal %s is gone, using default for %s",
                snapshot_id,
                proposal.id,
                user_id,
            )
        return await get_default_address(self.session, user_id)

    async def address_readiness(
        self, proposal: TradeProposal, party: Party
    ) -> tuple[SavedAddress | None, SavedAddress | None]:
        """(own address, counterparty address) as seen by `party`."""
        own = await self.address_for(proposal, party)
        counterpart = await self.address_for(proposal, party.other)
        return own, counterpart

    def _require_mail_step(self, proposal: TradeProposal, party: Party, attempted: str) -> None:
        current = proposal.effective_status.value
        if proposal.is_terminal or proposal.effective_status not in SHIPPABLE_STATUSES:
            raise InvalidTransitionError(current, attempted)
        if proposal.shipping_method is not ShippingMethod.MAIL:
            raise InvalidTransitionError(current, attempted, "this trade is not being mailed")
        if proposal.fulfillment.of(party):
            raise InvalidTransitionError(current, attempted, "your label is already purchased")

    # -------------------------------------------------------------------------
    # Mail branch
    # -------------------------------------------------------------------------

    async def select_address(
        self, proposal_id: str, actor_id: str, address_id: str
    ) -> TradeProposal:
        """Ship from a specific saved address instead of the default."""
        await get_owned_address(self.session, actor_id, address_id)
        proposal = await self.engine.snapshot_address(proposal_id, actor_id, address_id)
        # Quotes priced for the old address are no longer valid
        self.rate_sessions.discard(proposal_id, actor_id)
        return proposal

    async def shop_rates(self, proposal_id: str, actor_id: str) -> list[RateQuote]:
        """
        Price the actor's parcel to the counterparty, cheapest first.

        Raises:
            InvalidTransitionError: If either address is missing or the trade
                is not at the shipping stage
            GatewayError: If the gateway fails
            NoRatesAvailableError: If no allow-listed service is offered
        """
        proposal, party = await self.engine.load_for(proposal_id, actor_id)
        self._require_mail_step(proposal, party, "shop rates for")

        own, counterpart = await self.address_readiness(proposal, party)
        current = proposal.effective_status.value
        if own is None:
            raise InvalidTransitionError(current, "shop rates for", "add a shipping address first")
        if counterpart is None:
            raise InvalidTransitionError(
                current, "shop rates for", "your trade partner has not added an address yet"
            )

        raw_quotes = await self.gateway.get_rates(
            own.to_postal("Sender"), counterpart.to_postal("Recipient"), STANDARD_CARD_MAILER
        )
        quotes = eligible_quotes(raw_quotes)
        if not quotes:
            logger.info(
                "No eligible rates for proposal %s (%d offered, none allow-listed)",
                proposal_id,
                len(raw_quotes),
            )
            raise NoRatesAvailableError(f"{len(raw_quotes)} quotes offered, none eligible")

        await self.engine.snapshot_address(proposal_id, actor_id, own.id)
        self.rate_sessions.put(
            RateSession(
                proposal_id=proposal_id,
                user_id=actor_id,
                from_address_id=own.id,
                to_address_id=counterpart.id,
                quotes=quotes,
            )
        )
        logger.info("Offered %d rates to %s for proposal %s", len(quotes), actor_id, proposal_id)
        return quotes

    def _claim_session(self, proposal: TradeProposal, actor_id: str) -> RateSession:
        rate_session = self.rate_sessions.claim(proposal.id, actor_id)
        if rate_session is not None:
            return rate_session
        reason = "rates expired, shop rates again"
        if self.rate_sessions.get(proposal.id, actor_id) is not None:
            reason = "review a rate first"
        raise InvalidTransitionError(proposal.effective_status.value, "buy a label for", reason)

    async def select_rate(self, proposal_id: str, actor_id: str, quote_id: str) -> RateReview:
        """Pick one of the offered quotes and get the summary to review."""
        proposal, party = await self.engine.load_for(proposal_id, actor_id)
        self._require_mail_step(proposal, party, "select a rate for")

        current = proposal.effective_status.value
        rate_session = self.rate_sessions.get(proposal_id, actor_id)
        if rate_session is None:
            raise InvalidTransitionError(
                current, "select a rate for", "rates expired, shop rates again"
            )
        if rate_session.quote(quote_id) is None:
            raise InvalidTransitionError(
                current, "select a rate for", "that rate was not offered, shop rates again"
            )

        own = await get_owned_address(self.session, actor_id, rate_session.from_address_id)
        db_counterpart = await get_address(self.session, rate_session.to_address_id)
        if db_counterpart is None:
            self.rate_sessions.discard(proposal_id, actor_id)
            raise InvalidTransitionError(current, "select a rate for", PARTNER_ADDRESS_CHANGED)

        quote = self.rate_sessions.select(proposal_id, actor_id, quote_id)
        if quote is None:
            raise InvalidTransitionError(
                current, "select a rate for", "rates expired, shop rates again"
            )
        return RateReview(
            quote=quote, from_address=own, to_address=address_to_model(db_counterpart)
        )

    async def _check_priced_addresses(
        self, proposal: TradeProposal, party: Party, rate_session: RateSession
    ) -> None:
        """Both ends of the parcel must still be the ones the quote was priced for."""
        current = proposal.effective_status.value
        if proposal.address_id_of(party) != rate_session.from_address_id:
            raise InvalidTransitionError(
                current, "buy a label for", "your address changed, shop rates again"
            )
        counterpart = await self.address_for(proposal, party.other)
        if counterpart is None or counterpart.id != rate_session.to_address_id:
            raise InvalidTransitionError(current, "buy a label for", PARTNER_ADDRESS_CHANGED)

    async def purchase_label(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """
        Buy the label for the reviewed quote and record it as shipped.

        Buying again after the label is recorded is a no-op. The reviewed
        quote is claimed before the gateway is called, so a double submit in
        one process pays once; it goes back to the store only if the
        purchase fails.

        Raises:
            InvalidTransitionError: If no quote was reviewed, it expired, or
                either address changed since it was priced
            GatewayError: If the purchase fails; nothing is recorded
            LabelNotRecordedError: If the label was paid for but the trade
                already records another one
        """
        proposal, party = await self.engine.load_for(proposal_id, actor_id)
        if proposal.shipping_method is ShippingMethod.MAIL and proposal.fulfillment.of(party):
            return proposal
        self._require_mail_step(proposal, party, "buy a label for")

        rate_session = self._claim_session(proposal, actor_id)
        await self._check_priced_addresses(proposal, party, rate_session)
        quote = rate_session.selected_quote
        if quote is None:
            raise InvalidTransitionError(
                proposal.effective_status.value, "buy a label for", "review a rate first"
            )

        try:
            label = await self.gateway.purchase_label(quote.id, quote.provider)
        except KnownError:
            self.rate_sessions.restore(rate_session)
            raise
        logger.info(
            "Label purchased for proposal %s by %s: %s %s",
            proposal_id,
            actor_id,
            label.carrier,
            label.tracking_number,
        )

        try:
            proposal, changed = await self.engine.record_fulfillment(
                proposal_id,
                actor_id,
                ShippingMethod.MAIL,
                {
                    "tracking_number": label.tracking_number,
                    "carrier": label.carrier,
                    "label_url": label.label_url,
                },
                attempts=LABEL_RECORD_ATTEMPTS,
            )
        except KnownError:
            self._log_unrecorded(proposal_id, actor_id, label)
            raise

        if not changed:
            self._log_unrecorded(proposal_id, actor_id, label)
            raise LabelNotRecordedError(proposal_id, label.tracking_number, label.carrier)
        return proposal

    def _log_unrecorded(self, proposal_id: str, actor_id: str, label: PurchasedLabel) -> None:
        logger.error(
            "Purchased label not recorded on proposal %s for %s: tracking=%s carrier=%s label=%s",
            proposal_id,
            actor_id,
            label.tracking_number,
            label.carrier,
            label.label_url,
        )

    async def request_address(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """Nudge the counterparty to add a shipping address."""
        proposal, party = await self.engine.load_for(proposal_id, actor_id)
        self._require_mail_step(proposal, party, "request an address for")
        await notifier.notify_address_requested(self.session, proposal, actor_id)
        logger.info("Address requested on proposal %s by %s", proposal_id, actor_id)
        return proposal

    async def tracking(self, proposal_id: str, viewer_id: str, party: Party) -> TrackingStatus:
        """Carrier tracking for the parcel `party` sent."""
        proposal, _ = await self.engine.load_for(proposal_id, viewer_id)
        confirmation = proposal.fulfillment_confirmation(party)
        if not isinstance(confirmation, MailConfirmation):
            raise InvalidTransitionError(
                proposal.effective_status.value, "track", "no label has been purchased"
            )
        return await self.gateway.track(confirmation.carrier, confirmation.tracking_number)

    # -------------------------------------------------------------------------
    # Meetup branch
    # -------------------------------------------------------------------------

    async def confirm_meetup(self, proposal_id: str, actor_id: str) -> TradeProposal:
        """Acknowledge the in-person exchange happened."""
        proposal, _ = await self.engine.record_fulfillment(
            proposal_id, actor_id, ShippingMethod.LOCAL_MEETUP
        )
        return proposal
