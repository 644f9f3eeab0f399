"""
Trade notifications.

Records what each party should be told about a trade. Delivery (push,
email, in-app rendering) happens elsewhere and reads these records.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import create_notification
from cardswap.models.notification import NotificationKind
from cardswap.models.proposal import ShippingMethod, TradeProposal


async def notify_proposed(session: AsyncSession, proposal: TradeProposal, bundle: bool) -> None:
    title = "New Bundle Trade Proposal" if bundle else "New Trade Proposal"
    await create_notification(
        session,
        proposal.recipient_id,
        NotificationKind.TRADE_PROPOSAL,
        title,
        "Someone proposed a trade for one of your matches.",
        proposal.id,
    )


async def notify_accepted(session: AsyncSession, proposal: TradeProposal, by_user: str) -> None:
    party = proposal.party_of(by_user)
    if party is None:
        return
    await create_notification(
        session,
        proposal.user_of(party.other),
        NotificationKind.TRADE_ACCEPTED,
        "Trade Proposal Accepted",
        "Your trade proposal was accepted. Confirm it to continue.",
        proposal.id,
    )


async def notify_confirmed(session: AsyncSession, proposal: TradeProposal) -> None:
    for user_id in (proposal.proposer_id, proposal.recipient_id):
        await create_notification(
            session,
            user_id,
            NotificationKind.TRADE_CONFIRMED,
            "Trade Confirmed",
            "Both sides confirmed. Choose how to exchange the cards.",
            proposal.id,
        )


async def notify_fulfilled(session: AsyncSession, proposal: TradeProposal, by_user: str) -> None:
    """Tell the counterparty that `by_user` shipped or confirmed the meetup."""
    party = proposal.party_of(by_user)
    if party is None:
        return
    if proposal.shipping_method is ShippingMethod.LOCAL_MEETUP:
        message = "Your trade partner confirmed the meetup exchange."
    else:
        message = "Your trade partner bought a shipping label and is sending their cards."
    await create_notification(
        session,
        proposal.user_of(party.other),
        NotificationKind.SHIPPING_UPDATE,
        "Shipping Update",
        message,
        proposal.id,
    )


async def notify_address_requested(
    session: AsyncSession, proposal: TradeProposal, by_user: str
) -> None:
    party = proposal.party_of(by_user)
    if party is None:
        return
    await create_notification(
        session,
        proposal.user_of(party.other),
        NotificationKind.ADDRESS_REQUEST,
        "Shipping Address Needed",
        "Your trade partner is ready to ship. Add a shipping address so they can buy a label.",
        proposal.id,
    )


async def notify_completed(session: AsyncSession, proposal: TradeProposal) -> None:
    for user_id in (proposal.proposer_id, proposal.recipient_id):
        await create_notification(
            session,
            user_id,
            NotificationKind.TRADE_COMPLETED,
            "Trade Completed",
            "This trade is complete. Thanks for trading!",
            proposal.id,
        )
