"""
Database CRUD operations.

Provides async functions for reading matches and cards, and for creating,
reading, conditionally updating, and deleting trade proposals, saved
addresses, and notifications.

Proposal updates are narrow and conditional: only the named fields are
written, and only if the row still carries the version the caller read.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.models.db import (
    CardDB,
    MatchDB,
    NotificationDB,
    ShippingAddressDB,
    TradeProposalDB,
)
from cardswap.models.failure import ConflictError, DuplicateProposalError, ProposalNotFoundError
from cardswap.models.match import Match
from cardswap.models.notification import Notification, NotificationKind
from cardswap.models.proposal import (
    RELEASED_STATUSES,
    ProposalStatus,
    ShippingMethod,
    TradeProposal,
)
from cardswap.models.shipping import SavedAddress

# --- Card & Match Operations ---


async def create_card(
    session: AsyncSession,
    user_id: str,
    name: str,
    list_type: str = "trade",
    **fields: Any,
) -> CardDB:
    """Create a card listing."""
    card = CardDB(user_id=user_id, name=name, list_type=list_type, **fields)
    session.add(card)
    await session.flush()
    return card


async def delete_card(session: AsyncSession, card_id: str) -> bool:
    """
    Delete a card listing.

    Returns True if deleted, False if not found.
    """
    result = await session.execute(delete(CardDB).where(CardDB.id == card_id))
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


async def existing_card_ids(session: AsyncSession, card_ids: set[str]) -> set[str]:
    """Return the subset of `card_ids` that exist."""
    if not card_ids:
        return set()
    result = await session.execute(select(CardDB.id).where(CardDB.id.in_(card_ids)))
    return set(result.scalars().all())


async def create_match(session: AsyncSession, match: Match) -> MatchDB:
    """Persist a match produced by the matching engine."""
    db_match = MatchDB(
        id=match.id,
        user1_id=match.user1_id,
        user2_id=match.user2_id,
        user1_card_id=match.user1_card_id,
        user2_card_id=match.user2_card_id,
        is_bundle=match.is_bundle,
        user1_card_ids=list(match.user1_card_ids) or None,
        user2_card_ids=list(match.user2_card_ids) or None,
        match_score=match.match_score,
        value_difference=match.value_difference,
    )
    session.add(db_match)
    await session.flush()
    return db_match


async def get_match(session: AsyncSession, match_id: str) -> MatchDB | None:
    """Get a match by id. Returns None if it does not exist."""
    return await session.get(MatchDB, match_id)


async def get_matches(session: AsyncSession, match_ids: set[str]) -> dict[str, MatchDB]:
    """Get several matches keyed by id. Missing ids are simply absent."""
    if not match_ids:
        return {}
    result = await session.execute(select(MatchDB).where(MatchDB.id.in_(match_ids)))
    return {m.id: m for m in result.scalars().all()}


def match_to_model(db_match: MatchDB) -> Match:
    """Convert a database match to a domain model."""
    return Match(
        id=db_match.id,
        user1_id=db_match.user1_id,
        user2_id=db_match.user2_id,
        user1_card_id=db_match.user1_card_id,
        user2_card_id=db_match.user2_card_id,
        user1_card_ids=tuple(db_match.user1_card_ids or ()),
        user2_card_ids=tuple(db_match.user2_card_ids or ()),
        is_bundle=bool(db_match.is_bundle),
        match_score=db_match.match_score,
        value_difference=db_match.value_difference,
    )


# --- Proposal Operations ---


async def create_proposal(
    session: AsyncSession,
    match_id: str,
    proposer_id: str,
    recipient_id: str,
) -> TradeProposalDB:
    """
    Create a proposal in status `proposed`.

    Raises DuplicateProposalError if another active proposal holds the match.
    """
    existing = await get_active_proposal_for_match(session, match_id)
    if existing is not None:
        raise DuplicateProposalError(match_id, existing.id)

    proposal = TradeProposalDB(
        match_id=match_id,
        proposer_id=proposer_id,
        recipient_id=recipient_id,
        status=ProposalStatus.PROPOSED.value,
        version=1,
        proposer_confirmed=False,
        recipient_confirmed=False,
        proposer_shipping_confirmed=False,
        recipient_shipping_confirmed=False,
    )
    session.add(proposal)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with the other party; the unique index kept the first one
        await session.rollback()
        winner = await get_active_proposal_for_match(session, match_id)
        raise DuplicateProposalError(match_id, winner.id if winner else "unknown") from None
    return proposal


async def get_proposal(session: AsyncSession, proposal_id: str) -> TradeProposalDB | None:
    """
    Get a proposal by id, always re-reading the row.

    Returns None if no proposal exists.
    """
    result = await session.execute(
        select(TradeProposalDB)
        .where(TradeProposalDB.id == proposal_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_proposal_for_match(
    session: AsyncSession, match_id: str
) -> TradeProposalDB | None:
    """The proposal currently holding `match_id`, if any."""
    released = [s.value for s in RELEASED_STATUSES]
    result = await session.execute(
        select(TradeProposalDB)
        .where(
            TradeProposalDB.match_id == match_id,
            TradeProposalDB.status.not_in(released),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_proposals_for_user(session: AsyncSession, user_id: str) -> list[TradeProposalDB]:
    """All proposals where `user_id` is a party, newest first."""
    result = await session.execute(
        select(TradeProposalDB)
        .where(
            or_(
                TradeProposalDB.proposer_id == user_id,
                TradeProposalDB.recipient_id == user_id,
            )
        )
        .order_by(TradeProposalDB.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_all_proposals(session: AsyncSession) -> list[TradeProposalDB]:
    """Every proposal, newest first."""
    result = await session.execute(
        select(TradeProposalDB)
        .order_by(TradeProposalDB.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def update_proposal_fields(
    session: AsyncSession,
    proposal_id: str,
    expected_version: int,
    fields: dict[str, Any],
) -> TradeProposalDB:
    """
    Conditionally write `fields` to one proposal.

    Only the named columns are touched. The write applies only if the row
    is still at `expected_version`; the version is then incremented.

    Raises:
        ProposalNotFoundError: If the proposal no longer exists
        ConflictError: If the row changed since it was read
    """
    values = dict(fields)
    values["version"] = expected_version + 1
    values.setdefault("updated_at", datetime.now(UTC))

    result = await session.execute(
        update(TradeProposalDB)
        .where(
            TradeProposalDB.id == proposal_id,
            TradeProposalDB.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        if await get_proposal(session, proposal_id) is None:
            raise ProposalNotFoundError(proposal_id)
        raise ConflictError(proposal_id)

    refreshed = await get_proposal(session, proposal_id)
    if refreshed is None:
        raise ProposalNotFoundError(proposal_id)
    return refreshed


async def delete_proposal(
    session: AsyncSession, proposal_id: str, expected_version: int | None = None
) -> bool:
    """
    Delete a proposal, optionally only if it is still at `expected_version`.

    Returns True if deleted, False if not found.

    Raises:
        ConflictError: If the row exists but changed since it was read
    """
    query = delete(TradeProposalDB).where(TradeProposalDB.id == proposal_id)
    if expected_version is not None:
        query = query.where(TradeProposalDB.version == expected_version)

    result = await session.execute(query)
    if int(result.rowcount) > 0:  # type: ignore[attr-defined]
        return True
    if expected_version is not None and await get_proposal(session, proposal_id) is not None:
        raise ConflictError(proposal_id)
    return False


async def delete_proposals(session: AsyncSession, proposal_ids: list[str]) -> int:
    """
    Delete several proposals.

    Returns the number of deleted records.
    """
    if not proposal_ids:
        return 0
    result = await session.execute(
        delete(TradeProposalDB).where(TradeProposalDB.id.in_(proposal_ids))
    )
    return int(result.rowcount)  # type: ignore[attr-defined]


def proposal_to_model(db_proposal: TradeProposalDB) -> TradeProposal:
    """Convert a database proposal to a domain snapshot."""
    return TradeProposal(
        id=db_proposal.id,
        match_id=db_proposal.match_id,
        proposer_id=db_proposal.proposer_id,
        recipient_id=db_proposal.recipient_id,
        status=ProposalStatus(db_proposal.status),
        version=db_proposal.version,
        shipping_method=(
            ShippingMethod(db_proposal.shipping_method) if db_proposal.shipping_method else None
        ),
        proposer_confirmed=bool(db_proposal.proposer_confirmed),
        recipient_confirmed=bool(db_proposal.recipient_confirmed),
        proposer_shipping_confirmed=bool(db_proposal.proposer_shipping_confirmed),
        recipient_shipping_confirmed=bool(db_proposal.recipient_shipping_confirmed),
        proposer_tracking_number=db_proposal.proposer_tracking_number,
        recipient_tracking_number=db_proposal.recipient_tracking_number,
        proposer_carrier=db_proposal.proposer_carrier,
        recipient_carrier=db_proposal.recipient_carrier,
        proposer_label_url=db_proposal.proposer_label_url,
        recipient_label_url=db_proposal.recipient_label_url,
        proposer_address_id=db_proposal.proposer_address_id,
        recipient_address_id=db_proposal.recipient_address_id,
        created_at=db_proposal.created_at,
        updated_at=db_proposal.updated_at,
        completed_at=db_proposal.completed_at,
    )


# --- Shipping Address Operations ---


async def list_addresses(session: AsyncSession, user_id: str) -> list[ShippingAddressDB]:
    """A user's saved addresses: default first, then newest first."""
    result = await session.execute(
        select(ShippingAddressDB)
        .where(ShippingAddressDB.user_id == user_id)
        .order_by(ShippingAddressDB.is_default.desc(), ShippingAddressDB.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_address(session: AsyncSession, address_id: str) -> ShippingAddressDB | None:
    """Get a saved address by id."""
    return await session.get(ShippingAddressDB, address_id, populate_existing=True)


async def create_address(
    session: AsyncSession, user_id: str, is_default: bool, **fields: Any
) -> ShippingAddressDB:
    """Insert a saved address."""
    address = ShippingAddressDB(user_id=user_id, is_default=is_default, **fields)
    session.add(address)
    await session.flush()
    return address


async def update_address_fields(
    session: AsyncSession, address_id: str, fields: dict[str, Any]
) -> None:
    """Write the named fields of one saved address."""
    await session.execute(
        update(ShippingAddressDB)
        .where(ShippingAddressDB.id == address_id)
        .values(**fields)
        .execution_options(synchronize_session=False)
    )


async def clear_default_address(session: AsyncSession, user_id: str) -> None:
    """Unset the default flag on all of a user's addresses."""
    await session.execute(
        update(ShippingAddressDB)
        .where(ShippingAddressDB.user_id == user_id, ShippingAddressDB.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )


async def delete_address(session: AsyncSession, address_id: str) -> bool:
    """
    Delete a saved address.

    Returns True if deleted, False if not found.
    """
    result = await session.execute(
        delete(ShippingAddressDB).where(ShippingAddressDB.id == address_id)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


def address_to_model(db_address: ShippingAddressDB) -> SavedAddress:
    """Convert a database address to a domain model."""
    return SavedAddress(
        id=db_address.id,
        user_id=db_address.user_id,
        address_name=db_address.address_name,
        full_name=db_address.full_name or "",
        street1=db_address.street1,
        street2=db_address.street2 or "",
        city=db_address.city,
        state=db_address.state,
        zip=db_address.zip,
        country=db_address.country or "US",
        phone=db_address.phone or "",
        is_default=bool(db_address.is_default),
    )


# --- Notification Operations ---


async def create_notification(
    session: AsyncSession,
    user_id: str,
    kind: NotificationKind,
    title: str,
    message: str,
    proposal_id: str | None = None,
) -> NotificationDB:
    """Record a notification for a user."""
    notification = NotificationDB(
        user_id=user_id,
        kind=kind.value,
        title=title,
        message=message,
        proposal_id=proposal_id,
        read=False,
    )
    session.add(notification)
    await session.flush()
    return notification


async def list_notifications(
    session: AsyncSession, user_id: str, unread_only: bool = False, limit: int = 50
) -> list[NotificationDB]:
    """A user's notifications, newest first."""
    query = select(NotificationDB).where(NotificationDB.user_id == user_id)
    if unread_only:
        query = query.where(NotificationDB.read.is_(False))
    result = await session.execute(
        query.order_by(NotificationDB.created_at.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def mark_notification_read(
    session: AsyncSession, user_id: str, notification_id: str
) -> bool:
    """
    Mark one of a user's notifications as read.

    Returns False if the user has no such notification.
    """
    result = await session.execute(
        update(NotificationDB)
        .where(NotificationDB.id == notification_id, NotificationDB.user_id == user_id)
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


def notification_to_model(db_notification: NotificationDB) -> Notification:
    """Convert a database notification to a domain model."""
    return Notification(
        id=db_notification.id,
        user_id=db_notification.user_id,
        kind=NotificationKind(db_notification.kind),
        title=db_notification.title,
        message=db_notification.message,
        proposal_id=db_notification.proposal_id,
        read=bool(db_notification.read),
        created_at=db_notification.created_at,
    )
