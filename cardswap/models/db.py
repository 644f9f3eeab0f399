"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardDB(Base):
    """
    A card listed by a user.

    `list_type` is "trade" for cards the user offers and "want" for cards
    they are looking for.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    list_type: Mapped[str] = mapped_column(String(20), default="trade")
    market_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name})>"


class MatchDB(Base):
    """
    A candidate pairing of two users' cards.

    Written by the matching engine; read-only to the trade flow.
    """

    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user1_id: Mapped[str] = mapped_column(String(255), index=True)
    user2_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)

    # Single pairing
    user1_card_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user2_card_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Bundle pairing, stored as JSON arrays of card ids
    is_bundle: Mapped[bool] = mapped_column(Boolean, default=False)
    user1_card_ids: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    user2_card_ids: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    value_difference: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def __repr__(self) -> str:
        return f"<MatchDB(id={self.id}, users={self.user1_id}/{self.user2_id})>"


class TradeProposalDB(Base):
    """
    The negotiation record for one match.

    `version` increments on every write and guards conditional updates.
    At most one proposal per match may be outside declined/cancelled.
    """

    __tablename__ = "trade_proposals"
    __table_args__ = (
        Index(
            "uq_active_proposal_per_match",
            "match_id",
            unique=True,
            sqlite_where=text("status NOT IN ('declined', 'cancelled')"),
            postgresql_where=text("status NOT IN ('declined', 'cancelled')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    match_id: Mapped[str] = mapped_column(String(36), index=True)
    proposer_id: Mapped[str] = mapped_column(String(255), index=True)
    recipient_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(30), default="proposed")
    version: Mapped[int] = mapped_column(Integer, default=1)
    shipping_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Acceptance stage
    proposer_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    recipient_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Fulfillment stage (label purchased, or meetup acknowledged)
    proposer_shipping_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    recipient_shipping_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Per-party shipping artifacts
    proposer_tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recipient_tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    proposer_carrier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    recipient_carrier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    proposer_label_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipient_label_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    proposer_address_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    recipient_address_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TradeProposalDB(id={self.id}, status={self.status}, v={self.version})>"


class ShippingAddressDB(Base):
    """A saved postal address. At most one per user is the default."""

    __tablename__ = "shipping_addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    address_name: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(255), default="")
    street1: Mapped[str] = mapped_column(String(255))
    street2: Mapped[str] = mapped_column(String(255), default="")
    city: Mapped[str] = mapped_column(String(100))
    state: Mapped[str] = mapped_column(String(50))
    zip: Mapped[str] = mapped_column(String(20))
    country: Mapped[str] = mapped_column(String(2), default="US")
    phone: Mapped[str] = mapped_column(String(50), default="")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def __repr__(self) -> str:
        return f"<ShippingAddressDB(id={self.id}, user_id={self.user_id})>"


class NotificationDB(Base):
    """A notification record. Delivery happens elsewhere."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    kind: Mapped[str] = mapped_column(String(30))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    proposal_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def __repr__(self) -> str:
        return f"<NotificationDB(user_id={self.user_id}, kind={self.kind})>"
