from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class NotificationKind(str, Enum):
    """What a notification is about."""

    TRADE_PROPOSAL = "trade_proposal"
    TRADE_ACCEPTED = "trade_accepted"
    TRADE_CONFIRMED = "trade_confirmed"
    SHIPPING_UPDATE = "shipping_update"
    ADDRESS_REQUEST = "address_request"
    TRADE_COMPLETED = "trade_completed"


@dataclass(frozen=True)
class Notification:
    """A notification addressed to one user."""

    id: str
    user_id: str
    kind: NotificationKind
    title: str
    message: str
    proposal_id: str | None = None
    read: bool = False
    created_at: datetime | None = None
