"""
Trade proposal domain model.

A proposal is the shared negotiation record between two parties. Some of
its lifecycle is stored as raw status writes and some as pairs of
per-party acknowledgement flags, so the status shown to users is DERIVED:

    effective_status(proposal) = derive from (raw status, ack pairs)

The derivation lives here, in one place, and is recomputed on every read.

INVARIANTS:
- proposer_id != recipient_id
- completed_at is set if and only if status == COMPLETED
- A two-party stage is reached only when BOTH acknowledgements are present
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ProposalStatus(str, Enum):
    """Canonical proposal statuses."""

    PROPOSED = "proposed"
    ACCEPTED_BY_RECIPIENT = "accepted_by_recipient"
    CONFIRMED = "confirmed"
    SHIPPING_PENDING = "shipping_pending"
    SHIPPING_CONFIRMED = "shipping_confirmed"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class ShippingMethod(str, Enum):
    """How the cards physically change hands."""

    MAIL = "mail"
    LOCAL_MEETUP = "local_meetup"


class Party(str, Enum):
    """Role of a user within a proposal."""

    PROPOSER = "proposer"
    RECIPIENT = "recipient"

    @property
    def other(self) -> "Party":
        return Party.RECIPIENT if self is Party.PROPOSER else Party.PROPOSER


# Statuses that free the match for a new proposal
RELEASED_STATUSES = frozenset({ProposalStatus.DECLINED, ProposalStatus.CANCELLED})

# Statuses from which nothing further may happen
TERMINAL_STATUSES = RELEASED_STATUSES | {ProposalStatus.COMPLETED}


# =============================================================================
# TWO-PARTY ACKNOWLEDGEMENT GATE
# =============================================================================


@dataclass(frozen=True)
class AckPair:
    """Per-stage acknowledgement flags for the two parties."""

    proposer: bool = False
    recipient: bool = False

    @property
    def both(self) -> bool:
        return self.proposer and self.recipient

    @property
    def exactly_one(self) -> bool:
        return self.proposer != self.recipient

    def of(self, party: Party) -> bool:
        return self.proposer if party is Party.PROPOSER else self.recipient


def derive_status(raw: ProposalStatus, acceptance: AckPair, fulfillment: AckPair) -> ProposalStatus:
    """
    Derive the effective status from the raw status and the two ack pairs.

    - proposed + both accepted            -> confirmed
    - proposed + one accepted             -> accepted_by_recipient
    - shipping_confirmed + both fulfilled -> completed
    - shipping_confirmed + one fulfilled  -> shipping_pending
    - anything else                       -> raw status
    """
    if raw is ProposalStatus.PROPOSED:
        if acceptance.both:
            return ProposalStatus.CONFIRMED
        if acceptance.exactly_one:
            return ProposalStatus.ACCEPTED_BY_RECIPIENT
    elif raw is ProposalStatus.SHIPPING_CONFIRMED:
        if fulfillment.both:
            return ProposalStatus.COMPLETED
        if fulfillment.exactly_one:
            return ProposalStatus.SHIPPING_PENDING
    return raw


def status_after_fulfillment(fulfillment: AckPair) -> ProposalStatus:
    """Raw status to persist after a fulfillment acknowledgement lands."""
    if fulfillment.both:
        return ProposalStatus.SHIPPING_CONFIRMED
    return ProposalStatus.SHIPPING_PENDING


# =============================================================================
# FULFILLMENT CONFIRMATIONS
# =============================================================================


@dataclass(frozen=True)
class MailConfirmation:
    """A party shipped their cards: a label was purchased."""

    tracking_number: str
    carrier: str
    label_url: str


@dataclass(frozen=True)
class MeetupConfirmation:
    """A party acknowledged the in-person exchange took place."""


FulfillmentConfirmation = MailConfirmation | MeetupConfirmation


# =============================================================================
# PROPOSAL SNAPSHOT
# =============================================================================


@dataclass(frozen=True)
class TradeProposal:
    """
    Immutable snapshot of a persisted proposal.

    `version` is the optimistic concurrency token: every write must name
    the version it was computed from.
    """

    id: str
    match_id: str
    proposer_id: str
    recipient_id: str
    status: ProposalStatus
    version: int = 1
    shipping_method: ShippingMethod | None = None
    proposer_confirmed: bool = False
    recipient_confirmed: bool = False
    proposer_shipping_confirmed: bool = False
    recipient_shipping_confirmed: bool = False
    proposer_tracking_number: str | None = None
    recipient_tracking_number: str | None = None
    proposer_carrier: str | None = None
    recipient_carrier: str | None = None
    proposer_label_url: str | None = None
    recipient_label_url: str | None = None
    proposer_address_id: str | None = None
    recipient_address_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def acceptance(self) -> AckPair:
        return AckPair(self.proposer_confirmed, self.recipient_confirmed)

    @property
    def fulfillment(self) -> AckPair:
        return AckPair(self.proposer_shipping_confirmed, self.recipient_shipping_confirmed)

    @property
    def effective_status(self) -> ProposalStatus:
        return derive_status(self.status, self.acceptance, self.fulfillment)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def party_of(self, user_id: str) -> Party | None:
        """The role `user_id` plays in this proposal, or None if not a party."""
        if user_id == self.proposer_id:
            return Party.PROPOSER
        if user_id == self.recipient_id:
            return Party.RECIPIENT
        return None

    def user_of(self, party: Party) -> str:
        return self.proposer_id if party is Party.PROPOSER else self.recipient_id

    def address_id_of(self, party: Party) -> str | None:
        return self.proposer_address_id if party is Party.PROPOSER else self.recipient_address_id

    def fulfillment_confirmation(self, party: Party) -> FulfillmentConfirmation | None:
        """
        The confirmation `party` has produced for the chosen method, if any.

        A mail confirmation requires the full label record; a bare flag
        without tracking data does not count as shipped.
        """
        if not self.fulfillment.of(party):
            return None
        if self.shipping_method is ShippingMethod.LOCAL_MEETUP:
            return MeetupConfirmation()
        if self.shipping_method is ShippingMethod.MAIL:
            prefix = party.value
            tracking = getattr(self, f"{prefix}_tracking_number")
            carrier = getattr(self, f"{prefix}_carrier")
            label_url = getattr(self, f"{prefix}_label_url")
            if tracking and carrier and label_url:
                return MailConfirmation(tracking, carrier, label_url)
        return None

    def fulfilled_by_both(self) -> bool:
        """Completion gate: both parties produced a confirmation of the right variant."""
        return all(self.fulfillment_confirmation(p) is not None for p in Party)


# =============================================================================
# FIELD OWNERSHIP
# =============================================================================

# Fields each party may write about themselves
PARTY_FIELDS: dict[Party, frozenset[str]] = {
    party: frozenset(
        f"{party.value}_{suffix}"
        for suffix in (
            "confirmed",
            "shipping_confirmed",
            "tracking_number",
            "carrier",
            "label_url",
            "address_id",
        )
    )
    for party in Party
}

# Fields either party may write, always through an engine operation
SHARED_FIELDS = frozenset({"status", "shipping_method", "completed_at"})


def foreign_fields(party: Party, fields: set[str]) -> set[str]:
    """Fields in `fields` that `party` is not allowed to write."""
    return set(fields) - PARTY_FIELDS[party] - SHARED_FIELDS
