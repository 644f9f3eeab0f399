from cardswap.models.failure import (
    AddressNotFoundError,
    ApiResponse,
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    DuplicateProposalError,
    FailureDetail,
    FailureKind,
    GatewayError,
    InvalidInputError,
    InvalidTransitionError,
    KnownError,
    LabelNotRecordedError,
    MatchNotFoundError,
    NoRatesAvailableError,
    OutcomeType,
    ProposalNotFoundError,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from cardswap.models.match import Match
from cardswap.models.notification import Notification, NotificationKind
from cardswap.models.proposal import (
    AckPair,
    FulfillmentConfirmation,
    MailConfirmation,
    MeetupConfirmation,
    Party,
    ProposalStatus,
    ShippingMethod,
    TradeProposal,
    derive_status,
)
from cardswap.models.shipping import (
    STANDARD_CARD_MAILER,
    ParcelSpec,
    PostalAddress,
    PurchasedLabel,
    RateQuote,
    SavedAddress,
    ServiceTier,
    TrackingStatus,
)

__all__ = [
    "AckPair",
    "AddressNotFoundError",
    "ApiResponse",
    "AuthorizationError",
    "ConflictError",
    "DataIntegrityError",
    "DuplicateProposalError",
    "FailureDetail",
    "FailureKind",
    "FulfillmentConfirmation",
    "GatewayError",
    "InvalidInputError",
    "InvalidTransitionError",
    "KnownError",
    "LabelNotRecordedError",
    "MailConfirmation",
    "Match",
    "MatchNotFoundError",
    "MeetupConfirmation",
    "NoRatesAvailableError",
    "Notification",
    "NotificationKind",
    "OutcomeType",
    "ParcelSpec",
    "Party",
    "PostalAddress",
    "ProposalNotFoundError",
    "ProposalStatus",
    "PurchasedLabel",
    "RateQuote",
    "STANDARD_CARD_MAILER",
    "SavedAddress",
    "ServiceTier",
    "ShippingMethod",
    "TrackingStatus",
    "TradeProposal",
    "create_unknown_failure",
    "derive_status",
    "finalize_response",
    "is_finalized",
]
