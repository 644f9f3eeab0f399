"""
Failure Explanation Envelope: Unified Response Classification.

Every user-visible outcome of a trade operation is classified into one of:
- Success: Operation completed successfully
- Refusal: The caller is not permitted to do this
- KnownFailure: System knows why it failed (and what to do next)
- UnknownFailure: System does not know why it failed

All user-visible responses pass through `finalize_response()`.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, PrivateAttr


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    NOT_FOUND = "not_found"

    # Trade lifecycle
    NOT_PERMITTED = "not_permitted"
    INVALID_TRANSITION = "invalid_transition"
    DUPLICATE_PROPOSAL = "duplicate_proposal"
    DATA_INTEGRITY = "data_integrity"
    CONFLICT = "conflict"

    # Shipping
    NO_RATES_AVAILABLE = "no_rates_available"
    EXTERNAL_API_ERROR = "external_api_error"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    REFUSAL = "refusal"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested next action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Universal response envelope.

    Every response is classified into one of four outcome types,
    ensuring no failure reaches the user unexplained.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )
    _finalized: bool = PrivateAttr(default=False)

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def refusal(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """Create a refusal response."""
        return cls(
            outcome=OutcomeType.REFUSAL,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """Create a known failure response."""
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    outcome = OutcomeType.KNOWN_FAILURE

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to a finalized ApiResponse."""
        if self.outcome == OutcomeType.REFUSAL:
            response = ApiResponse.refusal(
                kind=self.kind,
                message=self.message,
                detail=self.detail,
                suggestion=self.suggestion,
            )
        else:
            response = ApiResponse.known_failure(
                kind=self.kind,
                message=self.message,
                detail=self.detail,
                suggestion=self.suggestion,
            )
        return finalize_response(response)


# =============================================================================
# TRADE ERROR TAXONOMY
# =============================================================================


class InvalidInputError(KnownError):
    """A request is missing a value or carries one that makes no sense."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=message,
            detail=detail,
            suggestion="Check the request and try again.",
            status_code=400,
        )


class AuthorizationError(KnownError):
    """The actor is not a party to the trade, or touched a field that is not theirs."""

    outcome = OutcomeType.REFUSAL

    def __init__(self, detail: str | None = None):
        super().__init__(
            kind=FailureKind.NOT_PERMITTED,
            message="Not permitted.",
            detail=detail,
            suggestion=None,
            status_code=403,
        )


class InvalidTransitionError(KnownError):
    """
    An operation was attempted from a state that does not permit it.

    Carries both the current state and the attempted operation so the caller
    can refetch and resync.
    """

    def __init__(self, current: str, attempted: str, detail: str | None = None):
        self.current = current
        self.attempted = attempted
        super().__init__(
            kind=FailureKind.INVALID_TRANSITION,
            message=f"Cannot {attempted} a trade that is {current}.",
            detail=detail,
            suggestion="Refresh the trade to see its current state.",
            status_code=409,
        )


class DuplicateProposalError(KnownError):
    """An active proposal already exists for the match."""

    def __init__(self, match_id: str, existing_proposal_id: str):
        self.match_id = match_id
        self.existing_proposal_id = existing_proposal_id
        super().__init__(
            kind=FailureKind.DUPLICATE_PROPOSAL,
            message="A trade proposal already exists for this match.",
            detail=f"existing_proposal_id={existing_proposal_id}",
            suggestion="Open the existing proposal instead.",
            status_code=409,
        )


class DataIntegrityError(KnownError):
    """A match cannot resolve its card references."""

    def __init__(self, match_id: str, reason: str):
        self.match_id = match_id
        self.reason = reason
        super().__init__(
            kind=FailureKind.DATA_INTEGRITY,
            message="This match is no longer available for trading.",
            detail=f"match {match_id}: {reason}",
            suggestion="Refresh your matches.",
            status_code=422,
        )


class ConflictError(KnownError):
    """Concurrent write collision on a trade record."""

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(
            kind=FailureKind.CONFLICT,
            message="Someone else updated this trade, please refresh.",
            detail=f"proposal {proposal_id} changed during update",
            suggestion="Refresh the trade and try again.",
            status_code=409,
        )


class LabelNotRecordedError(KnownError):
    """A label was paid for but the trade already records a different one."""

    def __init__(self, proposal_id: str, tracking_number: str, carrier: str):
        self.proposal_id = proposal_id
        self.tracking_number = tracking_number
        self.carrier = carrier
        super().__init__(
            kind=FailureKind.CONFLICT,
            message="Your label was purchased but another label is already on this trade.",
            detail=f"proposal {proposal_id}: unrecorded {carrier} label {tracking_number}",
            suggestion="Keep the tracking number and contact support to void the extra label.",
            status_code=409,
        )


class GatewayError(KnownError):
    """The shipping rate/label service failed or timed out."""

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=f"The shipping service could not complete the {operation}.",
            detail=detail,
            suggestion="Try again. Nothing was charged or saved.",
            status_code=502,
        )


class NoRatesAvailableError(KnownError):
    """The shipping service returned no eligible quotes for an address pair."""

    def __init__(self, detail: str | None = None):
        super().__init__(
            kind=FailureKind.NO_RATES_AVAILABLE,
            message="No shipping rates are available for these addresses.",
            detail=detail,
            suggestion="Check both addresses and retry.",
            status_code=422,
        )


class ProposalNotFoundError(KnownError):
    """No proposal with the requested id."""

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Trade proposal not found.",
            detail=f"proposal {proposal_id}",
            suggestion="Refresh your trades.",
            status_code=404,
        )


class MatchNotFoundError(KnownError):
    """No match with the requested id."""

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Match not found.",
            detail=f"match {match_id}",
            suggestion="Refresh your matches.",
            status_code=404,
        )


class AddressNotFoundError(KnownError):
    """No saved address with the requested id."""

    def __init__(self, address_id: str):
        self.address_id = address_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Shipping address not found.",
            detail=f"address {address_id}",
            suggestion="Choose another saved address or add a new one.",
            status_code=404,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================

STANDARD_MESSAGES: dict[OutcomeType, str] = {
    OutcomeType.UNKNOWN_FAILURE: "Something went wrong and we don't know why. Please retry.",
}

STANDARD_SUGGESTIONS: dict[OutcomeType, str] = {
    OutcomeType.UNKNOWN_FAILURE: "If this persists, please report the issue.",
}

def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    else:
        if response.failure is None:
            raise ValueError(f"{response.outcome.value} response must have failure details")

    response._finalized = True

    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return response._finalized


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """
    Create an unknown failure response from an exception.

    The message is fixed; only the exception type is exposed as detail.
    """
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=STANDARD_MESSAGES[OutcomeType.UNKNOWN_FAILURE],
            detail=type(exception).__name__,
            suggestion=STANDARD_SUGGESTIONS[OutcomeType.UNKNOWN_FAILURE],
        ),
    )
    return finalize_response(response)
