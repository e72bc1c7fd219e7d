"""
Failure Envelope: Unified Response Classification.

Every user-visible failure leaves the service classified and explained.
Domain code raises `KnownError` subclasses; the application-level exception
handler turns them into a finalized `ApiResponse`.

Response types:
- Success: Operation completed successfully
- KnownFailure: System knows why it failed
- UnknownFailure: System does not know why it failed

AUTHORITY BOUNDARY:
Error responses pass through `finalize_response()`, the single exit point
that guarantees failure classification.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_IMAGE = "invalid_image"

    # Resource failures
    NOT_FOUND = "not_found"
    NO_MATCH = "no_match"

    # Constraint violations
    JOB_CONFLICT = "job_conflict"
    INVALID_TRANSITION = "invalid_transition"
    BUDGET_EXCEEDED = "budget_exceeded"

    # Service failures
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_API_ERROR = "external_api_error"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
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
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope for classified outcomes."""

    outcome: OutcomeType
    data: T | None = None
    failure: FailureDetail | None = None

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        Example: job not found, a second import submitted while one is active.
        """
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
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# DOMAIN ERRORS
# =============================================================================


class JobConflictError(KnownError):
    """Raised when an import job is submitted while another is active."""

    def __init__(self, active_job_id: str | None = None):
        self.active_job_id = active_job_id
        super().__init__(
            kind=FailureKind.JOB_CONFLICT,
            message="An import job is already in progress.",
            detail=f"Active job: {active_job_id}" if active_job_id else None,
            suggestion="Wait for the current job to finish or delete it.",
            status_code=409,
        )


class JobNotFoundError(KnownError):
    """Raised when a job (or an item inside it) does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{resource.capitalize()} not found.",
            detail=f"{resource} id: {resource_id}",
            status_code=404,
        )


class ItemTransitionError(KnownError):
    """Raised when an import item is moved backwards in its lifecycle."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            kind=FailureKind.INVALID_TRANSITION,
            message=f"Cannot move an item from '{current}' to '{requested}'.",
            detail=f"{current} -> {requested}",
            status_code=409,
        )


class InvalidImageError(KnownError):
    """Raised for uploads that are not an accepted image."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(
            kind=FailureKind.INVALID_IMAGE,
            message=f"'{filename}' was rejected: {reason}",
            suggestion="Upload JPEG, PNG, GIF or WebP images up to 10MB.",
            status_code=400,
        )


class ServiceNotConfiguredError(KnownError):
    """Raised when an external collaborator has no credentials configured."""

    def __init__(self, service: str, setting: str):
        self.service = service
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message=f"{service} is not configured.",
            detail=f"Missing setting: {setting}",
            suggestion=f"Set {setting} and restart the service.",
            status_code=503,
        )


class ExternalServiceError(KnownError):
    """Raised when an external collaborator fails to answer usefully."""

    def __init__(self, service: str, reason: str):
        self.service = service
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=f"{service} request failed.",
            detail=reason,
            suggestion="Retry shortly, or submit OCR text instead of a photo.",
            status_code=502,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================

UNKNOWN_FAILURE_MESSAGE = "Something went wrong and the cause is unknown. Please retry."

# Track finalized responses
_finalized_responses: set[int] = set()


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

    _finalized_responses.add(id(response))
    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return id(response) in _finalized_responses


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """
    Create an unknown failure response from an exception.

    The message is fixed; only the exception type is exposed as detail.
    """
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=UNKNOWN_FAILURE_MESSAGE,
            detail=type(exception).__name__,
            suggestion="If this persists, please report the issue.",
        ),
    )
    return finalize_response(response)
