"""
Import Job Lifecycle.

Status vocabularies for batch import jobs and items, the item transition
table, and the error categorization used when an item fails.

INVARIANTS:
- Item status only moves forward; identified -> pending is never allowed
- A user edit of an identified item keeps it identified
"""

from enum import Enum

from tcgscan.models.failure import ItemTransitionError


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    IDENTIFIED = "identified"
    FAILED = "failed"
    SKIPPED = "skipped"
    CONFIRMED = "confirmed"


class ErrorCode(str, Enum):
    """Why an item failed identification."""

    NO_CARD_VISIBLE = "no_card_visible"
    IMAGE_QUALITY = "image_quality"
    NO_MATCH = "no_match"
    API_ERROR = "api_error"
    TIMEOUT = "timeout"
    FILE_ERROR = "file_error"
    SERVICE_UNAVAILABLE = "service_unavailable"


class PrintingType(str, Enum):
    NORMAL = "Normal"
    FOIL = "Foil"
    FIRST_EDITION = "1st Edition"


ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.PROCESSING, ItemStatus.SKIPPED, ItemStatus.FAILED}),
    ItemStatus.PROCESSING: frozenset({ItemStatus.IDENTIFIED, ItemStatus.FAILED}),
    ItemStatus.FAILED: frozenset({ItemStatus.IDENTIFIED}),
    ItemStatus.IDENTIFIED: frozenset(
        {ItemStatus.IDENTIFIED, ItemStatus.CONFIRMED, ItemStatus.SKIPPED}
    ),
    ItemStatus.SKIPPED: frozenset({ItemStatus.IDENTIFIED}),
    ItemStatus.CONFIRMED: frozenset(),
}


def can_transition(current: ItemStatus, requested: ItemStatus) -> bool:
    """Check whether an item may move from current to requested."""
    return requested in ALLOWED_TRANSITIONS[current]


def check_transition(current: ItemStatus, requested: ItemStatus) -> None:
    """
    Enforce the item transition table.

    Raises:
        ItemTransitionError: If the move is not allowed
    """
    if not can_transition(current, requested):
        raise ItemTransitionError(current.value, requested.value)


# Substrings checked in order; first hit decides the code
_ERROR_MARKERS: list[tuple[ErrorCode, tuple[str, ...]]] = [
    (ErrorCode.TIMEOUT, ("deadline exceeded", "timeout", "timed out")),
    (
        ErrorCode.API_ERROR,
        ("api returned status", "request failed", "429", "rate limit", "quota", "overloaded"),
    ),
    (ErrorCode.SERVICE_UNAVAILABLE, ("not configured", "disabled")),
    (ErrorCode.FILE_ERROR, ("failed to read image", "no such file")),
    (ErrorCode.NO_CARD_VISIBLE, ("no card visible", "no card in")),
    (ErrorCode.IMAGE_QUALITY, ("blurry", "too dark", "low resolution")),
]


def categorize_error(message: str) -> ErrorCode:
    """
    Map an error message to an ErrorCode.

    Unrecognized messages are treated as a failed match.
    """
    lowered = message.lower()
    for code, markers in _ERROR_MARKERS:
        if any(marker in lowered for marker in markers):
            return code
    return ErrorCode.NO_MATCH
