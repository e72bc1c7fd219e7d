from tcgscan.models.failure import (
    ApiResponse,
    ExternalServiceError,
    FailureDetail,
    FailureKind,
    InvalidImageError,
    ItemTransitionError,
    JobConflictError,
    JobNotFoundError,
    KnownError,
    OutcomeType,
    ServiceNotConfiguredError,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from tcgscan.models.identification import (
    CardRecord,
    IdentificationCandidate,
    IdentificationFailedError,
    MatchSelection,
    ResolutionResult,
    ResolutionSource,
    ScanIdentification,
)
from tcgscan.models.import_job import (
    ACTIVE_JOB_STATUSES,
    ErrorCode,
    ItemStatus,
    JobStatus,
    PrintingType,
    can_transition,
    categorize_error,
    check_transition,
)
from tcgscan.models.scan import ExtractedFields, Game, ImageAnalysis, RawScan

__all__ = [
    "ACTIVE_JOB_STATUSES",
    "ApiResponse",
    "CardRecord",
    "ErrorCode",
    "ExternalServiceError",
    "ExtractedFields",
    "FailureDetail",
    "FailureKind",
    "Game",
    "IdentificationCandidate",
    "IdentificationFailedError",
    "ImageAnalysis",
    "InvalidImageError",
    "ItemStatus",
    "ItemTransitionError",
    "JobConflictError",
    "JobNotFoundError",
    "JobStatus",
    "KnownError",
    "MatchSelection",
    "OutcomeType",
    "PrintingType",
    "RawScan",
    "ResolutionResult",
    "ResolutionSource",
    "ScanIdentification",
    "ServiceNotConfiguredError",
    "can_transition",
    "categorize_error",
    "check_transition",
    "create_unknown_failure",
    "finalize_response",
    "is_finalized",
]
