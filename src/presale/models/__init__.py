"""Core data models for the presale ledger."""

from presale.models.contribution import (
    SUBMISSION_TRANSITIONS,
    AllocationRecord,
    Identity,
    Submission,
    SubmissionStatus,
)
from presale.models.results import (
    ErrorCode,
    ResolutionResult,
    ServiceResult,
    SubmissionResult,
    VerificationResult,
)

__all__ = [
    "SUBMISSION_TRANSITIONS",
    "AllocationRecord",
    "Identity",
    "Submission",
    "SubmissionStatus",
    "ErrorCode",
    "ResolutionResult",
    "ServiceResult",
    "SubmissionResult",
    "VerificationResult",
]
