"""Typed operation results and the error taxonomy.

Every core operation returns a discriminated result instead of raising
for user-recoverable failures. Programming errors still raise.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from presale.models.contribution import Identity, Submission


class ErrorCode(str, enum.Enum):
    """Recoverable failure classes. None is fatal to the process."""
    CREDENTIALS_MISSING = "CREDENTIALS_MISSING"
    ADDRESS_FORMAT_INVALID = "ADDRESS_FORMAT_INVALID"
    WALLET_MISMATCH = "WALLET_MISMATCH"
    WINDOW_CLOSED = "WINDOW_CLOSED"
    PROOF_INVALID = "PROOF_INVALID"
    AMOUNT_OUT_OF_RANGE = "AMOUNT_OUT_OF_RANGE"
    STORE_READ_FAILED = "STORE_READ_FAILED"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"
    UPDATE_FAILED = "UPDATE_FAILED"
    SUBSCRIBE_FAILED = "SUBSCRIBE_FAILED"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NO_ACTIVE_IDENTITY = "NO_ACTIVE_IDENTITY"


@dataclass(frozen=True)
class VerificationResult:
    """Result of CapResolver.verify."""
    success: bool
    identity: Optional[Identity] = None
    cap: Optional[Decimal] = None
    code: Optional[ErrorCode] = None
    message: str = ""

    @staticmethod
    def failed(code: ErrorCode, message: str) -> VerificationResult:
        return VerificationResult(success=False, code=code, message=message)


@dataclass(frozen=True)
class SubmissionResult:
    """Result of SubmissionLedger.append."""
    success: bool
    submission: Optional[Submission] = None
    code: Optional[ErrorCode] = None
    message: str = ""

    @staticmethod
    def failed(code: ErrorCode, message: str) -> SubmissionResult:
        return SubmissionResult(success=False, code=code, message=message)


@dataclass(frozen=True)
class ResolutionResult:
    """Result of ModerationQueue.resolve."""
    success: bool
    submission_id: str = ""
    code: Optional[ErrorCode] = None
    message: str = ""


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    code: Optional[ErrorCode] = None
