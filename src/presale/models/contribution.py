"""Contribution models — identities, allocations, submissions.

All monetary values use Decimal for exact arithmetic. No floats in finance.

Invariants enforced by these models:
- Submission status moves PENDING → APPROVED | REJECTED exactly once
- Terminal statuses have no outgoing transitions
- Allocation caps are never negative
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional


class SubmissionStatus(str, enum.Enum):
    """Lifecycle status of a contribution submission.

    State machine:
        PENDING → APPROVED
        PENDING → REJECTED
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return not SUBMISSION_TRANSITIONS[self]


SUBMISSION_TRANSITIONS: Dict[SubmissionStatus, frozenset] = {
    SubmissionStatus.PENDING: frozenset({
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    }),
    SubmissionStatus.APPROVED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}


@dataclass(frozen=True)
class Identity:
    """A verified (handle, wallet) pair for one participant.

    The handle is stored normalized: no leading marker, lowercase.
    """
    handle: str
    wallet_address: str

    @property
    def display_handle(self) -> str:
        return f"@{self.handle}"


@dataclass(frozen=True)
class AllocationRecord:
    """A row of the known-allocations table. Read-only reference data."""
    handle: str
    wallet_address: str
    cap: Decimal

    def __post_init__(self) -> None:
        if self.cap < Decimal("0"):
            raise ValueError(
                f"Allocation cap must be non-negative, got {self.cap} for {self.handle}"
            )


@dataclass(frozen=True)
class Submission:
    """One proof-of-contribution record.

    Immutable value: a resolution produces a new Submission via
    ``resolved()`` rather than mutating this one.
    """
    id: str
    identity_handle: str
    proof_reference: str
    amount: Decimal
    status: SubmissionStatus
    created_utc: datetime
    reviewed_utc: Optional[datetime] = None
    reviewer: Optional[str] = None

    def can_transition_to(self, target: SubmissionStatus) -> bool:
        return target in SUBMISSION_TRANSITIONS.get(self.status, frozenset())

    def resolved(
        self,
        target: SubmissionStatus,
        reviewer: str,
        now: datetime,
    ) -> Submission:
        """Return a copy moved to a terminal status.

        Raises ValueError if the transition is not legal.
        """
        if not self.can_transition_to(target):
            allowed = SUBMISSION_TRANSITIONS.get(self.status, frozenset())
            raise ValueError(
                f"Invalid submission transition: {self.status.value} → {target.value}. "
                f"Allowed: {', '.join(s.value for s in allowed) or 'none'}"
            )
        return Submission(
            id=self.id,
            identity_handle=self.identity_handle,
            proof_reference=self.proof_reference,
            amount=self.amount,
            status=target,
            created_utc=self.created_utc,
            reviewed_utc=now,
            reviewer=reviewer,
        )

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the persisted document shape."""
        return {
            "id": self.id,
            "identity_handle": self.identity_handle,
            "proof_reference": self.proof_reference,
            "amount": str(self.amount),
            "status": self.status.value,
            "created_utc": _format_utc(self.created_utc),
            "reviewed_utc": _format_utc(self.reviewed_utc) if self.reviewed_utc else None,
            "reviewer": self.reviewer,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> Submission:
        """Deserialize from a stored document.

        Documents written without a status are treated as PENDING.

        Raises ValueError for any missing or unconvertible field.
        """
        try:
            reviewed = data.get("reviewed_utc")
            return cls(
                id=data["id"],
                identity_handle=data["identity_handle"],
                proof_reference=data["proof_reference"],
                amount=Decimal(str(data["amount"])),
                status=SubmissionStatus(data.get("status") or SubmissionStatus.PENDING.value),
                created_utc=_parse_utc(data["created_utc"]),
                reviewed_utc=_parse_utc(reviewed) if reviewed else None,
                reviewer=data.get("reviewer"),
            )
        except (KeyError, TypeError, AttributeError, InvalidOperation, ValueError) as e:
            doc_id = data.get("id") if isinstance(data, dict) else None
            raise ValueError(f"Malformed submission document {doc_id!r}: {e!r}") from e


def _format_utc(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _parse_utc(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
