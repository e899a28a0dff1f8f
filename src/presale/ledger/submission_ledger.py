"""Submission ledger — per-identity, append-only contribution history.

The canonical copy of every submission lives in the record store's
``submissions`` collection, one document per submission, grouped by the
normalized handle. The ledger keeps an in-memory read replica of one
identity's slice, most-recent-first.

Append validation order is fixed and never reordered:
1. window closed   → WINDOW_CLOSED
2. proof reference → PROOF_INVALID
3. amount range    → AMOUNT_OUT_OF_RANGE

On success the new PENDING submission is prepended to the replica, then
the identity's whole slice is written back as one atomic partition
replace. The slice is re-read from the store just before the write, so
resolutions made since the last load survive. The persisted slice grows
by exactly one entry; nothing is removed or altered.

The replica and the store are not transactional. If the store write
fails, the replica keeps the optimistic entry and the append reports
STORE_WRITE_FAILED; callers must treat the submission as not recorded.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from presale.identity.allocations import normalize_handle
from presale.ledger.amounts import MINIMUM_CONTRIBUTION, AmountLike, to_decimal
from presale.models.contribution import Submission, SubmissionStatus
from presale.models.results import ErrorCode, SubmissionResult
from presale.persistence.record_store import RecordStore, StoreError, StoreQuery

logger = logging.getLogger(__name__)

SUBMISSIONS_COLLECTION = "submissions"
HANDLE_FIELD = "identity_handle"
MIN_PROOF_LENGTH = 32


class SubmissionLedger:
    """Client-side view of one identity's submission history.

    Usage:
        ledger = SubmissionLedger(store)
        ledger.load("monky_king")
        result = ledger.append(
            "monky_king", tx_signature, Decimal("10.0"),
            cap=Decimal("10.0"), window_closed=False,
        )
    """

    def __init__(
        self,
        store: RecordStore,
        minimum_contribution: Decimal = MINIMUM_CONTRIBUTION,
        min_proof_length: int = MIN_PROOF_LENGTH,
        collection: str = SUBMISSIONS_COLLECTION,
    ) -> None:
        self._store = store
        self._minimum = minimum_contribution
        self._min_proof_length = min_proof_length
        self._collection = collection
        self._handle: Optional[str] = None
        self._history: list[Submission] = []

    @property
    def handle(self) -> Optional[str]:
        """Handle whose slice the replica currently holds."""
        return self._handle

    @property
    def history(self) -> list[Submission]:
        return list(self._history)

    @property
    def minimum_contribution(self) -> Decimal:
        return self._minimum

    def load(self, identity_handle: str) -> list[Submission]:
        """Replace the replica with the stored slice for this handle.

        Raises StoreError if the store cannot be read.
        """
        handle = normalize_handle(identity_handle)
        self._handle = handle
        self._history = []
        self._history = self._read_slice(handle)
        return list(self._history)

    def reset(self) -> None:
        """Drop the replica (identity signed out)."""
        self._handle = None
        self._history = []

    def append(
        self,
        identity_handle: str,
        proof_reference: str,
        amount: AmountLike,
        cap: Decimal,
        window_closed: bool,
        *,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        handle = normalize_handle(identity_handle)

        if window_closed:
            return self._reject(
                ErrorCode.WINDOW_CLOSED, "PHASE_END: Presale window is closed.", handle,
            )

        proof = (proof_reference or "").strip()
        if len(proof) < self._min_proof_length:
            return self._reject(
                ErrorCode.PROOF_INVALID, "HASH_INVALID: Enter valid TX signature.", handle,
            )

        try:
            value = to_decimal(amount)
        except ValueError:
            value = None
        if value is None or not (self._minimum <= value <= cap):
            return self._reject(
                ErrorCode.AMOUNT_OUT_OF_RANGE,
                f"AMOUNT_OUT_OF_RANGE: Amount must be between {self._minimum} and {cap} SOL.",
                handle,
            )

        submission = Submission(
            id=str(uuid.uuid4()),
            identity_handle=handle,
            proof_reference=proof,
            amount=value,
            status=SubmissionStatus.PENDING,
            created_utc=now or datetime.now(timezone.utc),
        )

        if handle != self._handle:
            self._handle = handle
            self._history = []
        self._history.insert(0, submission)

        try:
            stored = self._read_slice(handle)
            updated = [submission] + [s for s in stored if s.id != submission.id]
            self._store.replace_partition(
                self._collection,
                HANDLE_FIELD,
                handle,
                [s.to_document() for s in updated],
            )
        except StoreError as e:
            logger.error("Ledger write failed for @%s: %s", handle, e)
            return SubmissionResult.failed(
                ErrorCode.STORE_WRITE_FAILED, f"STORE_WRITE_FAILED: {e}",
            )

        self._history = updated
        logger.info(
            "Recorded submission %s for @%s: %s SOL", submission.id, handle, value,
        )
        return SubmissionResult(
            success=True,
            submission=submission,
            message="TRANSMISSION_COMPLETE: Proof submitted for audit.",
        )

    def _read_slice(self, handle: str) -> list[Submission]:
        query = StoreQuery(
            collection=self._collection,
            where=((HANDLE_FIELD, handle),),
            order_by="created_utc",
            descending=True,
        )
        return [Submission.from_document(d) for d in self._store.query(query)]

    def _reject(self, code: ErrorCode, message: str, handle: str) -> SubmissionResult:
        logger.info("Submission refused for @%s: %s", handle, code.value)
        return SubmissionResult.failed(code, message)
