"""Moderation queue — live view of pending submissions across identities.

The queue watches the most recent submissions (newest first, bounded
window) and re-delivers the full PENDING subset on every change. Each
delivery replaces the previous one; nothing is accumulated, so handlers
stay correct if deliveries overlap.

On a watch failure the queue empties its pending set before reporting
the error. Showing nothing is preferred over showing stale items.

Resolution is a conditional write: the store applies the new status
only if the document is still PENDING (or was written without a
status). A second decision on the same submission fails with
ALREADY_RESOLVED rather than overwriting the first. No automatic
retries.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from presale.ledger.submission_ledger import SUBMISSIONS_COLLECTION
from presale.models.contribution import Submission, SubmissionStatus
from presale.models.results import ErrorCode, ResolutionResult
from presale.persistence.event_log import EventKind, EventLog
from presale.persistence.record_store import (
    DocumentNotFound,
    PreconditionFailed,
    RecordStore,
    StoreError,
    StoreQuery,
)

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_WINDOW = 50

PendingCallback = Callable[[list[Submission]], None]
FailureCallback = Callable[[str], None]

_TERMINAL_TARGETS = frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED})
# Documents written without a status are pending too.
_UNRESOLVED_STATUSES = frozenset({SubmissionStatus.PENDING.value, None, ""})


class _Subscription:
    """One live watch. Terminates itself on the first error."""

    def __init__(
        self,
        queue: ModerationQueue,
        on_update: PendingCallback,
        on_error: Optional[FailureCallback],
    ) -> None:
        self._queue = queue
        self._on_update = on_update
        self._on_error = on_error
        self._lock = threading.Lock()
        self._store_unsubscribe: Optional[Callable[[], None]] = None
        self.closed = False

    def attach(self, store_unsubscribe: Callable[[], None]) -> None:
        with self._lock:
            self._store_unsubscribe = store_unsubscribe
            already_closed = self.closed
        if already_closed:
            store_unsubscribe()

    def close(self) -> None:
        with self._lock:
            self.closed = True
            release = self._store_unsubscribe
            self._store_unsubscribe = None
        if release is not None:
            release()

    def is_closed(self) -> bool:
        with self._lock:
            return self.closed

    def handle_snapshot(self, documents: list[dict]) -> None:
        if self.is_closed():
            return
        try:
            pending = [
                Submission.from_document(d)
                for d in documents
                if (d.get("status") or SubmissionStatus.PENDING.value)
                == SubmissionStatus.PENDING.value
            ]
        except ValueError as e:
            self.handle_error(StoreError(f"Malformed submission document: {e}"))
            return
        self._queue._set_pending(pending)
        self._on_update(list(pending))

    def handle_error(self, error: Exception) -> None:
        if self.is_closed():
            return
        message = f"{ErrorCode.SUBSCRIBE_FAILED.value}: {str(error) or 'subscription failed'}"
        self._queue._fail(message)
        self.close()
        if self._on_error is not None:
            self._on_error(message)


class ModerationQueue:
    """Cross-identity pending queue with guarded terminal transitions.

    Usage:
        queue = ModerationQueue(store)
        unsubscribe = queue.subscribe(render_rows, show_error)
        queue.resolve(submission_id, SubmissionStatus.APPROVED, "mod@example.com")
        unsubscribe()
    """

    def __init__(
        self,
        store: RecordStore,
        window: int = DEFAULT_QUEUE_WINDOW,
        collection: str = SUBMISSIONS_COLLECTION,
        event_log: Optional[EventLog] = None,
    ) -> None:
        if window < 1:
            raise ValueError(f"Queue window must be at least 1, got {window}")
        self._store = store
        self._window = window
        self._collection = collection
        self._event_log = event_log
        self._lock = threading.Lock()
        self._pending: list[Submission] = []
        self._last_error: Optional[str] = None

    @property
    def pending(self) -> list[Submission]:
        with self._lock:
            return list(self._pending)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def subscribe(
        self,
        on_update: PendingCallback,
        on_error: Optional[FailureCallback] = None,
    ) -> Callable[[], None]:
        """Start a live subscription. Returns an idempotent unsubscribe."""
        subscription = _Subscription(self, on_update, on_error)
        query = StoreQuery(
            collection=self._collection,
            order_by="created_utc",
            descending=True,
            limit=self._window,
        )
        subscription.attach(
            self._store.watch(query, subscription.handle_snapshot, subscription.handle_error)
        )
        return subscription.close

    def clear(self) -> None:
        """Forget the delivered pending set (used when access is revoked)."""
        with self._lock:
            self._pending = []

    def resolve(
        self,
        submission_id: str,
        target: SubmissionStatus,
        reviewer: str,
        *,
        now: Optional[datetime] = None,
    ) -> ResolutionResult:
        """Move a PENDING submission to APPROVED or REJECTED.

        Raises ValueError if target is not a terminal status.
        """
        if target not in _TERMINAL_TARGETS:
            raise ValueError(
                f"Resolution target must be APPROVED or REJECTED, got {target.value}"
            )

        reviewed = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        fields = {
            "status": target.value,
            "reviewed_utc": reviewed.isoformat(),
            "reviewer": reviewer,
        }
        try:
            self._store.update_fields(
                self._collection,
                submission_id,
                fields,
                expected={"status": _UNRESOLVED_STATUSES},
            )
        except PreconditionFailed as e:
            logger.warning("Submission %s already resolved: %s", submission_id, e)
            return ResolutionResult(
                success=False,
                submission_id=submission_id,
                code=ErrorCode.ALREADY_RESOLVED,
                message=f"ALREADY_RESOLVED: {e}",
            )
        except DocumentNotFound as e:
            logger.error("Cannot resolve missing submission %s", submission_id)
            return ResolutionResult(
                success=False,
                submission_id=submission_id,
                code=ErrorCode.UPDATE_FAILED,
                message=f"UPDATE_FAILED: {e}",
            )
        except StoreError as e:
            logger.error("Resolution write failed for %s: %s", submission_id, e)
            return ResolutionResult(
                success=False,
                submission_id=submission_id,
                code=ErrorCode.UPDATE_FAILED,
                message=f"UPDATE_FAILED: {e}",
            )

        logger.info("Submission %s %s by %s", submission_id, target.value, reviewer)
        if self._event_log is not None:
            self._event_log.record(
                EventKind.SUBMISSION_RESOLVED,
                reviewer,
                {"submission_id": submission_id, "status": target.value},
                now=reviewed,
            )
        return ResolutionResult(
            success=True,
            submission_id=submission_id,
            message=f"{target.value}: Application status updated.",
        )

    def _set_pending(self, pending: list[Submission]) -> None:
        with self._lock:
            self._pending = pending
            self._last_error = None

    def _fail(self, message: str) -> None:
        logger.error("Moderation queue subscription failed: %s", message)
        with self._lock:
            self._pending = []
            self._last_error = message
