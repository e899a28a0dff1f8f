"""Presale service — facade over the contributor and moderator flows.

Contributor flow:
    verify_identity → (ledger reload on identity change) → submit_contribution

Moderator flow:
    moderation_gate(auth_provider) → AccessGate over a ModerationQueue

All operations produce typed results. Every verification, submission
attempt and resolution is recorded in the audit event log when one is
configured.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from presale.auth.provider import AuthProvider
from presale.config import PresaleConfig
from presale.countdown.gate import CountdownGate, CountdownState
from presale.countdown.timer import CountdownTimer
from presale.identity.allocations import AllocationDirectory
from presale.identity.cap_resolver import CapResolver
from presale.identity.session import ActiveIdentity, ContributorSession
from presale.ledger.amounts import AmountLike, coerce_amount_input, finalize_amount
from presale.ledger.submission_ledger import SubmissionLedger
from presale.models.contribution import Submission
from presale.models.results import ErrorCode, ServiceResult
from presale.moderation.access import AccessGate, AccessState, SingleModeratorPolicy
from presale.moderation.queue import ModerationQueue
from presale.persistence.event_log import EventKind, EventLog
from presale.persistence.record_store import RecordStore, StoreError

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PresaleService:
    """Unified presale facade.

    Usage:
        config = PresaleConfig.from_env()
        service = PresaleService(config, JsonFileRecordStore(path))

        result = service.verify_identity("@monky_king", wallet)
        amount = service.finalize_amount("12")      # clamped to the cap
        result = service.submit_contribution(tx_signature, amount)

        gate = service.moderation_gate(auth_provider)
        gate.start()
    """

    def __init__(
        self,
        config: PresaleConfig,
        store: RecordStore,
        directory: Optional[AllocationDirectory] = None,
        event_log: Optional[EventLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._config = config
        self._store = store
        self._event_log = event_log
        self._clock = clock
        self._resolver = CapResolver(
            directory if directory is not None else config.load_allocations(),
            fallback_cap=config.fallback_cap,
        )
        self._session = ContributorSession()
        self._ledger = SubmissionLedger(
            store,
            minimum_contribution=config.minimum_contribution,
            min_proof_length=config.min_proof_length,
        )
        self._gate = CountdownGate()
        self._timers: list[CountdownTimer] = []
        self._session.on_identity_change(self._on_identity_change)

    # ------------------------------------------------------------------
    # Contributor flow
    # ------------------------------------------------------------------

    @property
    def active_identity(self) -> Optional[ActiveIdentity]:
        return self._session.active

    def verify_identity(
        self,
        handle: str,
        wallet: str,
        *,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Verify credentials and make them the active session identity.

        A new handle reloads the ledger replica from the store.
        """
        now = now or self._clock()
        result = self._resolver.verify(handle, wallet)
        if not result.success:
            self._audit(
                EventKind.IDENTITY_REJECTED,
                handle.strip() or "<blank>",
                {"code": result.code.value},
                now,
            )
            return ServiceResult(success=False, errors=[result.message], code=result.code)

        try:
            active = self._session.activate(result.identity, result.cap, now=now)
        except StoreError as e:
            logger.error("Could not load ledger for @%s: %s", result.identity.handle, e)
            self._session.clear()
            return ServiceResult(
                success=False,
                errors=[f"STORE_READ_FAILED: {e}"],
                code=ErrorCode.STORE_READ_FAILED,
            )

        self._audit(
            EventKind.IDENTITY_VERIFIED,
            active.identity.handle,
            {"wallet": active.identity.wallet_address, "cap": str(active.cap)},
            now,
        )
        return ServiceResult(
            success=True,
            data={
                "handle": active.identity.display_handle,
                "wallet": active.identity.wallet_address,
                "cap": active.cap,
                "message": result.message,
            },
        )

    def sign_out(self) -> None:
        """Forget the active identity and its ledger replica."""
        self._session.clear()

    def amount_input(self, raw: AmountLike) -> Decimal:
        """Clamp an amount being edited against the active cap."""
        return coerce_amount_input(raw, self._active_cap())

    def finalize_amount(self, raw: AmountLike) -> Decimal:
        """Clamp a committed amount into [minimum, cap]."""
        return finalize_amount(raw, self._active_cap(), self._config.minimum_contribution)

    def submit_contribution(
        self,
        proof_reference: str,
        amount: AmountLike,
        *,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        active = self._session.active
        if active is None:
            return ServiceResult(
                success=False,
                errors=["NO_ACTIVE_IDENTITY: Verify your handle and wallet first."],
                code=ErrorCode.NO_ACTIVE_IDENTITY,
            )

        now = now or self._clock()
        window = self.countdown(now=now)
        result = self._ledger.append(
            active.identity.handle,
            proof_reference,
            amount,
            cap=active.cap,
            window_closed=window.closed,
            now=now,
        )
        if not result.success:
            self._audit(
                EventKind.SUBMISSION_REJECTED,
                active.identity.handle,
                {"code": result.code.value},
                now,
            )
            return ServiceResult(success=False, errors=[result.message], code=result.code)

        submission = result.submission
        self._audit(
            EventKind.SUBMISSION_APPENDED,
            active.identity.handle,
            {
                "submission_id": submission.id,
                "amount": str(submission.amount),
                "proof_reference": submission.proof_reference,
            },
            now,
        )
        return ServiceResult(
            success=True,
            data={
                "submission_id": submission.id,
                "amount": submission.amount,
                "status": submission.status.value,
                "message": result.message,
            },
        )

    def history(self) -> list[Submission]:
        """The active identity's submissions, most recent first."""
        return self._ledger.history

    # ------------------------------------------------------------------
    # Submission window
    # ------------------------------------------------------------------

    def countdown(self, *, now: Optional[datetime] = None) -> CountdownState:
        return self._gate.tick(now or self._clock(), self._config.deadline)

    def start_countdown(
        self,
        on_tick: Callable[[CountdownState], None],
        period_seconds: float = 1.0,
    ) -> CountdownTimer:
        """Start a background countdown; stopped by ``close()``."""
        timer = CountdownTimer(
            self._gate,
            self._config.deadline,
            on_tick,
            period_seconds=period_seconds,
            clock=self._clock,
        )
        self._timers.append(timer)
        timer.start()
        return timer

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    def moderation_gate(
        self,
        auth_provider: AuthProvider,
        on_change: Optional[Callable[[AccessState, list[Submission]], None]] = None,
    ) -> AccessGate:
        """Build an access gate for the configured moderator."""
        queue = ModerationQueue(
            self._store,
            window=self._config.queue_window,
            event_log=self._event_log,
        )
        return AccessGate(
            auth_provider,
            queue,
            SingleModeratorPolicy(self._config.admin_email),
            on_change=on_change,
            event_log=self._event_log,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def status(self, *, now: Optional[datetime] = None) -> dict[str, Any]:
        window = self.countdown(now=now)
        active = self._session.active
        return {
            "window": window.display(),
            "window_closed": window.closed,
            "deadline": self._config.deadline.isoformat(),
            "identity": active.identity.display_handle if active else None,
            "cap": str(active.cap) if active else None,
            "submissions": len(self._ledger.history),
            "audit_events": self._event_log.count if self._event_log else 0,
        }

    def close(self) -> None:
        """Stop every countdown timer started by this service."""
        for timer in self._timers:
            timer.stop()
        self._timers = []

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _active_cap(self) -> Decimal:
        active = self._session.active
        if active is None:
            raise ValueError("No verified identity; cap is unknown")
        return active.cap

    def _on_identity_change(self, active: Optional[ActiveIdentity]) -> None:
        if active is None:
            self._ledger.reset()
            return
        self._ledger.load(active.identity.handle)

    def _audit(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now=now)
