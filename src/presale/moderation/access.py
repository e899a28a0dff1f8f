"""Access gate — decides who may operate the moderation queue.

States:
    AUTH_PENDING           initial, until the auth provider reports
    UNAUTHENTICATED        no session
    AUTHENTICATED_DENIED   session present, not authorized
    AUTHENTICATED_ALLOWED  session present and authorized

Only AUTHENTICATED_ALLOWED opens the queue subscription. Every other
state holds no subscription and exposes no pending data: the gate
controls whether the store is read at all, not just what is displayed.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional, Protocol

from presale.auth.provider import AuthProvider, AuthSession
from presale.models.contribution import Submission, SubmissionStatus
from presale.models.results import ErrorCode, ResolutionResult
from presale.moderation.queue import ModerationQueue
from presale.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class AccessState(str, enum.Enum):
    AUTH_PENDING = "auth_pending"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_DENIED = "authenticated_denied"
    AUTHENTICATED_ALLOWED = "authenticated_allowed"


class AuthorizationPolicy(Protocol):
    def is_authorized(self, session: AuthSession) -> bool: ...


class SingleModeratorPolicy:
    """Authorizes exactly one email, compared case-insensitively.

    An empty configured email authorizes nobody.
    """

    def __init__(self, moderator_email: str) -> None:
        self._email = (moderator_email or "").strip().lower()

    def is_authorized(self, session: AuthSession) -> bool:
        if not self._email or not session.email:
            return False
        return session.email.strip().lower() == self._email


class AccessGate:
    """Binds auth state to the moderation queue subscription.

    Usage:
        gate = AccessGate(provider, queue, SingleModeratorPolicy(admin_email))
        gate.start()
        ...
        gate.resolve(submission_id, SubmissionStatus.APPROVED)
        gate.logout()
        gate.close()
    """

    def __init__(
        self,
        auth_provider: AuthProvider,
        queue: ModerationQueue,
        policy: AuthorizationPolicy,
        on_change: Optional[Callable[[AccessState, list[Submission]], None]] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._auth = auth_provider
        self._queue = queue
        self._policy = policy
        self._on_change = on_change
        self._event_log = event_log
        self._state = AccessState.AUTH_PENDING
        self._session: Optional[AuthSession] = None
        self._auth_unsubscribe: Optional[Callable[[], None]] = None
        self._queue_unsubscribe: Optional[Callable[[], None]] = None
        self._error: Optional[str] = None

    @property
    def state(self) -> AccessState:
        return self._state

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def pending(self) -> list[Submission]:
        """Pending submissions visible to this gate (empty unless allowed)."""
        if self._state != AccessState.AUTHENTICATED_ALLOWED:
            return []
        return self._queue.pending

    @property
    def error(self) -> Optional[str]:
        return self._error

    def start(self) -> None:
        if self._auth_unsubscribe is not None:
            return
        self._auth_unsubscribe = self._auth.subscribe_to_session_changes(self._on_session)

    def close(self) -> None:
        """Release the auth subscription and any queue subscription."""
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        self._release_queue()

    def logout(self) -> None:
        self._auth.sign_out()
        self._on_session(None)

    def resolve(self, submission_id: str, target: SubmissionStatus) -> ResolutionResult:
        """Resolve through the gate; the session email is the reviewer."""
        if self._state != AccessState.AUTHENTICATED_ALLOWED or self._session is None:
            return ResolutionResult(
                success=False,
                submission_id=submission_id,
                code=ErrorCode.UNAUTHORIZED,
                message="ACCESS_DENIED: This account is not authorized for admin.",
            )
        self._error = None
        result = self._queue.resolve(submission_id, target, self._session.email)
        if not result.success:
            self._error = result.message
        return result

    def _on_session(self, session: Optional[AuthSession]) -> None:
        previous = self._state
        self._session = session
        if session is None:
            new_state = AccessState.UNAUTHENTICATED
        elif self._policy.is_authorized(session):
            new_state = AccessState.AUTHENTICATED_ALLOWED
        else:
            new_state = AccessState.AUTHENTICATED_DENIED

        self._state = new_state
        if new_state == AccessState.AUTHENTICATED_ALLOWED:
            self._open_queue()
        else:
            self._release_queue()

        if new_state != previous:
            logger.info("Moderation access %s → %s", previous.value, new_state.value)
            self._audit(new_state, session)
            self._emit()

    def _open_queue(self) -> None:
        if self._queue_unsubscribe is not None:
            return
        self._error = None
        self._queue_unsubscribe = self._queue.subscribe(self._on_pending, self._on_queue_error)

    def _release_queue(self) -> None:
        if self._queue_unsubscribe is not None:
            self._queue_unsubscribe()
            self._queue_unsubscribe = None
        self._queue.clear()

    def _on_pending(self, pending: list[Submission]) -> None:
        self._error = None
        self._emit()

    def _on_queue_error(self, message: str) -> None:
        self._error = message
        self._queue_unsubscribe = None
        self._emit()

    def _emit(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state, self.pending)

    def _audit(self, state: AccessState, session: Optional[AuthSession]) -> None:
        if self._event_log is None or session is None:
            return
        if state == AccessState.AUTHENTICATED_ALLOWED:
            self._event_log.record(EventKind.MODERATOR_SIGNED_IN, session.email, {})
        elif state == AccessState.AUTHENTICATED_DENIED:
            self._event_log.record(EventKind.MODERATOR_DENIED, session.email, {})
