"""Auth provider boundary.

The moderation console consumes only two capabilities from whatever
authentication service backs it: a session-change subscription and
sign-out. ``InMemoryAuthProvider`` implements them for tests and
single-process deployments.

Session resolution is asynchronous in real providers: subscribers hear
nothing until the provider knows whether a session exists. The in-memory
provider models this with ``resolved=False`` and ``complete_resolution``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """An authenticated session. Only ``email`` is relied upon."""
    email: str
    uid: str = field(default_factory=lambda: uuid.uuid4().hex)


SessionCallback = Callable[[Optional[AuthSession]], None]


class AuthProvider(Protocol):
    def subscribe_to_session_changes(self, callback: SessionCallback) -> Callable[[], None]: ...

    def sign_out(self) -> None: ...


class InMemoryAuthProvider:
    """Process-local auth provider.

    Usage:
        provider = InMemoryAuthProvider()
        unsubscribe = provider.subscribe_to_session_changes(print)
        provider.sign_in("moderator@example.com")
        provider.sign_out()
    """

    def __init__(
        self,
        session: Optional[AuthSession] = None,
        resolved: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._session = session
        self._resolved = resolved
        self._subscribers: list[SessionCallback] = []

    @property
    def current_session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe_to_session_changes(self, callback: SessionCallback) -> Callable[[], None]:
        """Register a callback; it fires now if the session is resolved."""
        with self._lock:
            self._subscribers.append(callback)
            deliver_now = self._resolved
            session = self._session
        if deliver_now:
            callback(session)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def complete_resolution(self, session: Optional[AuthSession] = None) -> None:
        """Finish the initial session lookup and notify subscribers."""
        with self._lock:
            self._resolved = True
            self._session = session
        self._publish()

    def sign_in(self, email: str) -> AuthSession:
        email = email.strip()
        if not email:
            raise ValueError("Cannot sign in with a blank email")
        session = AuthSession(email=email)
        with self._lock:
            self._resolved = True
            self._session = session
        logger.info("Signed in %s", email)
        self._publish()
        return session

    def sign_out(self) -> None:
        with self._lock:
            self._resolved = True
            had_session = self._session is not None
            self._session = None
        if had_session:
            logger.info("Signed out")
        self._publish()

    def _publish(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            session = self._session
        for callback in subscribers:
            callback(session)
