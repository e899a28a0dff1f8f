"""Contributor session — the active verified identity and its frozen cap.

A session starts UNVERIFIED. Each successful verification activates a
new (identity, cap) pair; the cap stays frozen until the next
verification. Listeners are told whenever the active handle changes so
per-identity read replicas can be reloaded rather than merged.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from presale.models.contribution import Identity


class SessionState(str, enum.Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


@dataclass(frozen=True)
class ActiveIdentity:
    """Snapshot of the verified identity bound to a session."""
    identity: Identity
    cap: Decimal
    verified_utc: datetime


IdentityListener = Callable[[Optional[ActiveIdentity]], None]


class ContributorSession:
    """Holds at most one verified identity per client session.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._active: Optional[ActiveIdentity] = None
        self._listeners: list[IdentityListener] = []

    @property
    def state(self) -> SessionState:
        return SessionState.VERIFIED if self._active else SessionState.UNVERIFIED

    @property
    def active(self) -> Optional[ActiveIdentity]:
        return self._active

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener fired when the active handle changes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def activate(
        self,
        identity: Identity,
        cap: Decimal,
        *,
        now: Optional[datetime] = None,
    ) -> ActiveIdentity:
        """Bind a freshly verified identity and cap to this session.

        Re-verifying the same handle refreshes the cap without firing
        identity-change listeners.
        """
        previous = self._active
        self._active = ActiveIdentity(
            identity=identity,
            cap=cap,
            verified_utc=now or datetime.now(timezone.utc),
        )
        if previous is None or previous.identity.handle != identity.handle:
            self._fire(self._active)
        return self._active

    def clear(self) -> None:
        """Drop the active identity (sign-out or reset)."""
        if self._active is None:
            return
        self._active = None
        self._fire(None)

    def _fire(self, active: Optional[ActiveIdentity]) -> None:
        for listener in list(self._listeners):
            listener(active)
