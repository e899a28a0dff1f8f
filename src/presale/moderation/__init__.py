"""Moderation queue and its access gate."""

from presale.moderation.access import (
    AccessGate,
    AccessState,
    AuthorizationPolicy,
    SingleModeratorPolicy,
)
from presale.moderation.queue import DEFAULT_QUEUE_WINDOW, ModerationQueue

__all__ = [
    "AccessGate",
    "AccessState",
    "AuthorizationPolicy",
    "SingleModeratorPolicy",
    "DEFAULT_QUEUE_WINDOW",
    "ModerationQueue",
]
