"""Authentication boundary for the moderation console."""

from presale.auth.provider import AuthProvider, AuthSession, InMemoryAuthProvider

__all__ = [
    "AuthProvider",
    "AuthSession",
    "InMemoryAuthProvider",
]
