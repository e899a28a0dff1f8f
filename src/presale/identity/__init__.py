"""Identity verification and contributor sessions."""

from presale.identity.allocations import (
    AllocationDirectory,
    StaticAllocationTable,
    normalize_handle,
)
from presale.identity.cap_resolver import CapResolver, is_valid_address
from presale.identity.session import ActiveIdentity, ContributorSession, SessionState

__all__ = [
    "AllocationDirectory",
    "StaticAllocationTable",
    "normalize_handle",
    "CapResolver",
    "is_valid_address",
    "ActiveIdentity",
    "ContributorSession",
    "SessionState",
]
