"""Cap resolver — verifies a claimed identity and derives its cap.

Checks run in a fixed order and stop at the first failure:
1. Both handle and wallet present after trimming.
2. Wallet matches the Solana address grammar (base-58, 32-44 chars).
3. If the handle is a known allocation, the wallet must match the
   recorded wallet exactly. A mismatch is a hard rejection: the cap is
   never resolved and the fallback cap is never substituted.

Unknown handles with well-formed input always resolve to the fallback cap.

The resolver is pure: persisting the verified identity is the caller's job.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal

from presale.identity.allocations import AllocationDirectory, normalize_handle
from presale.models.contribution import Identity
from presale.models.results import ErrorCode, VerificationResult

logger = logging.getLogger(__name__)

SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

DEFAULT_FALLBACK_CAP = Decimal("0.15")


def is_valid_address(wallet: str) -> bool:
    return SOLANA_ADDRESS_RE.match(wallet) is not None


class CapResolver:
    """Maps a claimed (handle, wallet) pair to a verified identity and cap.

    Usage:
        resolver = CapResolver(StaticAllocationTable.from_file(path))
        result = resolver.verify("@monky_king", "7xKX...")
        if result.success:
            session.activate(result.identity, result.cap)
    """

    def __init__(
        self,
        directory: AllocationDirectory,
        fallback_cap: Decimal = DEFAULT_FALLBACK_CAP,
    ) -> None:
        if fallback_cap < Decimal("0"):
            raise ValueError(f"Fallback cap must be non-negative, got {fallback_cap}")
        self._directory = directory
        self._fallback_cap = fallback_cap

    @property
    def fallback_cap(self) -> Decimal:
        return self._fallback_cap

    def verify(self, handle_input: str, wallet_input: str) -> VerificationResult:
        handle = normalize_handle(handle_input or "")
        wallet = (wallet_input or "").strip()

        if not handle or not wallet:
            return self._reject(
                ErrorCode.CREDENTIALS_MISSING,
                "CREDENTIALS_MISSING: Input X Handle and Wallet.",
                handle,
            )

        if not is_valid_address(wallet):
            return self._reject(
                ErrorCode.ADDRESS_FORMAT_INVALID,
                "FORMAT_ERROR: Invalid Solana Address.",
                handle,
            )

        record = self._directory.resolve_allocation(handle)
        if record is not None and record.wallet_address != wallet:
            return self._reject(
                ErrorCode.WALLET_MISMATCH,
                "SECURITY_WARNING: Wallet mismatch with records.",
                handle,
            )

        cap = record.cap if record is not None else self._fallback_cap
        logger.info(
            "Verified @%s (%s allocation), cap %s",
            handle, "known" if record is not None else "fallback", cap,
        )
        return VerificationResult(
            success=True,
            identity=Identity(handle=handle, wallet_address=wallet),
            cap=cap,
            message=f"UPLINK_STABLE: Verified @{handle}. Detected Cap: {cap} SOL",
        )

    def _reject(self, code: ErrorCode, message: str, handle: str) -> VerificationResult:
        logger.warning("Verification rejected for @%s: %s", handle or "<blank>", code.value)
        return VerificationResult.failed(code, message)
