"""Runtime configuration.

Settings come from the process environment, with a ``.env`` file read
through python-dotenv underneath it (real environment variables win).

    PRESALE_END_TIME          ISO-8601 deadline; defaults to now + 24h
    PRESALE_FALLBACK_CAP      cap for handles not in the allocation table
    PRESALE_MIN_CONTRIBUTION  smallest accepted amount
    PRESALE_MIN_PROOF_LENGTH  shortest accepted transaction signature
    PRESALE_QUEUE_WINDOW      most recent submissions the moderator sees
    PRESALE_ADMIN_EMAIL       the single authorized moderator
    PRESALE_ALLOCATIONS_FILE  JSON known-allocations table
    PRESALE_LOG_LEVEL         logging level name
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values, find_dotenv

from presale.identity.allocations import StaticAllocationTable
from presale.identity.cap_resolver import DEFAULT_FALLBACK_CAP
from presale.ledger.amounts import MINIMUM_CONTRIBUTION
from presale.ledger.submission_ledger import MIN_PROOF_LENGTH
from presale.log import configure_logging
from presale.moderation.queue import DEFAULT_QUEUE_WINDOW

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24


def _decimal(values: Mapping[str, Optional[str]], name: str, default: Decimal) -> Decimal:
    raw = values.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"{name} must be a non-negative number, got {raw!r}")
    return value


def _int(values: Mapping[str, Optional[str]], name: str, default: int) -> int:
    raw = values.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ValueError(f"{name} must be >= 1, got {value}")
    return value


def _deadline(values: Mapping[str, Optional[str]], now: datetime) -> datetime:
    raw = values.get("PRESALE_END_TIME")
    if raw is None or not raw.strip():
        deadline = now + timedelta(hours=DEFAULT_WINDOW_HOURS)
        logger.warning(
            "PRESALE_END_TIME not set; window closes %s", deadline.isoformat(),
        )
        return deadline
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        deadline = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"PRESALE_END_TIME must be ISO-8601, got {raw!r}") from e
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return deadline


@dataclass(frozen=True)
class PresaleConfig:
    """Validated presale settings."""
    deadline: datetime
    fallback_cap: Decimal = DEFAULT_FALLBACK_CAP
    minimum_contribution: Decimal = MINIMUM_CONTRIBUTION
    min_proof_length: int = MIN_PROOF_LENGTH
    queue_window: int = DEFAULT_QUEUE_WINDOW
    admin_email: str = ""
    allocations_file: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> PresaleConfig:
        """Build a config from a .env file overlaid with the environment.

        Raises ValueError naming the offending variable on bad input.
        """
        values: dict[str, Optional[str]] = {}
        dotenv_path = str(env_file) if env_file is not None else find_dotenv(usecwd=True)
        if dotenv_path:
            values.update(dotenv_values(dotenv_path))
        values.update(environ if environ is not None else os.environ)

        allocations = (values.get("PRESALE_ALLOCATIONS_FILE") or "").strip()
        log_level = (values.get("PRESALE_LOG_LEVEL") or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"PRESALE_LOG_LEVEL is not a logging level: {log_level!r}")

        return cls(
            deadline=_deadline(values, now or datetime.now(timezone.utc)),
            fallback_cap=_decimal(values, "PRESALE_FALLBACK_CAP", DEFAULT_FALLBACK_CAP),
            minimum_contribution=_decimal(
                values, "PRESALE_MIN_CONTRIBUTION", MINIMUM_CONTRIBUTION,
            ),
            min_proof_length=_int(values, "PRESALE_MIN_PROOF_LENGTH", MIN_PROOF_LENGTH),
            queue_window=_int(values, "PRESALE_QUEUE_WINDOW", DEFAULT_QUEUE_WINDOW),
            admin_email=(values.get("PRESALE_ADMIN_EMAIL") or "").strip(),
            allocations_file=Path(allocations) if allocations else None,
            log_level=log_level,
        )

    def configure_logging(self) -> logging.Logger:
        """Install the package log handler at the configured level."""
        return configure_logging(self.log_level)

    def load_allocations(self) -> StaticAllocationTable:
        """Load the known-allocations table (empty if no file is configured)."""
        if self.allocations_file is None:
            return StaticAllocationTable()
        return StaticAllocationTable.from_file(self.allocations_file)
