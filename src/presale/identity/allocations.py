"""Known-allocations directory — handle → (wallet, cap) reference data.

The cap resolver depends only on the ``AllocationDirectory`` protocol so
the static table can be swapped for a real identity directory without
touching verification control flow.

The static table is loaded once and never mutated afterwards.

File format (JSON):
    {
        "monky_king": {"wallet": "7xKX...", "cap": "10.0"},
        "degen_ape": {"wallet": "Ape1...", "cap": "5.0"}
    }
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Protocol

from presale.models.contribution import AllocationRecord


def normalize_handle(raw: str) -> str:
    """Canonical handle form: trimmed, no leading '@', lowercase."""
    handle = raw.strip()
    if handle.startswith("@"):
        handle = handle[1:]
    return handle.strip().lower()


class AllocationDirectory(Protocol):
    """Read-only lookup of known allocations."""

    def resolve_allocation(self, handle: str) -> Optional[AllocationRecord]: ...


class StaticAllocationTable:
    """Immutable in-memory allocation table.

    Handles are normalized on load and on lookup, so "@Monky_King" and
    "monky_king" resolve to the same record.
    """

    def __init__(self, records: list[AllocationRecord] | None = None) -> None:
        table: dict[str, AllocationRecord] = {}
        for record in records or []:
            handle = normalize_handle(record.handle)
            if not handle:
                raise ValueError("Allocation record with blank handle")
            if handle in table:
                raise ValueError(f"Duplicate allocation handle: {handle}")
            table[handle] = AllocationRecord(
                handle=handle,
                wallet_address=record.wallet_address.strip(),
                cap=record.cap,
            )
        self._table: Mapping[str, AllocationRecord] = MappingProxyType(table)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> StaticAllocationTable:
        """Build from ``{handle: {"wallet": ..., "cap": ...}}``."""
        records = []
        for handle, row in data.items():
            try:
                wallet = row["wallet"]
                cap = Decimal(str(row["cap"]))
            except KeyError as e:
                raise ValueError(f"Allocation for {handle!r} missing field {e}") from e
            except InvalidOperation as e:
                raise ValueError(f"Allocation for {handle!r} has invalid cap {row['cap']!r}") from e
            records.append(AllocationRecord(handle=handle, wallet_address=wallet, cap=cap))
        return cls(records)

    @classmethod
    def from_file(cls, path: Path) -> StaticAllocationTable:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Allocations file must hold a JSON object: {path}")
        return cls.from_mapping(data)

    def resolve_allocation(self, handle: str) -> Optional[AllocationRecord]:
        return self._table.get(normalize_handle(handle))

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, str) and normalize_handle(handle) in self._table
