"""Contribution amount input policy.

Two clamps apply to user-entered amounts before they reach the ledger:

- while editing, unparseable input becomes 0 and anything above the cap
  snaps down to the cap (the minimum is not enforced mid-edit);
- on commit, the value is raised to the minimum contribution, then
  lowered to the cap, then truncated to three decimal places.

The ledger re-checks the range at append time because the cap may
have changed since the amount was last clamped.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

MINIMUM_CONTRIBUTION = Decimal("0.01")
AMOUNT_QUANTUM = Decimal("0.001")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert to Decimal, going through str for floats.

    Raises ValueError for unparseable or non-finite input.
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def coerce_amount_input(raw: AmountLike, cap: Decimal) -> Decimal:
    """Clamp a value while it is being edited."""
    try:
        amount = to_decimal(raw)
    except ValueError:
        amount = Decimal("0")
    if amount > cap:
        amount = cap
    return amount


def finalize_amount(
    value: AmountLike,
    cap: Decimal,
    minimum: Decimal = MINIMUM_CONTRIBUTION,
) -> Decimal:
    """Clamp a committed value into [minimum, cap] at 3 decimal places.

    If the cap itself is below the minimum the result is the cap, which
    the ledger will then refuse.
    """
    amount = coerce_amount_input(value, cap)
    if amount < minimum:
        amount = minimum
    if amount > cap:
        amount = cap
    return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)
