"""Tests for the contribution amount clamps."""

import pytest
from decimal import Decimal

from presale.ledger.amounts import coerce_amount_input, finalize_amount, to_decimal


CAP = Decimal("2.5")


class TestToDecimal:
    def test_float_goes_through_str(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_trimmed(self) -> None:
        assert to_decimal(" 1.25 ") == Decimal("1.25")

    @pytest.mark.parametrize("raw", ["", "abc", "1..2", "NaN", "Infinity"])
    def test_rejects_non_numbers(self, raw: str) -> None:
        with pytest.raises(ValueError):
            to_decimal(raw)


class TestEditingClamp:
    def test_within_cap_untouched(self) -> None:
        assert coerce_amount_input("1.2345", CAP) == Decimal("1.2345")

    def test_above_cap_snaps_to_cap(self) -> None:
        assert coerce_amount_input("12", CAP) == CAP

    def test_garbage_becomes_zero(self) -> None:
        assert coerce_amount_input("abc", CAP) == Decimal("0")

    def test_minimum_not_enforced_while_editing(self) -> None:
        assert coerce_amount_input("0.001", CAP) == Decimal("0.001")


class TestCommitClamp:
    def test_raised_to_minimum(self) -> None:
        assert finalize_amount("0", CAP) == Decimal("0.010")

    def test_lowered_to_cap(self) -> None:
        assert finalize_amount("99", CAP) == Decimal("2.500")

    def test_truncated_to_three_places(self) -> None:
        assert finalize_amount("1.23456", CAP) == Decimal("1.234")

    def test_never_exceeds_cap_after_rounding(self) -> None:
        cap = Decimal("0.1505")
        assert finalize_amount("0.1505", cap) <= cap

    def test_custom_minimum(self) -> None:
        assert finalize_amount("0.2", CAP, minimum=Decimal("0.5")) == Decimal("0.500")

    def test_cap_below_minimum_yields_cap(self) -> None:
        assert finalize_amount("1", Decimal("0.005")) == Decimal("0.005")
