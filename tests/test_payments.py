"""
Tests for amount parsing and payment authorizers.
"""
from decimal import Decimal

import pytest

from token_ledger.core.errors import ErrorCode, InvalidAmountError
from token_ledger.core.payments import (
    approve_positive_amount,
    ceiling_authorizer,
    to_amount,
)


class TestToAmount:
    """Test amount conversion."""

    @pytest.mark.parametrize("value,expected", [
        ("25.0", Decimal("25.0")),
        (25, Decimal("25")),
        (25.1, Decimal("25.1")),
        (Decimal("0.01"), Decimal("0.01")),
        (" 7 ", Decimal("7")),
    ])
    def test_valid_amounts(self, value, expected):
        assert to_amount(value) == expected

    @pytest.mark.parametrize("value", [0, "0", -1, "-0.5", "abc", "", None, True, "NaN", "inf"])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidAmountError) as excinfo:
            to_amount(value)
        assert excinfo.value.code == ErrorCode.INVALID_AMOUNT

    def test_zero_allowed_for_opening_balance(self):
        assert to_amount("0", allow_zero=True) == Decimal("0")

    def test_negative_rejected_even_with_zero_allowed(self):
        with pytest.raises(InvalidAmountError):
            to_amount("-1", allow_zero=True)

    @pytest.mark.parametrize("value", ["1e-30", "0.000000001", "1e999999999", "1000000000000000"])
    def test_rejects_unrepresentable_amounts(self, value):
        """Amounts too fine or too large for exact balance arithmetic."""
        with pytest.raises(InvalidAmountError) as excinfo:
            to_amount(value)
        assert excinfo.value.code == ErrorCode.INVALID_AMOUNT

    def test_accepts_amounts_at_the_bounds(self):
        assert to_amount("0.00000001") == Decimal("0.00000001")
        assert to_amount("999999999999999.99999999") == Decimal("999999999999999.99999999")
        assert to_amount("12.500000000") == Decimal("12.5")


class TestAuthorizers:
    """Test payment authorization stubs."""

    def test_default_approves_positive(self):
        assert approve_positive_amount("ACC001", Decimal("0.01")) is True
        assert approve_positive_amount("ACC001", Decimal("0")) is False

    def test_ceiling_authorizer(self):
        authorize = ceiling_authorizer("100")

        assert authorize("ACC001", Decimal("100")) is True
        assert authorize("ACC001", Decimal("100.01")) is False
        assert authorize("ACC001", Decimal("0")) is False

    def test_ceiling_must_be_positive(self):
        with pytest.raises(InvalidAmountError):
            ceiling_authorizer(0)
