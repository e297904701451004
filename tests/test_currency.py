"""
Test suite for currency and money module
"""

import pytest
from decimal import Decimal

from pos_credit.currency import Money, Currency, currency_from_code, decimal_from_string


class TestMoney:
    """Test Money class functionality"""

    def test_money_creation(self):
        """Test amounts are rounded to currency precision"""
        assert Money(Decimal("100.456"), Currency.USD).amount == Decimal("100.46")
        assert Money(Decimal("100.445"), Currency.USD).amount == Decimal("100.45")
        assert Money(Decimal("5000.5"), Currency.RWF).amount == Decimal("5001")

    def test_non_decimal_input_converted(self):
        assert Money("12.5", Currency.USD).amount == Decimal("12.50")

    def test_amount_beyond_precision_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal("1" + "0" * 40), Currency.USD)
        with pytest.raises(ValueError):
            Money(Decimal("NaN"), Currency.USD)

    def test_money_arithmetic(self):
        a = Money(Decimal("1000"), Currency.USD)
        b = Money(Decimal("200"), Currency.USD)

        assert a - b == Money(Decimal("800"), Currency.USD)
        assert a + b == Money(Decimal("1200"), Currency.USD)
        assert b * Decimal("3") == Money(Decimal("600"), Currency.USD)
        assert a / Decimal("3") == Money(Decimal("333.33"), Currency.USD)

    def test_money_comparison(self):
        small = Money(Decimal("10"), Currency.USD)
        large = Money(Decimal("20"), Currency.USD)

        assert small < large
        assert large >= small
        assert small <= Money(Decimal("10.00"), Currency.USD)
        assert small != Money(Decimal("10"), Currency.EUR)

    def test_money_currency_mismatch(self):
        usd = Money(Decimal("10"), Currency.USD)
        eur = Money(Decimal("10"), Currency.EUR)

        with pytest.raises(ValueError):
            usd + eur
        with pytest.raises(ValueError):
            usd > eur

    def test_money_state_checks(self):
        assert Money.zero(Currency.USD).is_zero()
        assert Money(Decimal("0.01"), Currency.USD).is_positive()
        assert Money(Decimal("-0.01"), Currency.USD).is_negative()

    def test_money_string_formatting(self):
        assert Money(Decimal("1250"), Currency.USD).to_string() == "USD 1,250.00"
        assert Money(Decimal("1250"), Currency.USD).format() == "$1,250.00"
        assert Money(Decimal("5000"), Currency.RWF).format() == "5,000 FRw"
        assert Money(Decimal("300"), Currency.KES).format() == "KSh300.00"


class TestUtilityFunctions:
    """Test parsing helpers"""

    def test_currency_from_code(self):
        assert currency_from_code(" usd ") == Currency.USD
        assert currency_from_code("RWF") == Currency.RWF

    def test_unknown_currency_code(self):
        with pytest.raises(ValueError):
            currency_from_code("XYZ")

    def test_decimal_from_string_valid(self):
        assert decimal_from_string("1,250.50") == Decimal("1250.50")
        assert decimal_from_string("$800") == Decimal("800")
        assert decimal_from_string("12,5") == Decimal("12.5")
        assert decimal_from_string("1,000") == Decimal("1000")
        assert decimal_from_string(42) == Decimal("42")

    @pytest.mark.parametrize("value", ["", "abc", None])
    def test_decimal_from_string_invalid(self, value):
        with pytest.raises(ValueError):
            decimal_from_string(value)
