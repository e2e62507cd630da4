"""Unit tests for MoneyWithSign and minor-unit conversion."""

from decimal import Decimal

import pytest

from utils.money import MoneySign, MoneyWithSign, minor_unit_exponent


class TestMinorUnitExponent:
    def test_default_is_two(self):
        assert minor_unit_exponent("USD") == 2
        assert minor_unit_exponent("EUR") == 2

    def test_zero_decimal_currencies(self):
        assert minor_unit_exponent("JPY") == 0
        assert minor_unit_exponent("krw") == 0

    def test_crypto(self):
        assert minor_unit_exponent("BTC") == 8
        assert minor_unit_exponent("ETH") == 9


class TestFromFloat:
    def test_positive_value(self):
        money = MoneyWithSign.from_float("USD", 500.0)
        assert money == MoneyWithSign(50000, "USD", MoneySign.POSITIVE)

    def test_negative_value_sets_sign(self):
        money = MoneyWithSign.from_float("USD", -410.1)
        assert money.amount == 41010
        assert money.sign == MoneySign.NEGATIVE
        assert money.signed_amount == -41010

    def test_rounds_half_up(self):
        assert MoneyWithSign.from_float("USD", "0.005").amount == 1
        assert MoneyWithSign.from_float("USD", "0.004").amount == 0

    def test_eth_uses_gwei(self):
        money = MoneyWithSign.from_float("ETH", Decimal("1.5"))
        assert money.amount == 1_500_000_000

    def test_zero_is_positive(self):
        assert MoneyWithSign.from_float("USD", 0).sign == MoneySign.POSITIVE


class TestMoneyWithSign:
    def test_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            MoneyWithSign(-1, "USD")

    def test_from_signed(self):
        assert MoneyWithSign.from_signed("USD", -250) == MoneyWithSign(250, "USD", MoneySign.NEGATIVE)

    def test_to_decimal(self):
        assert MoneyWithSign(1234, "USD", MoneySign.NEGATIVE).to_decimal() == Decimal("-12.34")
        assert MoneyWithSign(500, "JPY").to_decimal() == Decimal("500")

    def test_dict_shape(self):
        money = MoneyWithSign(50000, "USD")
        assert money.to_dict() == {
            "money": {"amount": 50000, "currency": "USD"},
            "sign": "positive",
        }
        assert MoneyWithSign.from_dict(money.to_dict()) == money
