"""Signed money values stored as integer minor units.

Balances and transaction amounts are kept as a non-negative integer
amount in the currency's smallest unit plus a separate sign, matching
how they are persisted (``<prefix>_amount``, ``<prefix>_currency``,
``<prefix>_sign`` columns).
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

DEFAULT_EXPONENT = 2

# Minor-unit exponents that differ from the default of 2.
# ETH is tracked in gwei (9) rather than wei (18) so balances fit a BIGINT.
CURRENCY_EXPONENTS: dict[str, int] = {
    "JPY": 0,
    "KRW": 0,
    "BTC": 8,
    "ETH": 9,
}


class MoneySign(str, Enum):
    """Credit/debit marker. Positive adds to a balance, negative subtracts."""

    POSITIVE = "positive"
    NEGATIVE = "negative"


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places in the currency's minor unit."""
    return CURRENCY_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


@dataclass(frozen=True)
class MoneyWithSign:
    """An absolute amount in minor units with a currency and a sign."""

    amount: int
    currency: str
    sign: MoneySign = MoneySign.POSITIVE

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError("amount must be non-negative; use sign for direction")

    @classmethod
    def from_float(cls, currency: str, value: float | str | Decimal) -> "MoneyWithSign":
        """Build from a major-unit value such as ``199.99`` (provider APIs).

        The sign is taken from the value. Rounds half-up to the minor unit.
        """
        exponent = minor_unit_exponent(currency)
        minor = (Decimal(str(value)).scaleb(exponent)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return cls.from_signed(currency, int(minor))

    @classmethod
    def from_signed(cls, currency: str, signed_amount: int) -> "MoneyWithSign":
        """Build from a signed minor-unit integer."""
        sign = MoneySign.NEGATIVE if signed_amount < 0 else MoneySign.POSITIVE
        return cls(amount=abs(signed_amount), currency=currency, sign=sign)

    @classmethod
    def zero(cls, currency: str = "USD") -> "MoneyWithSign":
        return cls(amount=0, currency=currency)

    @classmethod
    def from_dict(cls, data: dict) -> "MoneyWithSign":
        """Parse the serialized ``{"money": {"amount", "currency"}, "sign"}`` shape."""
        money = data["money"]
        return cls(
            amount=int(money["amount"]),
            currency=money["currency"],
            sign=MoneySign(data["sign"]),
        )

    @property
    def signed_amount(self) -> int:
        """Amount as a single signed integer for arithmetic."""
        return -self.amount if self.sign == MoneySign.NEGATIVE else self.amount

    def to_decimal(self) -> Decimal:
        """Signed major-unit value (e.g. ``Decimal("-12.34")``)."""
        return Decimal(self.signed_amount).scaleb(-minor_unit_exponent(self.currency))

    def to_dict(self) -> dict:
        return {
            "money": {"amount": self.amount, "currency": self.currency},
            "sign": self.sign.value,
        }
