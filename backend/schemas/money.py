"""Money schemas shared by account, snapshot and transaction responses."""

from pydantic import BaseModel, Field

from utils.money import MoneySign, MoneyWithSign


class MoneySchema(BaseModel):
    """A signed amount in the currency's minor unit (cents for USD)."""

    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=10)
    sign: MoneySign = MoneySign.POSITIVE

    @classmethod
    def from_money(cls, money: MoneyWithSign) -> "MoneySchema":
        return cls(amount=money.amount, currency=money.currency, sign=money.sign)

    def to_money(self) -> MoneyWithSign:
        return MoneyWithSign(amount=self.amount, currency=self.currency.upper(), sign=self.sign)
