"""Shared utilities for ORM models."""

import uuid
from datetime import datetime, timezone

from utils.money import MoneySign, MoneyWithSign


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money_property(prefix: str) -> property:
    """Expose ``<prefix>_amount/_currency/_sign`` columns as one MoneyWithSign.

    Assigning a MoneyWithSign writes all three columns.
    """

    def getter(self) -> MoneyWithSign:
        return MoneyWithSign(
            amount=int(getattr(self, f"{prefix}_amount") or 0),
            currency=getattr(self, f"{prefix}_currency") or "USD",
            sign=MoneySign(getattr(self, f"{prefix}_sign") or MoneySign.POSITIVE.value),
        )

    def setter(self, value: MoneyWithSign) -> None:
        setattr(self, f"{prefix}_amount", value.amount)
        setattr(self, f"{prefix}_currency", value.currency)
        setattr(self, f"{prefix}_sign", value.sign.value)

    return property(getter, setter, doc=f"{prefix} as a MoneyWithSign")
