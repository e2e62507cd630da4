"""Pydantic schemas for transaction requests and responses."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, field_validator

from schemas.money import MoneySchema


class TransactionCreate(BaseModel):
    """Schema for creating a Transaction."""

    account_id: str
    amount: MoneySchema
    date: dt.date
    merchant_name: Optional[str] = None
    pending: bool = False
    external_transaction_id: Optional[str] = None
    category_id: Optional[str] = None


class TransactionUpdate(BaseModel):
    """Schema for updating a Transaction. Omitted fields are left unchanged."""

    amount: Optional[MoneySchema] = None
    date: Optional[dt.date] = None
    merchant_name: Optional[str] = None
    pending: Optional[bool] = None
    external_transaction_id: Optional[str] = None
    category_id: Optional[str] = None

    @field_validator("date", "pending")
    @classmethod
    def reject_null(cls, v):
        """These columns are NOT NULL; omit the field to leave it unchanged."""
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class TransactionResponse(BaseModel):
    """Schema for Transaction API response."""

    id: str
    account_id: str
    amount: MoneySchema
    date: dt.date
    merchant_name: Optional[str] = None
    pending: bool
    external_transaction_id: Optional[str] = None
    category_id: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    @classmethod
    def from_transaction(cls, txn) -> "TransactionResponse":
        return cls(
            id=txn.id,
            account_id=txn.account_id,
            amount=MoneySchema.from_money(txn.amount),
            date=txn.date,
            merchant_name=txn.merchant_name,
            pending=txn.pending,
            external_transaction_id=txn.external_transaction_id,
            category_id=txn.category_id,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
        )
