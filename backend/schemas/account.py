"""Pydantic schemas for account and balance snapshot responses."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.money import MoneySchema


class AccountResponse(BaseModel):
    """Schema for Account API response."""

    id: str
    name: str
    mask: Optional[str] = None
    type: Optional[str] = None
    sub_type: Optional[str] = None
    external_account_id: Optional[str] = None
    bank_link_id: Optional[str] = None
    current_balance: MoneySchema
    available_balance: MoneySchema
    last_sync_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account, last_sync_time: Optional[datetime] = None) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            mask=account.mask,
            type=account.type,
            sub_type=account.sub_type,
            external_account_id=account.external_account_id,
            bank_link_id=account.bank_link_id,
            current_balance=MoneySchema.from_money(account.current_balance),
            available_balance=MoneySchema.from_money(account.available_balance),
            last_sync_time=last_sync_time,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class BalanceSnapshotResponse(BaseModel):
    """Schema for BalanceSnapshot API response."""

    id: str
    account_id: str
    snapshot_date: date
    snapshot_type: str
    current_balance: MoneySchema
    available_balance: MoneySchema

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_snapshot(cls, snapshot) -> "BalanceSnapshotResponse":
        return cls(
            id=snapshot.id,
            account_id=snapshot.account_id,
            snapshot_date=snapshot.snapshot_date,
            snapshot_type=snapshot.snapshot_type,
            current_balance=MoneySchema.from_money(snapshot.current_balance),
            available_balance=MoneySchema.from_money(snapshot.available_balance),
        )
