"""Test fixtures and sample data."""
from datetime import date

import pytest
from sqlalchemy.orm import Session

from models import Account, BalanceSnapshot, BankLink, SnapshotType, User
from utils.money import MoneyWithSign


def create_user(db: Session, user_id: str = "user-1", timezone: str | None = None) -> User:
    user = User(id=user_id, email=f"{user_id}@example.com", timezone=timezone)
    db.add(user)
    db.flush()
    return user


def create_bank_link(
    db: Session,
    user: User,
    provider_name: str = "plaid",
    access_token: str = "access-1",
    item_id: str | None = "item-1",
    institution_name: str = "First Platypus Bank",
) -> BankLink:
    authentication = {"accessToken": access_token}
    if item_id is not None:
        authentication["itemId"] = item_id
    link = BankLink(
        user_id=user.id,
        provider_name=provider_name,
        authentication=authentication,
        account_ids=[],
        institution_id="ins_1",
        institution_name=institution_name,
    )
    db.add(link)
    db.flush()
    return link


def create_account(
    db: Session,
    user: User,
    balance_cents: int = 0,
    currency: str = "USD",
    name: str = "Checking",
    external_account_id: str | None = None,
    bank_link: BankLink | None = None,
) -> Account:
    """Create an account whose current and available balances are both ``balance_cents``."""
    account = Account(
        user_id=user.id,
        name=name,
        external_account_id=external_account_id,
        bank_link_id=bank_link.id if bank_link else None,
    )
    account.current_balance = MoneyWithSign.from_signed(currency, balance_cents)
    account.available_balance = MoneyWithSign.from_signed(currency, balance_cents)
    db.add(account)
    db.flush()
    return account


def create_snapshot(
    db: Session,
    account: Account,
    snapshot_date: date,
    balance_cents: int,
    snapshot_type: SnapshotType = SnapshotType.SYNC,
    currency: str = "USD",
) -> BalanceSnapshot:
    snapshot = BalanceSnapshot(
        account_id=account.id,
        user_id=account.user_id,
        snapshot_date=snapshot_date,
        snapshot_type=snapshot_type.value,
    )
    snapshot.current_balance = MoneyWithSign.from_signed(currency, balance_cents)
    snapshot.available_balance = MoneyWithSign.from_signed(currency, balance_cents)
    db.add(snapshot)
    db.flush()
    return snapshot


@pytest.fixture
def user(db):
    """Default test user (UTC)."""
    return create_user(db)


@pytest.fixture
def other_user(db):
    return create_user(db, user_id="user-2")


@pytest.fixture
def account(db, user):
    """A USD account with a zero balance."""
    return create_account(db, user)
