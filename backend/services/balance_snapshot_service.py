"""Balance snapshot service - daily balance history per account."""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import NotFoundError
from models import Account, BalanceSnapshot, SnapshotType, User
from services.balance_ledger import upsert_snapshot
from services.event_dispatcher import (
    LINKED_ACCOUNT_CREATED,
    LINKED_ACCOUNT_UPDATED,
    AccountEvent,
    EventDispatcher,
)
from services.user_service import UserService
from utils.dates import Clock, local_today, local_yesterday

logger = logging.getLogger(__name__)

_BALANCE_COLUMNS = (
    "current_balance_amount",
    "current_balance_currency",
    "current_balance_sign",
    "available_balance_amount",
    "available_balance_currency",
    "available_balance_sign",
)


@dataclass
class ForwardFillResult:
    created: int = 0
    skipped: int = 0


def _balances_of(row) -> dict:
    return {column: getattr(row, column) for column in _BALANCE_COLUMNS}


class BalanceSnapshotService:
    """Queries over balance snapshots, plus the SYNC listener and forward fill."""

    @staticmethod
    def register(dispatcher: EventDispatcher, clock: Clock | None = None) -> None:
        """Record a SYNC snapshot whenever a provider sync creates or updates an account."""

        def on_linked_account(event: AccountEvent) -> None:
            BalanceSnapshotService.record_sync_snapshot(event.db, event.account, clock=clock)

        dispatcher.subscribe(LINKED_ACCOUNT_CREATED, on_linked_account)
        dispatcher.subscribe(LINKED_ACCOUNT_UPDATED, on_linked_account)

    @staticmethod
    def record_sync_snapshot(db: Session, account: Account, clock: Clock | None = None) -> None:
        """Upsert today's SYNC snapshot from the account's current balances.

        Failures are logged and swallowed so a snapshot problem never fails
        the sync that triggered it.
        """
        try:
            with db.begin_nested():
                today = local_today(UserService.get_timezone(db, account.user_id), clock)
                upsert_snapshot(
                    db,
                    account_id=account.id,
                    user_id=account.user_id,
                    snapshot_date=today,
                    snapshot_type=SnapshotType.SYNC,
                    balances=_balances_of(account),
                )
        except Exception:
            logger.warning(
                "Failed to record sync snapshot for account %s", account.id, exc_info=True
            )

    @staticmethod
    def list_for_account(db: Session, account_id: str, user_id: str) -> list[BalanceSnapshot]:
        """Snapshots for one of the user's accounts, newest first.

        Raises:
            NotFoundError: If the account doesn't exist for this user
        """
        owned = (
            db.query(Account.id)
            .filter(Account.id == account_id, Account.user_id == user_id)
            .first()
        )
        if owned is None:
            raise NotFoundError(f"Account {account_id} not found")
        return (
            db.query(BalanceSnapshot)
            .filter(BalanceSnapshot.account_id == account_id)
            .order_by(BalanceSnapshot.snapshot_date.desc())
            .all()
        )

    @staticmethod
    def find_by_account_and_date(
        db: Session, account_id: str, snapshot_date: date
    ) -> BalanceSnapshot | None:
        return (
            db.query(BalanceSnapshot)
            .filter(
                BalanceSnapshot.account_id == account_id,
                BalanceSnapshot.snapshot_date == snapshot_date,
            )
            .first()
        )

    @staticmethod
    def find_most_recent_before(
        db: Session, account_id: str, before: date
    ) -> BalanceSnapshot | None:
        return (
            db.query(BalanceSnapshot)
            .filter(
                BalanceSnapshot.account_id == account_id,
                BalanceSnapshot.snapshot_date < before,
            )
            .order_by(BalanceSnapshot.snapshot_date.desc())
            .first()
        )

    @staticmethod
    def get_last_sync_times(db: Session, user_id: str) -> dict[str, datetime]:
        """Most recent SYNC snapshot write per account, for the user's accounts."""
        rows = (
            db.query(BalanceSnapshot.account_id, func.max(BalanceSnapshot.updated_at))
            .filter(
                BalanceSnapshot.user_id == user_id,
                BalanceSnapshot.snapshot_type == SnapshotType.SYNC.value,
            )
            .group_by(BalanceSnapshot.account_id)
            .all()
        )
        return {account_id: last for account_id, last in rows}

    @staticmethod
    def forward_fill_missing_snapshots(db: Session, clock: Clock | None = None) -> ForwardFillResult:
        """Copy the latest snapshot into yesterday for accounts that have none.

        "Yesterday" is computed in each account owner's timezone. Accounts
        with no earlier snapshot are skipped, and one account failing never
        stops the rest.
        """
        result = ForwardFillResult()
        accounts = (
            db.query(Account.id, Account.user_id, User.timezone)
            .join(User, User.id == Account.user_id)
            .order_by(Account.id)
            .all()
        )

        for account_id, user_id, tz_name in accounts:
            try:
                with db.begin_nested():
                    target = local_yesterday(tz_name, clock)
                    if BalanceSnapshotService.find_by_account_and_date(db, account_id, target):
                        continue
                    previous = BalanceSnapshotService.find_most_recent_before(
                        db, account_id, target
                    )
                    if previous is None:
                        result.skipped += 1
                        continue
                    upsert_snapshot(
                        db,
                        account_id=account_id,
                        user_id=user_id,
                        snapshot_date=target,
                        snapshot_type=SnapshotType.FORWARD_FILL,
                        balances=_balances_of(previous),
                    )
                    result.created += 1
            except Exception:
                result.skipped += 1
                logger.warning("Forward fill failed for account %s", account_id, exc_info=True)

        logger.info(
            "Forward fill complete: %d created, %d skipped", result.created, result.skipped
        )
        return result
