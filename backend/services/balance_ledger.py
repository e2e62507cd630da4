"""Balance ledger - keeps account balances and daily snapshots in step with transactions.

Reacts to transaction events:

- created: add the signed amount to the account and to any snapshots
  dated between the transaction and yesterday, then write today's
  snapshot with the resulting balance
- deleted: subtract the signed amount from the account and from every
  snapshot between the transaction date and today
- updated: apply ``new - old`` to the account and to every snapshot from
  the earlier of the two dates through today

Each reaction runs in one savepoint, and every balance change is a single
``UPDATE ... SET amount = abs(signed + delta)`` statement computed in SQL,
so concurrent events on one account cannot lose updates.
"""

import logging
from datetime import date, timedelta
from typing import Callable

from sqlalchemy import case, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from config import settings
from database import dialect_name
from errors import BalanceLedgerError
from models import Account, BalanceSnapshot, SnapshotType
from models.utils import generate_uuid, utcnow
from services.event_dispatcher import (
    TRANSACTION_CREATED,
    TRANSACTION_DELETED,
    TRANSACTION_UPDATED,
    EventDispatcher,
    TransactionEvent,
)
from services.user_service import UserService
from utils.dates import Clock, local_today
from utils.money import MoneySign

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ("swallow", "raise", "retry")

_BALANCE_PREFIXES = ("current_balance", "available_balance")


def _signed(amount_col, sign_col):
    return case((sign_col == MoneySign.NEGATIVE.value, -amount_col), else_=amount_col)


def shifted_balance_values(model, delta: int) -> dict:
    """SET clause that adds ``delta`` to both balances of ``model``'s rows.

    Both SQLite and PostgreSQL evaluate SET expressions against the
    pre-update row, so amount and sign are computed from the same value.
    """
    values = {}
    for prefix in _BALANCE_PREFIXES:
        amount = getattr(model, f"{prefix}_amount")
        sign = getattr(model, f"{prefix}_sign")
        new_signed = _signed(amount, sign) + delta
        values[f"{prefix}_amount"] = func.abs(new_signed)
        values[f"{prefix}_sign"] = case(
            (new_signed < 0, MoneySign.NEGATIVE.value),
            else_=MoneySign.POSITIVE.value,
        )
    values["updated_at"] = utcnow()
    return values


def upsert_snapshot(
    db: Session,
    *,
    account_id: str,
    user_id: str,
    snapshot_date: date,
    snapshot_type: SnapshotType,
    balances: dict,
) -> None:
    """Insert or overwrite the snapshot for ``(account_id, snapshot_date)``.

    ``balances`` holds the six ``current_balance_*``/``available_balance_*``
    column values.
    """
    insert_fn = postgresql.insert if dialect_name(db) == "postgresql" else sqlite.insert
    now = utcnow()
    stmt = insert_fn(BalanceSnapshot).values(
        id=generate_uuid(),
        account_id=account_id,
        user_id=user_id,
        snapshot_date=snapshot_date,
        snapshot_type=snapshot_type.value,
        created_at=now,
        updated_at=now,
        **balances,
    )
    set_ = {column: stmt.excluded[column] for column in balances}
    set_["snapshot_type"] = stmt.excluded.snapshot_type
    set_["updated_at"] = stmt.excluded.updated_at
    stmt = stmt.on_conflict_do_update(
        index_elements=["account_id", "snapshot_date"], set_=set_
    )
    db.execute(stmt)


class BalanceLedger:
    """Transaction-event listener that maintains Account and BalanceSnapshot balances.

    Args:
        failure_policy: ``swallow`` (log and continue), ``raise``
            (BalanceLedgerError) or ``retry`` (retry the savepoint, then
            swallow). Defaults to ``settings.BALANCE_LEDGER_FAILURE_POLICY``.
        max_retries: Extra attempts under the ``retry`` policy.
        clock: Returns the current time; "today" is taken from it in the
            account owner's timezone.
    """

    def __init__(
        self,
        failure_policy: str | None = None,
        max_retries: int | None = None,
        clock: Clock | None = None,
    ):
        policy = (failure_policy or settings.BALANCE_LEDGER_FAILURE_POLICY).lower()
        if policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown balance ledger failure policy: {policy}")
        self.failure_policy = policy
        self.max_retries = (
            settings.BALANCE_LEDGER_MAX_RETRIES if max_retries is None else max_retries
        )
        self._clock = clock

    def register(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(TRANSACTION_CREATED, self.on_transaction_created)
        dispatcher.subscribe(TRANSACTION_UPDATED, self.on_transaction_updated)
        dispatcher.subscribe(TRANSACTION_DELETED, self.on_transaction_deleted)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_transaction_created(self, event: TransactionEvent) -> None:
        txn = event.transaction
        self._run(
            event.db,
            "create",
            txn.id,
            lambda: self._apply_created(
                event.db, txn.account_id, txn.amount.signed_amount, txn.date
            ),
        )

    def on_transaction_deleted(self, event: TransactionEvent) -> None:
        txn = event.transaction
        delta = -txn.amount.signed_amount
        self._run(
            event.db,
            "delete",
            txn.id,
            lambda: self._apply_correction(event.db, txn.account_id, delta, txn.date),
        )

    def on_transaction_updated(self, event: TransactionEvent) -> None:
        new, old = event.transaction, event.previous
        if old is None:
            logger.warning("Update event for transaction %s has no previous values", new.id)
            return
        if old.account_id != new.account_id:
            logger.warning(
                "Transaction %s moved between accounts; balances not adjusted", new.id
            )
            return

        delta = new.amount.signed_amount - old.amount.signed_amount
        if delta == 0:
            logger.debug("Transaction %s amount unchanged; no balance update", new.id)
            return

        from_date = min(old.date, new.date)
        self._run(
            event.db,
            "update",
            new.id,
            lambda: self._apply_correction(event.db, new.account_id, delta, from_date),
        )

    # ------------------------------------------------------------------
    # Failure policy
    # ------------------------------------------------------------------

    def _run(self, db: Session, action: str, transaction_id: str, work: Callable[[], None]) -> None:
        """Run ``work`` in a savepoint, applying the failure policy on error."""
        attempts = 1 + (self.max_retries if self.failure_policy == "retry" else 0)
        for attempt in range(1, attempts + 1):
            try:
                with db.begin_nested():
                    work()
                return
            except Exception as e:
                if self.failure_policy == "raise":
                    logger.error(
                        "Balance update failed on %s of transaction %s",
                        action, transaction_id, exc_info=True,
                    )
                    raise BalanceLedgerError(
                        f"Balance update failed on {action} of transaction {transaction_id}: {e}",
                        transaction_id=transaction_id,
                    ) from e
                if attempt < attempts:
                    logger.warning(
                        "Balance update failed on %s of transaction %s (attempt %d/%d), retrying",
                        action, transaction_id, attempt, attempts,
                    )
                    continue
                logger.error(
                    "Balance update failed on %s of transaction %s; "
                    "account and snapshots may drift until the next sync",
                    action, transaction_id, exc_info=True,
                )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _shift_account(self, db: Session, account_id: str, delta: int):
        """Add ``delta`` to the account's balances; return the updated row."""
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(**shifted_balance_values(Account, delta))
            .returning(
                Account.user_id,
                Account.current_balance_amount,
                Account.current_balance_currency,
                Account.current_balance_sign,
                Account.available_balance_amount,
                Account.available_balance_currency,
                Account.available_balance_sign,
            )
            .execution_options(synchronize_session="fetch")
        )
        row = db.execute(stmt).first()
        if row is None:
            raise BalanceLedgerError(f"Account {account_id} not found")
        return row

    def _today_for(self, db: Session, user_id: str) -> date:
        return local_today(UserService.get_timezone(db, user_id), self._clock)

    def _shift_snapshots(
        self, db: Session, account_id: str, delta: int, from_date: date, through: date
    ) -> int:
        result = db.execute(
            update(BalanceSnapshot)
            .where(
                BalanceSnapshot.account_id == account_id,
                BalanceSnapshot.snapshot_date >= from_date,
                BalanceSnapshot.snapshot_date <= through,
            )
            .values(**shifted_balance_values(BalanceSnapshot, delta))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def _apply_created(self, db: Session, account_id: str, delta: int, txn_date: date) -> None:
        row = self._shift_account(db, account_id, delta)
        today = self._today_for(db, row.user_id)
        if txn_date < today:
            # Back-dated: earlier closing balances change too
            self._shift_snapshots(db, account_id, delta, txn_date, today - timedelta(days=1))
        balances = {
            "current_balance_amount": row.current_balance_amount,
            "current_balance_currency": row.current_balance_currency,
            "current_balance_sign": row.current_balance_sign,
            "available_balance_amount": row.available_balance_amount,
            "available_balance_currency": row.available_balance_currency,
            "available_balance_sign": row.available_balance_sign,
        }
        upsert_snapshot(
            db,
            account_id=account_id,
            user_id=row.user_id,
            snapshot_date=today,
            snapshot_type=SnapshotType.USER_UPDATE,
            balances=balances,
        )
        logger.info("Account %s adjusted by %d; snapshot for %s written", account_id, delta, today)

    def _apply_correction(self, db: Session, account_id: str, delta: int, from_date: date) -> None:
        row = self._shift_account(db, account_id, delta)
        today = self._today_for(db, row.user_id)
        # Future-dated transactions were applied to today's snapshot on create
        from_date = min(from_date, today)
        corrected = self._shift_snapshots(db, account_id, delta, from_date, today)
        logger.info(
            "Account %s adjusted by %d; %d snapshots corrected from %s to %s",
            account_id, delta, corrected, from_date, today,
        )
