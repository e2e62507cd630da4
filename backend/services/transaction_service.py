"""Transaction service - user-entered transactions that move account balances."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from errors import NotFoundError
from models import Account, Transaction
from services.event_dispatcher import (
    TRANSACTION_CREATED,
    TRANSACTION_DELETED,
    TRANSACTION_UPDATED,
    EventDispatcher,
    TransactionEvent,
    TransactionValues,
)
from utils.money import MoneyWithSign

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("date", "merchant_name", "pending", "external_transaction_id", "category_id")


class TransactionService:
    """CRUD for transactions, scoped to the owning user.

    Every write flushes and then publishes an event so the balance ledger
    can adjust the account and its snapshots in the same session.
    """

    def __init__(self, dispatcher: Optional[EventDispatcher] = None):
        self.dispatcher = dispatcher

    def _publish(self, event_name: str, event: TransactionEvent) -> None:
        if self.dispatcher is not None:
            self.dispatcher.publish(event_name, event)

    @staticmethod
    def get_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
        txn = (
            db.query(Transaction)
            .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
            .first()
        )
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    @staticmethod
    def list_transactions(
        db: Session, user_id: str, account_id: str | None = None
    ) -> list[Transaction]:
        """The user's transactions, newest first, optionally for one account."""
        query = db.query(Transaction).filter(Transaction.user_id == user_id)
        if account_id is not None:
            query = query.filter(Transaction.account_id == account_id)
        return query.order_by(Transaction.date.desc(), Transaction.created_at.desc()).all()

    def create_transaction(
        self,
        db: Session,
        user_id: str,
        account_id: str,
        amount: MoneyWithSign,
        txn_date: date,
        merchant_name: str | None = None,
        pending: bool = False,
        external_transaction_id: str | None = None,
        category_id: str | None = None,
    ) -> Transaction:
        """Record a transaction against one of the user's accounts.

        Raises:
            NotFoundError: The account doesn't exist for this user
        """
        account = (
            db.query(Account)
            .filter(Account.id == account_id, Account.user_id == user_id)
            .first()
        )
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        if amount.currency != account.current_balance_currency:
            logger.warning(
                "Transaction currency %s differs from account %s currency %s",
                amount.currency, account_id, account.current_balance_currency,
            )

        txn = Transaction(
            user_id=user_id,
            account_id=account_id,
            date=txn_date,
            merchant_name=merchant_name,
            pending=pending,
            external_transaction_id=external_transaction_id,
            category_id=category_id,
        )
        txn.amount = amount
        db.add(txn)
        db.flush()
        logger.info("Transaction created: %s on account %s", txn.id, account_id)

        self._publish(
            TRANSACTION_CREATED,
            TransactionEvent(db=db, transaction=TransactionValues.from_model(txn)),
        )
        return txn

    def update_transaction(
        self,
        db: Session,
        transaction_id: str,
        user_id: str,
        *,
        amount: MoneyWithSign | None = None,
        **changes,
    ) -> Transaction:
        """Apply ``changes`` (and optionally a new amount) to a transaction.

        Raises:
            NotFoundError: The transaction doesn't exist for this user
            ValueError: An unknown field was passed
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        txn = self.get_transaction(db, transaction_id, user_id)
        previous = TransactionValues.from_model(txn)

        if amount is not None:
            txn.amount = amount
        for name, value in changes.items():
            setattr(txn, name, value)
        db.flush()
        logger.info("Transaction updated: %s", txn.id)

        self._publish(
            TRANSACTION_UPDATED,
            TransactionEvent(
                db=db, transaction=TransactionValues.from_model(txn), previous=previous
            ),
        )
        return txn

    def delete_transaction(self, db: Session, transaction_id: str, user_id: str) -> None:
        """Delete a transaction and reverse its effect on balances."""
        txn = self.get_transaction(db, transaction_id, user_id)
        removed = TransactionValues.from_model(txn)
        db.delete(txn)
        db.flush()
        logger.info("Transaction deleted: %s", transaction_id)

        self._publish(TRANSACTION_DELETED, TransactionEvent(db=db, transaction=removed))
