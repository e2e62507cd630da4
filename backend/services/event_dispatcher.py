"""In-process event dispatch for account and transaction changes.

Listeners run synchronously on the publisher's thread, in subscription
order, so they share the publisher's database session.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

LINKED_ACCOUNT_CREATED = "linked_account.created"
LINKED_ACCOUNT_UPDATED = "linked_account.updated"
TRANSACTION_CREATED = "transaction.created"
TRANSACTION_UPDATED = "transaction.updated"
TRANSACTION_DELETED = "transaction.deleted"


@dataclass
class AccountEvent:
    """A linked account was created or updated by a provider sync."""

    db: Session
    account: Any  # models.Account


@dataclass
class TransactionEvent:
    """A transaction was created, updated or deleted.

    ``transaction`` holds the values after the change (for deletes, the
    removed values). ``previous`` is set only for updates.
    """

    db: Session
    transaction: "TransactionValues"
    previous: "TransactionValues | None" = None


@dataclass(frozen=True)
class TransactionValues:
    """Detached copy of the fields the balance ledger needs."""

    id: str
    user_id: str
    account_id: str
    date: Any  # datetime.date
    amount: Any  # utils.money.MoneyWithSign

    @classmethod
    def from_model(cls, txn) -> "TransactionValues":
        return cls(
            id=txn.id,
            user_id=txn.user_id,
            account_id=txn.account_id,
            date=txn.date,
            amount=txn.amount,
        )


Handler = Callable[[Any], None]


class EventDispatcher:
    """Synchronous publish/subscribe keyed by event name.

    A handler that raises propagates to the publisher; listeners that
    must not fail the write catch their own errors.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        self._handlers[event_name].append(handler)

    def publish(self, event_name: str, event: Any) -> None:
        handlers = self._handlers.get(event_name, [])
        logger.debug("Publishing %s to %d handlers", event_name, len(handlers))
        for handler in list(handlers):
            handler(event)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))


def build_default_dispatcher() -> EventDispatcher:
    """Dispatcher with the balance ledger and the sync-snapshot listener attached."""
    from services.balance_ledger import BalanceLedger
    from services.balance_snapshot_service import BalanceSnapshotService

    dispatcher = EventDispatcher()
    BalanceLedger().register(dispatcher)
    BalanceSnapshotService.register(dispatcher)
    return dispatcher
