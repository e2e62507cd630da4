"""Reconcile provider accounts into local Account rows."""

import logging

from sqlalchemy.orm import Session

from integrations.provider_protocol import ProviderAccount
from models import Account
from models.utils import generate_uuid
from services.event_dispatcher import (
    LINKED_ACCOUNT_CREATED,
    LINKED_ACCOUNT_UPDATED,
    AccountEvent,
    EventDispatcher,
)

logger = logging.getLogger(__name__)


def upsert_accounts_from_api(
    db: Session,
    user_id: str,
    accounts: list[ProviderAccount],
    bank_link_ids: dict[str, str],
    dispatcher: EventDispatcher | None = None,
) -> list[Account]:
    """Create or update the user's accounts to match a provider response.

    Matching is on ``(user_id, external_account_id)``, so running the same
    input twice changes nothing. One event is published per account after
    a single flush.

    Args:
        db: Database session
        user_id: Owner of the accounts
        accounts: Normalized provider accounts
        bank_link_ids: external account id -> owning BankLink id

    Returns:
        The created and updated Account rows, in input order

    Raises:
        ValueError: If an account has no entry in ``bank_link_ids``
    """
    if not accounts:
        return []

    missing = [a.account_id for a in accounts if a.account_id not in bank_link_ids]
    if missing:
        raise ValueError(f"No bank link id for accounts: {', '.join(missing)}")

    external_ids = [a.account_id for a in accounts]
    existing_by_external_id = {
        account.external_account_id: account
        for account in db.query(Account)
        .filter(
            Account.user_id == user_id,
            Account.external_account_id.in_(external_ids),
        )
        .all()
    }

    results: list[Account] = []
    created_ids: set[str] = set()
    for remote in accounts:
        account = existing_by_external_id.get(remote.account_id)
        if account is not None:
            previous = account.current_balance
            if previous != remote.current_balance:
                logger.info(
                    "Account %s balance changed: %s -> %s",
                    account.id,
                    previous.to_decimal(),
                    remote.current_balance.to_decimal(),
                )
        else:
            account = Account(
                id=generate_uuid(), user_id=user_id, external_account_id=remote.account_id
            )
            db.add(account)
            created_ids.add(account.id)
            existing_by_external_id[remote.account_id] = account

        account.name = remote.name
        account.mask = remote.mask
        account.type = remote.type
        account.sub_type = remote.sub_type
        account.current_balance = remote.current_balance
        account.available_balance = remote.available_balance
        account.raw_api_account = remote.raw
        account.bank_link_id = bank_link_ids[remote.account_id]

        results.append(account)

    db.flush()

    logger.info(
        "Accounts reconciled for user %s (%d new, %d existing)",
        user_id, len(created_ids), len(results) - len(created_ids),
    )

    if dispatcher is not None:
        for account in results:
            event_name = (
                LINKED_ACCOUNT_CREATED if account.id in created_ids else LINKED_ACCOUNT_UPDATED
            )
            dispatcher.publish(event_name, AccountEvent(db=db, account=account))

    return results
