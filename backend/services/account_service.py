"""Account lookups scoped to the owning user."""

import logging

from sqlalchemy.orm import Session

from errors import NotFoundError
from models import Account

logger = logging.getLogger(__name__)


class AccountService:
    """Read access to a user's accounts."""

    @staticmethod
    def list_accounts(db: Session, user_id: str) -> list[Account]:
        """List the user's accounts, ordered by name."""
        return (
            db.query(Account)
            .filter(Account.user_id == user_id)
            .order_by(Account.name, Account.id)
            .all()
        )

    @staticmethod
    def get_account(db: Session, account_id: str, user_id: str) -> Account:
        """Get one of the user's accounts.

        Raises:
            NotFoundError: The account doesn't exist or belongs to someone else
        """
        account = (
            db.query(Account)
            .filter(Account.id == account_id, Account.user_id == user_id)
            .first()
        )
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

