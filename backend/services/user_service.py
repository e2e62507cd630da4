"""User lookups and per-provider user details."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from errors import NotFoundError
from models import User

logger = logging.getLogger(__name__)


class UserService:
    """Reads and writes the per-user state providers keep between link flows."""

    @staticmethod
    def get_user(db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def get_provider_details(db: Session, user_id: str, provider_name: str) -> dict[str, Any] | None:
        """Details stored for ``provider_name`` (e.g. a Plaid ``userToken``), if any."""
        user = UserService.get_user(db, user_id)
        details = (user.provider_details or {}).get(provider_name)
        return dict(details) if details else None

    @staticmethod
    def update_provider_details(
        db: Session, user_id: str, provider_name: str, details: dict[str, Any]
    ) -> None:
        """Merge ``details`` into the user's entry for ``provider_name``."""
        user = UserService.get_user(db, user_id)
        all_details = dict(user.provider_details or {})
        merged = dict(all_details.get(provider_name) or {})
        merged.update(details)
        all_details[provider_name] = merged
        # Reassign so the JSON column is marked dirty
        user.provider_details = all_details
        db.flush()
        logger.info("Updated %s details for user %s", provider_name, user_id)

    @staticmethod
    def get_timezone(db: Session, user_id: str) -> str | None:
        return db.query(User.timezone).filter(User.id == user_id).scalar()
