"""SQLAlchemy ORM models."""

from .account import Account
from .balance_snapshot import BalanceSnapshot, SnapshotType
from .bank_link import BankLink, BankLinkStatus
from .transaction import Transaction
from .user import User
from .utils import generate_uuid
from .webhook_event import WebhookEvent, WebhookEventStatus

__all__ = ["Account", "BalanceSnapshot", "BankLink", "BankLinkStatus", "SnapshotType", "Transaction", "User", "WebhookEvent", "WebhookEventStatus", "generate_uuid"]
