"""BalanceSnapshot model - an account's closing balance for one calendar day."""

from enum import Enum

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, money_property, utcnow


class SnapshotType(str, Enum):
    SYNC = "SYNC"  # Written from a provider sync
    USER_UPDATE = "USER_UPDATE"  # Written by a user-entered transaction
    FORWARD_FILL = "FORWARD_FILL"  # Copied forward from an earlier day


class BalanceSnapshot(Base):
    """Balance as it stood at the end of ``snapshot_date``.

    One row per account per day. Later corrections (a back-dated
    transaction being edited or deleted) overwrite rows in place rather
    than appending.
    """

    __tablename__ = "balance_snapshots"
    __table_args__ = (
        UniqueConstraint("account_id", "snapshot_date", name="uix_account_snapshot_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    snapshot_date = Column(Date, nullable=False)
    snapshot_type = Column(String, nullable=False)

    current_balance_amount = Column(BigInteger, nullable=False, default=0)
    current_balance_currency = Column(String(10), nullable=False, default="USD")
    current_balance_sign = Column(String(10), nullable=False, default="positive")
    available_balance_amount = Column(BigInteger, nullable=False, default=0)
    available_balance_currency = Column(String(10), nullable=False, default="USD")
    available_balance_sign = Column(String(10), nullable=False, default="positive")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    current_balance = money_property("current_balance")
    available_balance = money_property("available_balance")

    account = relationship("Account", back_populates="balance_snapshots")
