"""Account model - a linked or manually managed financial account."""

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, money_property, utcnow


class Account(Base):
    """A financial account owned by a user.

    Linked accounts carry the provider's ``external_account_id`` and the
    owning ``bank_link_id``; manual accounts leave both null. The
    combination of user_id + external_account_id is the reconciliation key.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "external_account_id", name="uix_user_external_account_id"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    mask = Column(String, nullable=True)  # Last digits of the account number
    type = Column(String, nullable=True)  # e.g., "depository", "credit", "crypto_wallet"
    sub_type = Column(String, nullable=True)  # e.g., "checking", "savings"
    external_account_id = Column(String, nullable=True)
    bank_link_id = Column(String(36), ForeignKey("bank_links.id"), nullable=True)
    raw_api_account = Column(JSON, nullable=True)

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

    # Relationships
    bank_link = relationship("BankLink", back_populates="accounts")
    balance_snapshots = relationship("BalanceSnapshot", back_populates="account")
