"""Transaction model - a signed money movement against one account."""

from sqlalchemy import BigInteger, Boolean, Column, Date, DateTime, ForeignKey, String

from database import Base
from models.utils import generate_uuid, money_property, utcnow


class Transaction(Base):
    """A credit (positive) or debit (negative) on an account.

    Creating, editing and deleting transactions drives the balance
    ledger, which keeps the account balance and its daily snapshots in step.
    """

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)  # Occurrence date (posted date once settled)
    merchant_name = Column(String, nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
    external_transaction_id = Column(String, nullable=True)
    category_id = Column(String(36), nullable=True)

    amount_amount = Column(BigInteger, nullable=False)
    amount_currency = Column(String(10), nullable=False)
    amount_sign = Column(String(10), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    amount = money_property("amount")
