"""BankLink model - a user's connection to one provider credential set."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class BankLinkStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"
    PENDING_REAUTH = "PENDING_REAUTH"


class BankLink(Base):
    """A linked provider connection (a Plaid Item, a crypto wallet, ...).

    ``authentication`` is opaque to everything except the owning provider.
    Plaid links carry ``{"accessToken", "itemId"}``; the item id is how
    update and status webhooks find their link.
    """

    __tablename__ = "bank_links"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    provider_name = Column(String, nullable=False)  # e.g., "plaid", "crypto"
    authentication = Column(JSON, nullable=False, default=dict)
    account_ids = Column(JSON, nullable=False, default=list)  # external account ids
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default=BankLinkStatus.OK.value)
    status_date = Column(DateTime, nullable=True)
    status_body = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    accounts = relationship("Account", back_populates="bank_link")
