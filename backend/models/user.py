"""User model - owner of bank links, accounts and transactions."""

from sqlalchemy import JSON, Column, DateTime, String

from database import Base
from models.utils import generate_uuid, utcnow


class User(Base):
    """An application user.

    ``provider_details`` holds per-provider state keyed by provider name,
    e.g. ``{"plaid": {"userToken": "..."}}``, so repeated link flows can
    reuse provider-side user records.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, nullable=True, unique=True)
    timezone = Column(String, nullable=True)  # IANA name; None = settings.DEFAULT_TIMEZONE
    provider_details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
