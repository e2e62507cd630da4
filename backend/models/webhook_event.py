"""WebhookEvent model - idempotency and correlation record for provider callbacks."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String, Text

from database import Base
from models.utils import generate_uuid, utcnow


class WebhookEventStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WebhookEvent(Base):
    """Tracks whether a provider callback has been handled.

    ``webhook_id`` is either a provider-issued token captured when linking
    was initiated (e.g. a Plaid link_token) or a derived
    ``provider:event:item:timestamp`` key used for time-windowed dedup.
    COMPLETED and FAILED are terminal.
    """

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    webhook_id = Column(String, unique=True, index=True, nullable=False)
    provider_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default=WebhookEventStatus.PENDING.value)
    webhook_content = Column(JSON, nullable=True)  # Raw payload; null while pending
    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
