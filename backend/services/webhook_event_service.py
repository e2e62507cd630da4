"""Webhook idempotency ledger.

Two ways of making provider callbacks take effect at most once:

- Pre-registered correlation: a PENDING record is written when a link
  flow starts, keyed by the token the provider will echo back. Only a
  PENDING, unexpired record can be completed, and only once.
- Time-windowed dedup: for callbacks with no pre-registered token
  (status and update hints), a COMPLETED record keyed
  ``provider:event:item:epoch_millis`` suppresses repeats inside a window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from models import WebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    is_duplicate: bool
    reason: str | None = None


def _naive_utc(value: datetime | None) -> datetime:
    """Normalize to naive UTC, the form DateTime columns store."""
    if value is None:
        value = datetime.now(timezone.utc)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class WebhookEventService:
    """Persistence for webhook idempotency records."""

    @staticmethod
    def create_pending(
        db: Session,
        webhook_id: str,
        provider_name: str,
        user_id: str | None,
        expires_at: datetime | None = None,
    ) -> WebhookEvent:
        """Register a correlation token the provider will send back later."""
        event = WebhookEvent(
            webhook_id=webhook_id,
            provider_name=provider_name,
            user_id=user_id,
            status=WebhookEventStatus.PENDING.value,
            expires_at=_naive_utc(expires_at) if expires_at is not None else None,
        )
        db.add(event)
        db.flush()
        logger.info("Registered pending webhook %s for %s", webhook_id, provider_name)
        return event

    @staticmethod
    def find_pending_by_webhook_id(
        db: Session, webhook_id: str, now: datetime | None = None
    ) -> WebhookEvent | None:
        """Return the record only if it is PENDING and not yet expired."""
        now = _naive_utc(now)
        return (
            db.query(WebhookEvent)
            .filter(
                WebhookEvent.webhook_id == webhook_id,
                WebhookEvent.status == WebhookEventStatus.PENDING.value,
                or_(WebhookEvent.expires_at.is_(None), WebhookEvent.expires_at > now),
            )
            .first()
        )

    @staticmethod
    def _transition(
        db: Session,
        webhook_id: str,
        status: WebhookEventStatus,
        content: Any,
        error_message: str | None = None,
    ) -> WebhookEvent | None:
        event = db.query(WebhookEvent).filter(WebhookEvent.webhook_id == webhook_id).first()
        if event is None:
            logger.warning("Webhook %s not found; cannot mark %s", webhook_id, status.value)
            return None
        if event.status != WebhookEventStatus.PENDING.value:
            logger.info(
                "Webhook %s already %s; leaving unchanged", webhook_id, event.status
            )
            return event

        event.status = status.value
        event.webhook_content = content
        event.error_message = error_message
        event.completed_at = _naive_utc(None)
        db.flush()
        return event

    @classmethod
    def mark_completed(cls, db: Session, webhook_id: str, content: Any) -> WebhookEvent | None:
        """PENDING -> COMPLETED. No-op on terminal records."""
        return cls._transition(db, webhook_id, WebhookEventStatus.COMPLETED, content)

    @classmethod
    def mark_failed(
        cls,
        db: Session,
        webhook_id: str,
        error_message: str,
        content: Any = None,
    ) -> WebhookEvent | None:
        """PENDING -> FAILED. No-op on terminal records."""
        return cls._transition(
            db, webhook_id, WebhookEventStatus.FAILED, content, error_message=error_message
        )

    @staticmethod
    def check_and_record(
        db: Session,
        provider_name: str,
        event_type: str,
        item_id: str,
        user_id: str | None = None,
        window_seconds: int | None = None,
        now: datetime | None = None,
    ) -> DedupResult:
        """Report whether an equivalent event completed within the window.

        When it did not, a COMPLETED record is written so the next
        equivalent event inside the window is seen as a duplicate.
        Never raises for duplicates.
        """
        if window_seconds is None:
            window_seconds = settings.WEBHOOK_DEDUP_WINDOW_SECONDS
        now = _naive_utc(now)
        base_key = f"{provider_name}:{event_type}:{item_id}"
        window_start = now - timedelta(seconds=window_seconds)

        recent = (
            db.query(WebhookEvent)
            .filter(
                WebhookEvent.webhook_id.startswith(f"{base_key}:", autoescape=True),
                WebhookEvent.status == WebhookEventStatus.COMPLETED.value,
                WebhookEvent.completed_at >= window_start,
            )
            .order_by(WebhookEvent.completed_at.desc())
            .first()
        )
        if recent is not None:
            reason = (
                f"Duplicate {event_type} webhook for {item_id}: already processed at "
                f"{recent.completed_at.isoformat()} (within {window_seconds}s window)"
            )
            logger.info("%s", reason)
            return DedupResult(is_duplicate=True, reason=reason)

        epoch_millis = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
        record = WebhookEvent(
            webhook_id=f"{base_key}:{epoch_millis}",
            provider_name=provider_name,
            user_id=user_id,
            status=WebhookEventStatus.COMPLETED.value,
            webhook_content={"event_type": event_type, "item_id": item_id},
            completed_at=now,
        )
        try:
            with db.begin_nested():
                db.add(record)
                db.flush()
        except IntegrityError:
            # Another handler recorded the same key at the same millisecond
            reason = f"Duplicate {event_type} webhook for {item_id}: concurrent record"
            logger.info("%s", reason)
            return DedupResult(is_duplicate=True, reason=reason)

        return DedupResult(is_duplicate=False)
