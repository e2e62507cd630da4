"""Unit tests for the webhook idempotency ledger."""

from datetime import datetime, timedelta, timezone

from models import WebhookEvent, WebhookEventStatus
from services.webhook_event_service import WebhookEventService

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestPendingCorrelation:
    def test_find_pending(self, db, user):
        WebhookEventService.create_pending(
            db, "link-token-1", "plaid", user.id, expires_at=NOW + timedelta(hours=4)
        )
        found = WebhookEventService.find_pending_by_webhook_id(db, "link-token-1", now=NOW)
        assert found is not None
        assert found.user_id == user.id
        assert found.status == WebhookEventStatus.PENDING.value
        assert found.webhook_content is None

    def test_expired_record_reported_absent(self, db, user):
        WebhookEventService.create_pending(
            db, "link-token-1", "plaid", user.id, expires_at=NOW - timedelta(seconds=1)
        )
        assert WebhookEventService.find_pending_by_webhook_id(db, "link-token-1", now=NOW) is None

    def test_no_expiry_never_expires(self, db, user):
        WebhookEventService.create_pending(db, "link-token-1", "plaid", user.id)
        later = NOW + timedelta(days=365)
        assert WebhookEventService.find_pending_by_webhook_id(db, "link-token-1", now=later) is not None

    def test_unknown_webhook_id(self, db):
        assert WebhookEventService.find_pending_by_webhook_id(db, "nope", now=NOW) is None


class TestTransitions:
    def test_mark_completed(self, db, user):
        WebhookEventService.create_pending(db, "tok", "plaid", user.id)
        event = WebhookEventService.mark_completed(db, "tok", {"webhook_code": "SESSION_FINISHED"})
        assert event.status == WebhookEventStatus.COMPLETED.value
        assert event.webhook_content == {"webhook_code": "SESSION_FINISHED"}
        assert event.completed_at is not None
        assert WebhookEventService.find_pending_by_webhook_id(db, "tok") is None

    def test_mark_failed(self, db, user):
        WebhookEventService.create_pending(db, "tok", "plaid", user.id)
        event = WebhookEventService.mark_failed(db, "tok", "exchange failed", content={"a": 1})
        assert event.status == WebhookEventStatus.FAILED.value
        assert event.error_message == "exchange failed"
        assert event.webhook_content == {"a": 1}

    def test_terminal_record_left_unchanged(self, db, user):
        WebhookEventService.create_pending(db, "tok", "plaid", user.id)
        WebhookEventService.mark_completed(db, "tok", {"first": True})

        again = WebhookEventService.mark_failed(db, "tok", "late failure")
        assert again.status == WebhookEventStatus.COMPLETED.value
        assert again.error_message is None
        assert again.webhook_content == {"first": True}

        again = WebhookEventService.mark_completed(db, "tok", {"second": True})
        assert again.webhook_content == {"first": True}

    def test_failed_is_terminal(self, db, user):
        WebhookEventService.create_pending(db, "tok", "plaid", user.id)
        WebhookEventService.mark_failed(db, "tok", "boom")
        event = WebhookEventService.mark_completed(db, "tok", {})
        assert event.status == WebhookEventStatus.FAILED.value

    def test_missing_record_returns_none(self, db):
        assert WebhookEventService.mark_completed(db, "missing", {}) is None
        assert WebhookEventService.mark_failed(db, "missing", "x") is None


class TestWindowedDedup:
    def test_first_event_recorded(self, db):
        result = WebhookEventService.check_and_record(
            db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW
        )
        assert result.is_duplicate is False
        record = db.query(WebhookEvent).one()
        assert record.webhook_id == f"plaid:UPDATE_TRANSACTIONS:item-1:{int(NOW.timestamp() * 1000)}"
        assert record.status == WebhookEventStatus.COMPLETED.value

    def test_repeat_inside_window_is_duplicate(self, db):
        WebhookEventService.check_and_record(db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW)
        result = WebhookEventService.check_and_record(
            db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW + timedelta(seconds=299)
        )
        assert result.is_duplicate is True
        assert "Duplicate UPDATE_TRANSACTIONS webhook for item-1" in result.reason
        assert "within 300s window" in result.reason
        assert db.query(WebhookEvent).count() == 1

    def test_repeat_outside_window_is_new(self, db):
        WebhookEventService.check_and_record(db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW)
        result = WebhookEventService.check_and_record(
            db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW + timedelta(seconds=301)
        )
        assert result.is_duplicate is False
        assert db.query(WebhookEvent).count() == 2

    def test_custom_window(self, db):
        WebhookEventService.check_and_record(db, "plaid", "STATUS_ERROR", "item-1", now=NOW)
        result = WebhookEventService.check_and_record(
            db, "plaid", "STATUS_ERROR", "item-1",
            window_seconds=10, now=NOW + timedelta(seconds=11),
        )
        assert result.is_duplicate is False

    def test_different_item_or_type_not_duplicate(self, db):
        WebhookEventService.check_and_record(db, "plaid", "UPDATE_TRANSACTIONS", "item-1", now=NOW)
        assert not WebhookEventService.check_and_record(
            db, "plaid", "UPDATE_TRANSACTIONS", "item-10", now=NOW
        ).is_duplicate
        assert not WebhookEventService.check_and_record(
            db, "plaid", "UPDATE_INVESTMENTS", "item-1", now=NOW
        ).is_duplicate

    def test_same_millisecond_insert_reported_as_duplicate(self, db):
        # A completed record outside the window but with the same key
        db.add(
            WebhookEvent(
                webhook_id=f"plaid:STATUS_ERROR:item-1:{int(NOW.timestamp() * 1000)}",
                provider_name="plaid",
                status=WebhookEventStatus.FAILED.value,
            )
        )
        db.flush()
        result = WebhookEventService.check_and_record(db, "plaid", "STATUS_ERROR", "item-1", now=NOW)
        assert result.is_duplicate is True
