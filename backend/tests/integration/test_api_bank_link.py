"""Integration tests for the bank link API."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from api.deps import get_registry
from integrations.crypto_provider import CryptoProvider
from main import app
from models import Account, BankLink, WebhookEvent, WebhookEventStatus
from tests.fixtures import create_bank_link
from tests.fixtures.mocks import MockWebhookProvider, make_registry

HEADERS = {"X-User-Id": "user-1"}
ETH_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"

COMPLETION = {
    "webhook_type": "LINK",
    "webhook_code": "SESSION_FINISHED",
    "link_token": "link-token-1",
    "public_tokens": ["public-1", "public-2"],
}


def _use_providers(*providers):
    registry = make_registry(*providers)
    app.dependency_overrides[get_registry] = lambda: registry
    return registry


class TestInitiate:
    def test_requires_user_header(self, client, user):
        response = client.post("/api/bank-link/initiate/plaid")
        assert response.status_code == 401

    def test_starts_plaid_link(self, client, db, user):
        response = client.post(
            "/api/bank-link/initiate/plaid", json={"redirect_uri": "https://app/done"}, headers=HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["webhook_id"] == "link-token-1"
        assert data["link_url"] == "https://link.example.com/session/abc"
        assert data["linked_immediately"] is False
        record = db.query(WebhookEvent).filter_by(webhook_id="link-token-1").one()
        assert record.status == WebhookEventStatus.PENDING.value

    def test_unknown_provider(self, client, user):
        response = client.post("/api/bank-link/initiate/teller", headers=HEADERS)
        assert response.status_code == 404
        assert "teller" in response.json()["detail"]

    def test_crypto_wallet_links_immediately(self, client, db, user):
        tatum = MagicMock()
        tatum.get_ethereum_balance.return_value = Decimal("0.25")
        _use_providers(CryptoProvider(client=tatum))

        response = client.post(
            "/api/bank-link/initiate/crypto",
            json={"details": {"walletAddress": ETH_ADDRESS, "network": "ethereum"}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["linked_immediately"] is True
        account = db.query(Account).one()
        assert account.external_account_id == f"ethereum:{ETH_ADDRESS}"
        assert account.current_balance_amount == 250_000_000
        assert account.current_balance_currency == "ETH"

    def test_crypto_invalid_address_is_bad_request(self, client, db, user):
        _use_providers(CryptoProvider(client=MagicMock()))

        response = client.post(
            "/api/bank-link/initiate/crypto",
            json={"details": {"walletAddress": "0x123", "network": "ethereum"}},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert db.query(BankLink).count() == 0


class TestWebhook:
    def test_completion_links_accounts(self, client, db, user):
        client.post("/api/bank-link/initiate/plaid", headers=HEADERS)

        response = client.post("/api/bank-link/webhook/plaid", json=COMPLETION)

        assert response.status_code == 200
        assert response.json() == {"received": True, "outcome": "linked"}
        links = client.get("/api/bank-link", headers=HEADERS).json()
        assert len(links) == 2
        assert all("authentication" not in link for link in links)
        assert db.query(Account).count() == 3

    def test_redelivered_completion_is_not_found(self, client, db, user):
        client.post("/api/bank-link/initiate/plaid", headers=HEADERS)
        client.post("/api/bank-link/webhook/plaid", json=COMPLETION)

        response = client.post("/api/bank-link/webhook/plaid", json=COMPLETION)

        assert response.json()["outcome"] == "not_found"
        assert db.query(BankLink).count() == 2

    def test_needs_no_user_header(self, client, user):
        response = client.post("/api/bank-link/webhook/plaid", json={"webhook_type": "OTHER"})
        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored"

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
    def test_malformed_body(self, client, user, body):
        response = client.post(
            "/api/bank-link/webhook/plaid", content=body, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_bad_signature_is_unauthorized(self, client, db, user):
        _use_providers(MockWebhookProvider(name="plaid", verify=False))

        response = client.post("/api/bank-link/webhook/plaid", json=COMPLETION)

        assert response.status_code == 401
        assert db.query(WebhookEvent).count() == 0

    def test_failed_completion_keeps_failed_record(self, client, db, user):
        _use_providers(MockWebhookProvider(name="plaid", failing_tokens={"access-2"}))
        client.post("/api/bank-link/initiate/plaid", headers=HEADERS)

        response = client.post("/api/bank-link/webhook/plaid", json=COMPLETION)

        assert response.status_code == 502
        db.expire_all()
        record = db.query(WebhookEvent).filter_by(webhook_id="link-token-1").one()
        assert record.status == WebhookEventStatus.FAILED.value
        assert db.query(BankLink).count() == 0

    def test_status_webhook_updates_link(self, client, db, user):
        link = create_bank_link(db, user, item_id="item-1")
        db.commit()

        response = client.post(
            "/api/bank-link/webhook/plaid",
            json={"webhook_type": "ITEM", "webhook_code": "ERROR", "item_id": "item-1"},
        )

        assert response.json()["outcome"] == "status"
        listed = client.get("/api/bank-link", headers=HEADERS).json()
        assert listed[0]["id"] == link.id
        assert listed[0]["status"] == "ERROR"


class TestSync:
    def test_sync_one_link(self, client, db, user):
        link = create_bank_link(db, user, access_token="access-1")
        db.commit()

        response = client.post(f"/api/bank-link/{link.id}/sync", headers=HEADERS)

        assert response.status_code == 200
        accounts = response.json()["accounts"]
        assert [a["external_account_id"] for a in accounts] == ["acc-checking", "acc-savings"]
        assert accounts[0]["current_balance"] == {"amount": 11000, "currency": "USD", "sign": "positive"}

    def test_sync_other_users_link(self, client, db, user, other_user):
        link = create_bank_link(db, other_user)
        db.commit()

        response = client.post(f"/api/bank-link/{link.id}/sync", headers=HEADERS)
        assert response.status_code == 404

    def test_sync_all_reports_failures(self, client, db, user):
        _use_providers(MockWebhookProvider(name="plaid", failing_tokens={"access-2"}))
        create_bank_link(db, user, access_token="access-1", item_id="item-1")
        broken = create_bank_link(db, user, access_token="access-2", item_id="item-2")
        db.commit()

        response = client.post("/api/bank-link/sync-all", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert len(data["accounts"]) == 2
        assert list(data["failures"]) == [broken.id]
