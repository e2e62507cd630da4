"""Integration tests for the transactions API and the balances it drives."""

HEADERS = {"X-User-Id": "user-1"}


def _create(client, account_id, amount, sign="positive", day="2024-01-15", **extra):
    return client.post(
        "/api/transactions",
        json={
            "account_id": account_id,
            "amount": {"amount": amount, "currency": "USD", "sign": sign},
            "date": day,
            **extra,
        },
        headers=HEADERS,
    )


def _balance(client, account_id):
    money = client.get(f"/api/accounts/{account_id}", headers=HEADERS).json()["current_balance"]
    return money["amount"] if money["sign"] == "positive" else -money["amount"]


class TestTransactionsApi:
    def test_create_moves_balance_and_writes_snapshot(self, client, account):
        response = _create(client, account.id, 50000, merchant_name="Payroll")

        assert response.status_code == 201
        data = response.json()
        assert data["merchant_name"] == "Payroll"
        assert data["amount"] == {"amount": 50000, "currency": "USD", "sign": "positive"}
        assert _balance(client, account.id) == 50000

        snapshots = client.get(f"/api/accounts/{account.id}/snapshots", headers=HEADERS).json()
        assert len(snapshots) == 1
        assert snapshots[0]["snapshot_date"] == "2024-01-15"
        assert snapshots[0]["snapshot_type"] == "USER_UPDATE"
        assert snapshots[0]["current_balance"]["amount"] == 50000

    def test_update_and_delete(self, client, account):
        txn_id = _create(client, account.id, 1000).json()["id"]

        response = client.patch(
            f"/api/transactions/{txn_id}",
            json={"amount": {"amount": 400, "currency": "USD", "sign": "negative"}, "pending": True},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["pending"] is True
        assert _balance(client, account.id) == -400

        assert client.delete(f"/api/transactions/{txn_id}", headers=HEADERS).status_code == 204
        assert _balance(client, account.id) == 0
        assert client.get(f"/api/transactions/{txn_id}", headers=HEADERS).status_code == 404

    def test_list_filters_by_account(self, client, account):
        _create(client, account.id, 100, day="2024-01-10")
        _create(client, account.id, 200, day="2024-01-12")

        listed = client.get("/api/transactions", params={"account_id": account.id}, headers=HEADERS).json()
        assert [t["date"] for t in listed] == ["2024-01-12", "2024-01-10"]
        assert client.get("/api/transactions", params={"account_id": "other"}, headers=HEADERS).json() == []

    def test_other_users_account_is_not_found(self, client, db, account, other_user):
        response = client.post(
            "/api/transactions",
            json={
                "account_id": account.id,
                "amount": {"amount": 100, "currency": "USD", "sign": "positive"},
                "date": "2024-01-15",
            },
            headers={"X-User-Id": other_user.id},
        )
        assert response.status_code == 404

    def test_negative_amount_rejected(self, client, account):
        response = _create(client, account.id, -100)
        assert response.status_code == 422

    def test_requires_user_header(self, client, account):
        assert client.get("/api/transactions").status_code == 401

    def test_patch_rejects_null_for_required_fields(self, client, account):
        txn_id = _create(client, account.id, 1000).json()["id"]

        for body in ({"date": None}, {"pending": None}):
            response = client.patch(f"/api/transactions/{txn_id}", json=body, headers=HEADERS)
            assert response.status_code == 422

        data = client.get(f"/api/transactions/{txn_id}", headers=HEADERS).json()
        assert data["date"] == "2024-01-15"
        assert data["pending"] is False
        assert _balance(client, account.id) == 1000
