"""
Tests for journal API endpoints.

These test the HTTP layer — status codes, response format,
and error handling. Business logic is tested in
test_journal_service.py.
"""


class TestCreateAccount:

    def test_create_account_returns_201(self, client):
        response = client.post("/ledger/accounts", json={
            "code": "1100",
            "name": "Cash/Bank",
            "account_type": "ASSET",
            "currency": "USD",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "1100"
        assert data["account_type"] == "ASSET"
        assert data["is_active"] is True

    def test_duplicate_code_returns_400(self, client):
        body = {"code": "1100", "name": "Cash", "account_type": "ASSET"}
        client.post("/ledger/accounts", json=body)
        response = client.post("/ledger/accounts", json=body)
        assert response.status_code == 400

    def test_same_code_in_another_currency_returns_201(self, client):
        body = {"code": "1100", "name": "Cash", "account_type": "ASSET"}
        client.post("/ledger/accounts", json=body)
        response = client.post("/ledger/accounts", json={**body, "currency": "EUR"})
        assert response.status_code == 201
        assert response.json()["currency"] == "EUR"


class TestBalanceAndEntries:

    def test_balance_of_unknown_account_returns_404(self, client):
        response = client.get("/ledger/accounts/999/balance")
        assert response.status_code == 404

    def test_new_account_balance_is_zero(self, client):
        account = client.post("/ledger/accounts", json={
            "code": "1200",
            "name": "Accounts Receivable",
            "account_type": "ASSET",
        }).json()

        response = client.get(f"/ledger/accounts/{account['id']}/balance")

        assert response.status_code == 200
        assert float(response.json()["balance"]) == 0

    def test_entries_for_unknown_reference_is_empty(self, client):
        response = client.get(
            "/ledger/entries",
            params={"reference_type": "credit_note", "reference_id": 1},
        )
        assert response.status_code == 200
        assert response.json() == []

    def test_integrity_of_empty_journal(self, client):
        response = client.get("/ledger/integrity")
        assert response.status_code == 200
        assert response.json()["is_balanced"] is True
