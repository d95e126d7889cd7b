"""
Tests for counterparty, invoice and instrument endpoints.
"""


def create_customer(client, code="CUST-001"):
    response = client.post("/counterparties", json={
        "code": code,
        "name": "Acme Retail",
        "kind": "CUSTOMER",
    })
    assert response.status_code == 201
    return response.json()


def create_invoice(client, counterparty_id, subtotal="1000.00", **extra):
    body = {
        "counterparty_id": counterparty_id,
        "issue_date": "2025-01-15",
        "due_date": "2025-02-14",
        "subtotal": subtotal,
    }
    body.update(extra)
    response = client.post("/invoices", json=body)
    assert response.status_code == 201
    return response.json()


class TestCounterparties:

    def test_create_and_get(self, client):
        created = create_customer(client)

        response = client.get(f"/counterparties/{created['id']}")

        assert response.status_code == 200
        assert response.json()["code"] == "CUST-001"
        assert response.json()["is_active"] is True

    def test_duplicate_code_returns_400(self, client):
        create_customer(client)
        response = client.post("/counterparties", json={
            "code": "CUST-001", "name": "Again", "kind": "CUSTOMER",
        })
        assert response.status_code == 400

    def test_unknown_returns_404(self, client):
        assert client.get("/counterparties/999").status_code == 404


class TestInvoices:

    def test_create_invoice(self, client):
        customer = create_customer(client)

        invoice = create_invoice(client, customer["id"], tax_amount="180.00")

        assert invoice["number"] == "INV-2025-0001"
        assert invoice["direction"] == "RECEIVABLE"
        assert invoice["status"] == "draft"
        assert float(invoice["total_amount"]) == 1180.00
        assert float(invoice["balance_due"]) == 1180.00

    def test_due_before_issue_returns_422(self, client):
        customer = create_customer(client)
        response = client.post("/invoices", json={
            "counterparty_id": customer["id"],
            "issue_date": "2025-02-15",
            "due_date": "2025-01-14",
            "subtotal": "100.00",
        })
        assert response.status_code == 422

    def test_unknown_counterparty_returns_404(self, client):
        response = client.post("/invoices", json={
            "counterparty_id": 999,
            "issue_date": "2025-01-15",
            "due_date": "2025-02-14",
            "subtotal": "100.00",
        })
        assert response.status_code == 404

    def test_send_and_invalid_transition(self, client):
        customer = create_customer(client)
        invoice = create_invoice(client, customer["id"])

        sent = client.post(f"/invoices/{invoice['id']}/send")
        assert sent.status_code == 200
        assert sent.json()["status"] == "sent"

        again = client.post(f"/invoices/{invoice['id']}/send")
        assert again.status_code == 400

    def test_write_off_and_cancel(self, client):
        customer = create_customer(client)
        first = create_invoice(client, customer["id"])
        second = create_invoice(client, customer["id"])

        client.post(f"/invoices/{first['id']}/send")
        written_off = client.post(f"/invoices/{first['id']}/write-off")
        cancelled = client.post(f"/invoices/{second['id']}/cancel")

        assert written_off.json()["status"] == "written_off"
        assert cancelled.json()["status"] == "cancelled"

    def test_mark_overdue(self, client):
        customer = create_customer(client)
        invoice = create_invoice(client, customer["id"])
        client.post(f"/invoices/{invoice['id']}/send")

        response = client.post("/invoices/mark-overdue", params={"as_of": "2025-03-01"})

        assert response.status_code == 200
        assert response.json()["updated"] == 1
        assert client.get(f"/invoices/{invoice['id']}").json()["status"] == "overdue"


class TestInstruments:

    def test_credit_note_lifecycle(self, client):
        customer = create_customer(client)
        response = client.post("/instruments", json={
            "instrument_type": "credit_note",
            "counterparty_id": customer["id"],
            "instrument_date": "2025-01-20",
            "amount": "400.00",
            "reason": "Damaged goods",
        })
        assert response.status_code == 201
        note = response.json()
        assert note["number"] == "CN-2025-0001"
        assert note["status"] == "pending"

        approved = client.post(f"/instruments/{note['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        cancelled = client.post(f"/instruments/{note['id']}/cancel")
        assert cancelled.json()["status"] == "cancelled"

    def test_advance_shows_its_own_label(self, client):
        customer = create_customer(client)
        advance = client.post("/instruments", json={
            "instrument_type": "advance",
            "counterparty_id": customer["id"],
            "instrument_date": "2025-01-20",
            "amount": "700.00",
        }).json()

        assert advance["status"] == "pending"
        assert advance["status_label"] == "active"

    def test_debit_note_for_customer_returns_400(self, client):
        customer = create_customer(client)
        response = client.post("/instruments", json={
            "instrument_type": "debit_note",
            "counterparty_id": customer["id"],
            "instrument_date": "2025-01-20",
            "amount": "10.00",
        })
        assert response.status_code == 400

    def test_unknown_instrument_returns_404(self, client):
        assert client.get("/instruments/999").status_code == 404
        assert client.get("/instruments/999/allocations").status_code == 404
