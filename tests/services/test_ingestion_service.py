"""
Tests for point-of-sale ingestion.

Tests cover:
- Credit note, debit note and receipt channels
- Journal lines posted for the applied amount
- Idempotent replay of a repeated external transaction id,
  including a duplicate that loses the race on the unique claim
- Journal accounts kept per currency
- Document number clashes reported as retryable conflicts
- Shared-secret auth, failing closed when no key is configured
- Per-terminal sliding-window rate limit that forgets idle terminals
- Payload validation and lookup/mismatch error codes
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

import ledger_recon.services.instrument_service as instrument_module
from ledger_recon.config import Settings
from ledger_recon.exceptions import IngestionError
from ledger_recon.models.allocation import Allocation
from ledger_recon.models.enums import CounterpartyKind, EntryType, InstrumentStatus
from ledger_recon.models.external_submission import ExternalSubmission
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.invoice import Invoice
from ledger_recon.models.ledger_account import LedgerAccount
from ledger_recon.models.ledger_entry import LedgerEntry
from ledger_recon.services.ingestion_service import (
    IngestionService,
    SlidingWindowRateLimiter,
)
from ledger_recon.services.invoice_service import InvoiceService
from ledger_recon.services.journal_service import JournalService

POS_KEY = "test-pos-key"


def count(db_session, model) -> int:
    return db_session.execute(select(func.count(model.id))).scalar()


def payload(**overrides):
    body = {
        "terminal_id": "POS-01",
        "external_transaction_id": "TXN-1001",
        "counterparty_code": "CUST-001",
        "amount": "150.00",
        "reason": "Damaged goods returned",
    }
    body.update(overrides)
    return body


@pytest.fixture
def service(db_session, pos_settings, rate_limiter):
    return IngestionService(db_session, settings=pos_settings, rate_limiter=rate_limiter)


@pytest.fixture
def invoice(customer, make_invoice):
    return make_invoice(customer, "1000", number="INV-2025-0001")


def miss_first_lookup(monkeypatch, service):
    """The up-front idempotency lookup misses, as if a duplicate raced it."""
    real_find = service.find_submission
    lookups = []

    def find(external_transaction_id):
        lookups.append(external_transaction_id)
        if len(lookups) == 1:
            return None
        return real_find(external_transaction_id)

    monkeypatch.setattr(service, "find_submission", find)
    return lookups


# --- Channels ---

class TestCreditNotes:

    def test_applied_to_linked_invoice(self, db_session, service, invoice):
        result = service.ingest(
            "credit_note", payload(linked_invoice_number="INV-2025-0001"), POS_KEY
        )
        db_session.commit()

        assert result.success is True
        assert result.instrument_number.startswith("CN-")
        assert result.amount_applied == Decimal("150")
        assert result.applied_to_invoice == "INV-2025-0001"
        assert result.invoice_new_balance == Decimal("850")
        assert result.status == "applied"

        instrument = db_session.get(Instrument, result.instrument_id)
        assert instrument.linked_invoice_id == invoice.id
        assert instrument.amount_applied == Decimal("150")
        assert db_session.get(Invoice, invoice.id).amount_paid == Decimal("150")

    def test_posts_balanced_journal_lines(self, db_session, service, invoice):
        result = service.ingest(
            "credit_note", payload(linked_invoice_number="INV-2025-0001"), POS_KEY
        )
        db_session.commit()

        lines = JournalService(db_session).entries_for_reference(
            "credit_note", result.instrument_id
        )
        assert len(lines) == 2
        debit = next(line for line in lines if line.entry_type == EntryType.DEBIT)
        credit = next(line for line in lines if line.entry_type == EntryType.CREDIT)
        assert debit.amount == credit.amount == Decimal("150")
        assert debit.account.code == "4100"
        assert credit.account.code == "1200"

    def test_without_invoice_stays_pending(self, db_session, service, customer):
        result = service.ingest("credit_note", payload(), POS_KEY)
        db_session.commit()

        assert result.amount_applied == Decimal("0")
        assert result.applied_to_invoice is None
        assert result.invoice_new_balance is None
        assert result.status == "pending"
        assert count(db_session, LedgerEntry) == 0

    def test_apply_immediately_false(self, db_session, service, invoice):
        result = service.ingest(
            "credit_note",
            payload(linked_invoice_number="INV-2025-0001", apply_immediately=False),
            POS_KEY,
        )
        db_session.commit()

        assert result.amount_applied == Decimal("0")
        assert result.invoice_new_balance == Decimal("1000")
        assert db_session.get(Instrument, result.instrument_id).status == InstrumentStatus.PENDING

    def test_amount_above_balance_is_capped(self, db_session, service, customer, make_invoice):
        make_invoice(customer, "100", number="INV-2025-0009")

        result = service.ingest(
            "credit_note",
            payload(linked_invoice_number="INV-2025-0009", amount="150"),
            POS_KEY,
        )

        assert result.amount_applied == Decimal("100")
        assert result.invoice_new_balance == Decimal("0")
        assert result.status == "partial"


class TestDebitNotesAndReceipts:

    def test_debit_note_for_supplier(self, db_session, service, supplier, make_invoice):
        make_invoice(supplier, "600", number="BILL-2025-0001")

        result = service.ingest(
            "debit_note",
            payload(counterparty_code="SUPP-001", linked_invoice_number="BILL-2025-0001"),
            POS_KEY,
        )
        db_session.commit()

        assert result.instrument_number.startswith("DN-")
        assert result.invoice_new_balance == Decimal("450")
        lines = JournalService(db_session).entries_for_reference(
            "debit_note", result.instrument_id
        )
        codes = {line.entry_type: line.account.code for line in lines}
        assert codes == {EntryType.DEBIT: "2100", EntryType.CREDIT: "5100"}

    def test_receipt_for_customer(self, db_session, service, invoice):
        result = service.ingest(
            "receipt",
            payload(linked_invoice_number="INV-2025-0001", payment_method="card"),
            POS_KEY,
        )
        db_session.commit()

        assert result.instrument_number.startswith("RCP-")
        instrument = db_session.get(Instrument, result.instrument_id)
        assert instrument.payment_method == "card"
        lines = JournalService(db_session).entries_for_reference(
            "receipt", result.instrument_id
        )
        codes = {line.entry_type: line.account.code for line in lines}
        assert codes == {EntryType.DEBIT: "1100", EntryType.CREDIT: "1200"}

    def test_receipts_in_two_currencies_post_to_separate_accounts(
        self, db_session, service, customer, invoice, make_invoice
    ):
        make_invoice(customer, "500", number="INV-2025-0050", currency="EUR")

        usd = service.ingest(
            "receipt", payload(linked_invoice_number="INV-2025-0001"), POS_KEY
        )
        db_session.commit()
        eur = service.ingest(
            "receipt",
            payload(
                external_transaction_id="TXN-2002",
                linked_invoice_number="INV-2025-0050",
            ),
            POS_KEY,
        )
        db_session.commit()

        assert usd.amount_applied == Decimal("150")
        assert eur.amount_applied == Decimal("150")
        assert db_session.get(Instrument, eur.instrument_id).currency == "EUR"

        lines = JournalService(db_session).entries_for_reference(
            "receipt", eur.instrument_id
        )
        assert {line.currency for line in lines} == {"EUR"}
        assert {line.account.currency for line in lines} == {"EUR"}

        cash_accounts = db_session.execute(
            select(LedgerAccount).where(LedgerAccount.code == "1100")
        ).scalars().all()
        assert {a.currency for a in cash_accounts} == {"USD", "EUR"}


# --- Idempotency ---

class TestIdempotency:

    def test_repeat_returns_first_result_and_creates_nothing(
        self, db_session, service, invoice
    ):
        body = payload(linked_invoice_number="INV-2025-0001")
        first = service.ingest("credit_note", body, POS_KEY)
        db_session.commit()

        counts = {
            model: count(db_session, model)
            for model in (Instrument, Allocation, LedgerEntry, ExternalSubmission)
        }

        second = service.ingest("credit_note", body, POS_KEY)
        db_session.commit()

        assert second == first
        assert {
            model: count(db_session, model) for model in counts
        } == counts
        assert db_session.get(Invoice, invoice.id).amount_paid == Decimal("150")

    def test_replay_wins_over_changed_payload(self, db_session, service, invoice):
        first = service.ingest("credit_note", payload(), POS_KEY)
        db_session.commit()

        second = service.ingest("credit_note", payload(amount="999"), POS_KEY)

        assert second.instrument_id == first.instrument_id
        assert second.amount == Decimal("150")

    def test_concurrent_duplicate_answers_with_winners_result(
        self, db_session, service, session_factory, pos_settings, rate_limiter,
        invoice, monkeypatch,
    ):
        body = payload(linked_invoice_number="INV-2025-0001")

        # Another worker processes the same transaction and commits first
        other_db = session_factory()
        try:
            winner = IngestionService(
                other_db, settings=pos_settings, rate_limiter=rate_limiter
            ).ingest("credit_note", body, POS_KEY)
            other_db.commit()
        finally:
            other_db.close()

        # ...after this worker's lookup already came back empty
        lookups = miss_first_lookup(monkeypatch, service)

        loser = service.ingest("credit_note", body, POS_KEY)
        db_session.commit()

        assert len(lookups) == 2
        assert loser == winner
        assert count(db_session, Instrument) == 1
        assert count(db_session, Allocation) == 1
        assert count(db_session, ExternalSubmission) == 1
        assert db_session.get(Invoice, invoice.id).amount_paid == Decimal("150")

    def test_duplicate_still_in_flight_is_a_conflict(
        self, db_session, service, session_factory, customer, monkeypatch
    ):
        other_db = session_factory()
        try:
            other_db.add(ExternalSubmission(
                external_transaction_id="TXN-1001",
                terminal_id="POS-01",
                channel="credit_note",
            ))
            other_db.commit()
        finally:
            other_db.close()

        miss_first_lookup(monkeypatch, service)
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(), POS_KEY)

        assert exc_info.value.code == "DUPLICATE_IN_PROGRESS"
        assert exc_info.value.status_code == 409
        db_session.rollback()
        assert count(db_session, Instrument) == 0


# --- Guards ---

class TestAuthentication:

    def test_wrong_key_rejected(self, service, customer):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(), "wrong-key")
        assert exc_info.value.code == "UNAUTHORIZED"
        assert exc_info.value.status_code == 401

    def test_missing_key_rejected(self, service, customer):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(), None)
        assert exc_info.value.code == "UNAUTHORIZED"

    def test_fails_closed_without_configured_key(self, db_session, rate_limiter, customer):
        settings = Settings()
        settings.POS_API_KEY = None
        settings.POS_ALLOW_UNAUTHENTICATED = False
        service = IngestionService(db_session, settings=settings, rate_limiter=rate_limiter)

        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(), None)
        assert exc_info.value.code == "UNAUTHORIZED"
        assert count(db_session, Instrument) == 0

    def test_open_mode_must_be_explicit(self, db_session, rate_limiter, customer):
        settings = Settings()
        settings.POS_API_KEY = None
        settings.POS_ALLOW_UNAUTHENTICATED = True
        service = IngestionService(db_session, settings=settings, rate_limiter=rate_limiter)

        result = service.ingest("credit_note", payload(), None)

        assert result.success is True


class TestRateLimit:

    def test_limit_per_terminal(self, db_session, service, customer):
        for n in range(5):
            service.ingest(
                "credit_note", payload(external_transaction_id=f"TXN-{n}"), POS_KEY
            )

        with pytest.raises(IngestionError) as exc_info:
            service.ingest(
                "credit_note", payload(external_transaction_id="TXN-5"), POS_KEY
            )
        assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"
        assert exc_info.value.status_code == 429

        other_terminal = service.ingest(
            "credit_note",
            payload(terminal_id="POS-02", external_transaction_id="TXN-6"),
            POS_KEY,
        )
        assert other_terminal.success is True

    def test_window_slides(self):
        now = [1000.0]
        limiter = SlidingWindowRateLimiter(2, clock=lambda: now[0])

        assert limiter.allow("POS-01")
        assert limiter.allow("POS-01")
        assert not limiter.allow("POS-01")

        now[0] += 59
        assert not limiter.allow("POS-01")

        now[0] += 1
        assert limiter.allow("POS-01")

    def test_idle_terminals_are_forgotten(self):
        now = [1000.0]
        limiter = SlidingWindowRateLimiter(2, clock=lambda: now[0])
        limiter.allow("POS-01")
        limiter.allow("POS-02")
        assert limiter.tracked_keys() == {"POS-01", "POS-02"}

        now[0] += 61
        assert limiter.allow("POS-03")

        assert limiter.tracked_keys() == {"POS-03"}


# --- Document numbers ---

class TestNumberClash:

    def test_clash_is_a_retryable_conflict(
        self, db_session, service, invoice, monkeypatch
    ):
        first = service.ingest("credit_note", payload(), POS_KEY)
        db_session.commit()

        # A concurrent writer took the number this call generated
        monkeypatch.setattr(
            instrument_module, "next_number",
            lambda *args, **kwargs: first.instrument_number,
        )
        retry_body = payload(external_transaction_id="TXN-3003")
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", retry_body, POS_KEY)
        db_session.rollback()

        assert exc_info.value.code == "NUMBER_CONFLICT"
        assert exc_info.value.status_code == 409
        assert count(db_session, Instrument) == 1
        assert service.find_submission("TXN-3003") is None

        # The terminal retries the same transaction and it goes through
        monkeypatch.undo()
        again = service.ingest("credit_note", retry_body, POS_KEY)
        db_session.commit()

        assert again.instrument_number != first.instrument_number
        assert count(db_session, Instrument) == 2


class TestValidation:

    @pytest.mark.parametrize("body", [
        payload(amount="0"),
        payload(amount="-5"),
        payload(amount="abc"),
        payload(amount="1000000000"),
        payload(reason=""),
        {"terminal_id": "POS-01"},
        ["not", "an", "object"],
    ])
    def test_invalid_payload(self, service, customer, body):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", body, POS_KEY)
        assert exc_info.value.code == "INVALID_PAYLOAD"
        assert exc_info.value.status_code == 400

    def test_unknown_customer(self, service):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(counterparty_code="NOPE"), POS_KEY)
        assert exc_info.value.code == "CUSTOMER_NOT_FOUND"
        assert exc_info.value.status_code == 404

    def test_customer_code_on_supplier_channel(self, service, customer):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest("debit_note", payload(), POS_KEY)
        assert exc_info.value.code == "SUPPLIER_NOT_FOUND"

    def test_inactive_customer(self, db_session, service, customer):
        customer.is_active = False
        db_session.commit()

        with pytest.raises(IngestionError) as exc_info:
            service.ingest("credit_note", payload(), POS_KEY)
        assert exc_info.value.code == "CUSTOMER_NOT_FOUND"

    def test_unknown_invoice(self, service, customer):
        with pytest.raises(IngestionError) as exc_info:
            service.ingest(
                "credit_note", payload(linked_invoice_number="INV-0000"), POS_KEY
            )
        assert exc_info.value.code == "INVOICE_NOT_FOUND"
        assert exc_info.value.status_code == 404

    def test_invoice_of_another_customer(
        self, db_session, service, customer, make_counterparty, make_invoice
    ):
        other = make_counterparty("CUST-002")
        make_invoice(other, "500", number="INV-2025-0042")

        with pytest.raises(IngestionError) as exc_info:
            service.ingest(
                "credit_note", payload(linked_invoice_number="INV-2025-0042"), POS_KEY
            )
        assert exc_info.value.code == "CUSTOMER_MISMATCH"
        assert exc_info.value.status_code == 400
        assert count(db_session, ExternalSubmission) == 0

    def test_supplier_invoice_mismatch(
        self, service, supplier, make_counterparty, make_invoice
    ):
        other = make_counterparty("SUPP-002", CounterpartyKind.SUPPLIER)
        make_invoice(other, "500", number="BILL-2025-0042")

        with pytest.raises(IngestionError) as exc_info:
            service.ingest(
                "debit_note",
                payload(counterparty_code="SUPP-001", linked_invoice_number="BILL-2025-0042"),
                POS_KEY,
            )
        assert exc_info.value.code == "SUPPLIER_MISMATCH"

    def test_cancelled_invoice_reported(self, db_session, service, customer, make_invoice):
        invoice = make_invoice(
            customer, "500", number="INV-2025-0077",
            due_date=date.today() + timedelta(days=5),
        )
        InvoiceService(db_session).cancel(invoice.id)
        db_session.commit()

        with pytest.raises(IngestionError) as exc_info:
            service.ingest(
                "credit_note", payload(linked_invoice_number="INV-2025-0077"), POS_KEY
            )
        assert exc_info.value.code == "INVOICE_NOT_ALLOCATABLE"
