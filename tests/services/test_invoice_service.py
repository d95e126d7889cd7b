"""
Tests for invoice creation and lifecycle.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from ledger_recon.exceptions import InvalidStatusTransition, NotFoundError, StateError
from ledger_recon.models.enums import InstrumentType, InvoiceDirection, InvoiceStatus
from ledger_recon.schemas.invoice import InvoiceCreate
from ledger_recon.services.allocation_service import AllocationService
from ledger_recon.services.invoice_service import InvoiceService
from ledger_recon.services.numbering import format_number


class TestCreateInvoice:

    def test_receivable_invoice_for_customer(self, db_session, customer):
        invoice = InvoiceService(db_session).create_invoice(InvoiceCreate(
            counterparty_id=customer.id,
            issue_date=date(2025, 1, 15),
            due_date=date(2025, 2, 14),
            subtotal=Decimal("1000.00"),
            tax_amount=Decimal("180.00"),
        ))
        db_session.commit()

        assert invoice.number == "INV-2025-0001"
        assert invoice.direction == InvoiceDirection.RECEIVABLE
        assert invoice.total_amount == Decimal("1180.00")
        assert invoice.balance_due == Decimal("1180.00")
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.currency == "USD"

    def test_payable_invoice_for_supplier(self, db_session, supplier, make_invoice):
        bill = make_invoice(supplier, "400", issue_date=date(2025, 1, 15))

        assert bill.number == "BILL-2025-0001"
        assert bill.direction == InvoiceDirection.PAYABLE

    def test_numbers_are_sequential_per_year(self, db_session, customer, make_invoice):
        first = make_invoice(customer, "10", issue_date=date(2025, 1, 1))
        second = make_invoice(customer, "10", issue_date=date(2025, 5, 1))
        other_year = make_invoice(customer, "10", issue_date=date(2026, 1, 1))

        assert first.number == "INV-2025-0001"
        assert second.number == "INV-2025-0002"
        assert other_year.number == "INV-2026-0001"

    def test_due_before_issue_rejected(self, customer):
        with pytest.raises(ValueError, match="due_date"):
            InvoiceCreate(
                counterparty_id=customer.id,
                issue_date=date(2025, 2, 1),
                due_date=date(2025, 1, 1),
                subtotal=Decimal("100"),
            )

    def test_unknown_counterparty(self, db_session):
        with pytest.raises(NotFoundError):
            InvoiceService(db_session).create_invoice(InvoiceCreate(
                counterparty_id=77,
                issue_date=date(2025, 1, 1),
                due_date=date(2025, 1, 31),
                subtotal=Decimal("100"),
            ))


def test_format_number():
    assert format_number("CN", 2025, 7) == "CN-2025-0007"


class TestLifecycle:

    def test_send_then_write_off(self, db_session, customer, make_invoice):
        invoice = make_invoice(customer, "100")
        service = InvoiceService(db_session)

        service.send(invoice.id)
        service.write_off(invoice.id)
        db_session.commit()

        assert invoice.status == InvoiceStatus.WRITTEN_OFF

    def test_draft_cannot_be_written_off(self, db_session, customer, make_invoice):
        invoice = make_invoice(customer, "100")

        with pytest.raises(InvalidStatusTransition):
            InvoiceService(db_session).write_off(invoice.id)

    def test_cancelled_invoice_is_final(self, db_session, customer, make_invoice):
        invoice = make_invoice(customer, "100")
        service = InvoiceService(db_session)
        service.cancel(invoice.id)

        with pytest.raises(InvalidStatusTransition):
            service.send(invoice.id)

    def test_cannot_cancel_with_allocations(
        self, db_session, customer, make_invoice, make_instrument
    ):
        invoice = make_invoice(customer, "100")
        receipt = make_instrument(customer, "40", InstrumentType.RECEIPT)
        AllocationService(db_session).allocate(receipt.id, invoice.id, Decimal("40"))
        db_session.commit()

        with pytest.raises(StateError, match="reverse them first"):
            InvoiceService(db_session).cancel(invoice.id)


class TestMarkOverdue:

    def test_only_open_invoices_past_due(
        self, db_session, customer, make_invoice, make_instrument
    ):
        as_of = date(2025, 6, 30)
        service = InvoiceService(db_session)

        late = make_invoice(
            customer, "100",
            issue_date=as_of - timedelta(days=40), due_date=as_of - timedelta(days=10),
        )
        not_due = make_invoice(
            customer, "100", issue_date=as_of, due_date=as_of + timedelta(days=10),
        )
        draft = make_invoice(
            customer, "100",
            issue_date=as_of - timedelta(days=40), due_date=as_of - timedelta(days=10),
        )
        service.send(late.id)
        service.send(not_due.id)
        db_session.commit()

        assert late.effective_status(as_of) == InvoiceStatus.OVERDUE
        assert service.mark_overdue(as_of) == 1
        db_session.commit()

        assert late.status == InvoiceStatus.OVERDUE
        assert not_due.status == InvoiceStatus.SENT
        assert draft.status == InvoiceStatus.DRAFT
