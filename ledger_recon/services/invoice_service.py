"""
Invoice service — issuing invoices and moving them through the
lifecycle that does not involve money.

Payments and adjustments never touch amount_paid here; that is
the AllocationService's job. This service only creates invoices,
sends, cancels and writes them off, and persists the overdue
status for invoices whose due date has passed.
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_recon.config import get_settings
from ledger_recon.exceptions import (
    InvalidStatusTransition,
    NotFoundError,
    StateError,
    ValidationError,
)
from ledger_recon.models.enums import (
    InvoiceDirection,
    InvoiceStatus,
    direction_for,
)
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.invoice import InvoiceCreate
from ledger_recon.services.audit import record_event
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.numbering import flush_numbered, next_number, number_taken

logger = logging.getLogger(__name__)

INVOICE_PREFIXES = {
    InvoiceDirection.RECEIVABLE: "INV",
    InvoiceDirection.PAYABLE: "BILL",
}


class InvoiceService:

    def __init__(self, db: Session):
        self.db = db
        self.counterparties = CounterpartyService(db)

    def create_invoice(self, request: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice for a customer or supplier.

        The direction follows the counterparty: customers get
        receivable invoices, suppliers payable ones.
        """
        counterparty = self.counterparties.get_counterparty(request.counterparty_id)
        if not counterparty.is_active:
            raise StateError(f"Counterparty {counterparty.code} is not active")

        if request.number and number_taken(self.db, Invoice, request.number):
            raise ValidationError(f"Invoice number {request.number} is already in use")

        direction = direction_for(counterparty.kind)
        number = request.number or next_number(
            self.db, Invoice, INVOICE_PREFIXES[direction], request.issue_date.year
        )

        invoice = Invoice(
            number=number,
            direction=direction,
            counterparty_id=counterparty.id,
            order_reference=request.order_reference,
            subtotal=request.subtotal,
            tax_amount=request.tax_amount,
            total_amount=request.subtotal + request.tax_amount,
            currency=request.currency or get_settings().DEFAULT_CURRENCY,
            issue_date=request.issue_date,
            due_date=request.due_date,
        )
        self.db.add(invoice)
        flush_numbered(self.db, invoice, generated=not request.number)
        return invoice

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def find_by_number(self, number: str) -> Invoice | None:
        return self.db.execute(
            select(Invoice).where(Invoice.number == number)
        ).scalar_one_or_none()

    def _transition(self, invoice: Invoice, new_status: InvoiceStatus) -> Invoice:
        if not invoice.can_transition_to(new_status):
            raise InvalidStatusTransition("invoice", invoice.status, new_status)
        old_status = invoice.status
        invoice.status = new_status
        record_event(
            self.db, f"invoice_{new_status.value}", "invoice", invoice.id,
            number=invoice.number, from_status=old_status.value,
        )
        self.db.flush()
        return invoice

    def send(self, invoice_id: int) -> Invoice:
        return self._transition(self.get_invoice(invoice_id), InvoiceStatus.SENT)

    def cancel(self, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.amount_paid > 0:
            raise StateError(
                f"Invoice {invoice.number} has allocations; reverse them first"
            )
        return self._transition(invoice, InvoiceStatus.CANCELLED)

    def write_off(self, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.balance_due <= 0:
            raise StateError(f"Invoice {invoice.number} has nothing to write off")
        return self._transition(invoice, InvoiceStatus.WRITTEN_OFF)

    def mark_overdue(self, as_of: date | None = None) -> int:
        """
        Persist ``overdue`` for sent or partially paid invoices
        past their due date. Returns how many were updated.
        """
        as_of = as_of or date.today()
        candidates = self.db.execute(
            select(Invoice).where(
                Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.PARTIAL]),
                Invoice.due_date < as_of,
            )
        ).scalars().all()

        updated = 0
        for invoice in candidates:
            if invoice.balance_due > 0:
                invoice.status = InvoiceStatus.OVERDUE
                updated += 1

        self.db.flush()
        if updated:
            logger.info("Marked %d invoices overdue as of %s", updated, as_of)
        return updated
