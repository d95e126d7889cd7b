"""
Settlement state machine shared by receivable and payable sides.

Both counters move only through move_invoice() and
move_instrument(). Customer and vendor documents go through the
same functions, so the status rules are identical for both:

    invoice:    paid    <=> amount_paid >= total_amount
                partial <=> 0 < amount_paid < total_amount
    instrument: applied <=> amount_applied >= original_amount
                partial <=> 0 < amount_applied < original_amount

Cancelled and written-off invoices are terminal: their counters
never move again, not even through a reversal.
"""

from decimal import Decimal

from ledger_recon.exceptions import StateError
from ledger_recon.models.enums import InvoiceStatus, InstrumentStatus
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.invoice import Invoice

ZERO = Decimal("0")

TERMINAL_INVOICE_STATUSES = (InvoiceStatus.CANCELLED, InvoiceStatus.WRITTEN_OFF)


def invoice_status_for(invoice: Invoice, amount_paid: Decimal) -> InvoiceStatus:
    if amount_paid >= invoice.total_amount:
        return InvoiceStatus.PAID
    if amount_paid > ZERO:
        return InvoiceStatus.PARTIAL
    # Everything reversed: back to an issued, unpaid invoice
    if invoice.status == InvoiceStatus.DRAFT:
        return InvoiceStatus.DRAFT
    return InvoiceStatus.SENT


def instrument_status_for(
    instrument: Instrument, amount_applied: Decimal
) -> InstrumentStatus:
    if amount_applied >= instrument.original_amount:
        return InstrumentStatus.APPLIED
    if amount_applied > ZERO:
        return InstrumentStatus.PARTIAL
    if instrument.requires_approval and instrument.approved_at is not None:
        return InstrumentStatus.APPROVED
    return InstrumentStatus.PENDING


def move_invoice(invoice: Invoice, delta: Decimal) -> None:
    if invoice.status in TERMINAL_INVOICE_STATUSES:
        raise StateError(
            f"Invoice {invoice.number} is {invoice.status.value}; its balance is final"
        )
    new_paid = invoice.amount_paid + delta
    if new_paid < ZERO or new_paid > invoice.total_amount:
        raise StateError(
            f"Invoice {invoice.number}: amount_paid would become {new_paid} "
            f"(total {invoice.total_amount})"
        )
    invoice.amount_paid = new_paid
    invoice.status = invoice_status_for(invoice, new_paid)


def move_instrument(instrument: Instrument, delta: Decimal) -> None:
    new_applied = instrument.amount_applied + delta
    if new_applied < ZERO or new_applied > instrument.original_amount:
        raise StateError(
            f"Instrument {instrument.number}: amount_applied would become "
            f"{new_applied} (original {instrument.original_amount})"
        )
    instrument.amount_applied = new_applied
    instrument.status = instrument_status_for(instrument, new_applied)
