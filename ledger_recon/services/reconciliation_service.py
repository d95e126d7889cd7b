"""
Reconciliation service — the counterparty statement.

Builds a statement for one counterparty and period from the
source records themselves:

- opening balance: face amount of every invoice dated before the
  period, less the face amount of every instrument dated before it
- in-period invoices become debits, in-period instruments credits
- lines are ordered by date; on the same date invoices come before
  instruments, and each group keeps its (date, id) fetch order
- running balance walks from the opening balance
- closing balance = opening + debits - credits

Instruments count at their face amount on the day they were
raised, not at whatever amount_applied says today, so the history
does not shift when allocations are made later.

A mismatch between the running balance and the closing formula is
reported as a discrepancy, never patched over.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ledger_recon.exceptions import ValidationError
from ledger_recon.models.enums import (
    InvoiceDirection,
    InvoiceStatus,
    InstrumentStatus,
    InstrumentType,
)
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.reports import (
    Discrepancy,
    ReconciliationStatement,
    StatementLine,
)
from ledger_recon.services.counterparty_service import CounterpartyService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TOLERANCE = Decimal("0.01")

EXCLUDED_INVOICE_STATUSES = (InvoiceStatus.CANCELLED,)
EXCLUDED_INSTRUMENT_STATUSES = (
    InstrumentStatus.CANCELLED,
    InstrumentStatus.REVERSED,
)

DESCRIPTIONS = {
    InvoiceDirection.RECEIVABLE: {
        "invoice": "Sales Invoice",
        InstrumentType.RECEIPT: "Payment Received",
        InstrumentType.PAYMENT: "Payment Received",
        InstrumentType.CREDIT_NOTE: "Credit Note",
        InstrumentType.DEBIT_NOTE: "Debit Note",
        InstrumentType.ADVANCE: "Advance Payment",
    },
    InvoiceDirection.PAYABLE: {
        "invoice": "Vendor Invoice",
        InstrumentType.PAYMENT: "Payment Made",
        InstrumentType.RECEIPT: "Payment Made",
        InstrumentType.CREDIT_NOTE: "Credit Note",
        InstrumentType.DEBIT_NOTE: "Debit Note",
        InstrumentType.ADVANCE: "Vendor Advance",
    },
}


def walk_running_balance(
    opening_balance: Decimal, lines: list[StatementLine]
) -> Decimal:
    """Fill in each line's balance and return the final one."""
    balance = opening_balance
    for line in lines:
        balance = balance + line.debit - line.credit
        line.balance = balance
    return balance


def find_discrepancies(
    closing_balance: Decimal, running_balance: Decimal
) -> list[Discrepancy]:
    difference = abs(closing_balance - running_balance)
    if difference > TOLERANCE:
        return [Discrepancy(
            message="Calculated closing balance does not match running total",
            amount=difference,
        )]
    return []


class ReconciliationService:

    def __init__(self, db: Session):
        self.db = db
        self.counterparties = CounterpartyService(db)

    def _opening_balance(self, counterparty_id: int, period_start: date) -> Decimal:
        prior_invoices = self.db.execute(
            select(func.coalesce(func.sum(Invoice.total_amount), 0)).where(
                Invoice.counterparty_id == counterparty_id,
                Invoice.issue_date < period_start,
                Invoice.status.not_in(EXCLUDED_INVOICE_STATUSES),
            )
        ).scalar()
        prior_instruments = self.db.execute(
            select(func.coalesce(func.sum(Instrument.original_amount), 0)).where(
                Instrument.counterparty_id == counterparty_id,
                Instrument.instrument_date < period_start,
                Instrument.status.not_in(EXCLUDED_INSTRUMENT_STATUSES),
            )
        ).scalar()
        return Decimal(str(prior_invoices)) - Decimal(str(prior_instruments))

    def _period_lines(
        self,
        counterparty_id: int,
        direction: InvoiceDirection,
        period_start: date,
        period_end: date,
    ) -> list[StatementLine]:
        descriptions = DESCRIPTIONS[direction]

        invoices = self.db.execute(
            select(Invoice)
            .where(
                Invoice.counterparty_id == counterparty_id,
                Invoice.issue_date >= period_start,
                Invoice.issue_date <= period_end,
                Invoice.status.not_in(EXCLUDED_INVOICE_STATUSES),
            )
            .order_by(Invoice.issue_date, Invoice.id)
        ).scalars().all()

        instruments = self.db.execute(
            select(Instrument)
            .where(
                Instrument.counterparty_id == counterparty_id,
                Instrument.instrument_date >= period_start,
                Instrument.instrument_date <= period_end,
                Instrument.status.not_in(EXCLUDED_INSTRUMENT_STATUSES),
            )
            .order_by(Instrument.instrument_date, Instrument.id)
        ).scalars().all()

        debits = [
            StatementLine(
                record_id=invoice.id,
                date=invoice.issue_date,
                type="invoice",
                reference=invoice.number,
                description=descriptions["invoice"],
                debit=invoice.total_amount,
            )
            for invoice in invoices
        ]
        credits = [
            StatementLine(
                record_id=instrument.id,
                date=instrument.instrument_date,
                type=instrument.instrument_type.value,
                reference=instrument.number,
                description=descriptions[instrument.instrument_type],
                credit=instrument.original_amount,
            )
            for instrument in instruments
        ]

        # sorted() is stable, so each group keeps its fetch order
        return sorted(
            debits + credits,
            key=lambda line: (line.date, 0 if line.debit > 0 else 1),
        )

    def build_statement(
        self, counterparty_id: int, period_start: date, period_end: date
    ) -> ReconciliationStatement:
        if period_start > period_end:
            raise ValidationError("period_start must not be after period_end")

        counterparty = self.counterparties.get_counterparty(counterparty_id)

        opening_balance = self._opening_balance(counterparty.id, period_start)
        lines = self._period_lines(
            counterparty.id, counterparty.direction, period_start, period_end
        )

        running_balance = walk_running_balance(opening_balance, lines)

        total_debits = sum((line.debit for line in lines), ZERO)
        total_credits = sum((line.credit for line in lines), ZERO)
        closing_balance = opening_balance + total_debits - total_credits

        discrepancies = find_discrepancies(closing_balance, running_balance)
        if discrepancies:
            logger.warning(
                "Statement for %s (%s..%s) is off by %s",
                counterparty.code, period_start, period_end,
                discrepancies[0].amount,
            )

        return ReconciliationStatement(
            counterparty_id=counterparty.id,
            counterparty_name=counterparty.name,
            period_start=period_start,
            period_end=period_end,
            opening_balance=opening_balance,
            closing_balance=closing_balance,
            total_debits=total_debits,
            total_credits=total_credits,
            transactions=lines,
            discrepancies=discrepancies,
        )
