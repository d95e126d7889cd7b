"""
Exposure service — what a counterparty owes us, or we owe it.

Over every non-cancelled invoice and instrument of the counterparty:

    total_invoiced      sum of invoice totals
    total_adjustments   amount applied from credit and debit notes
    total_settled       amount paid on invoices, less the part that
                        came from credit and debit notes
    outstanding         invoiced - settled - adjustments
    overdue_amount      open balance on invoices past their due date
    days_outstanding    average age in days of unpaid invoices
                        (DSO for customers, DPO for suppliers)
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ledger_recon.models.allocation import Allocation
from ledger_recon.models.enums import (
    ADJUSTMENT_TYPES,
    CLOSED_INVOICE_STATUSES,
    CounterpartyKind,
    InstrumentStatus,
    InvoiceStatus,
)
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.reports import ExposureSummary
from ledger_recon.services.counterparty_service import CounterpartyService

ZERO = Decimal("0")

METRIC_LABELS = {
    CounterpartyKind.CUSTOMER: "DSO",
    CounterpartyKind.SUPPLIER: "DPO",
}


def average_age_in_days(invoices: list[Invoice], as_of: date) -> int:
    """Mean of (as_of - issue_date), rounded half up; 0 for no invoices."""
    if not invoices:
        return 0
    total_days = sum((as_of - invoice.issue_date).days for invoice in invoices)
    average = Decimal(total_days) / Decimal(len(invoices))
    return int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ExposureService:

    def __init__(self, db: Session):
        self.db = db
        self.counterparties = CounterpartyService(db)

    def summarize(
        self, counterparty_id: int, as_of: date | None = None
    ) -> ExposureSummary:
        as_of = as_of or date.today()
        counterparty = self.counterparties.get_counterparty(counterparty_id)

        invoices = self.db.execute(
            select(Invoice).where(
                Invoice.counterparty_id == counterparty.id,
                Invoice.status != InvoiceStatus.CANCELLED,
            )
        ).scalars().all()
        invoice_ids = [invoice.id for invoice in invoices]

        total_invoiced = sum((i.total_amount for i in invoices), ZERO)
        total_paid = sum((i.amount_paid for i in invoices), ZERO)

        total_adjustments = Decimal(str(self.db.execute(
            select(func.coalesce(func.sum(Instrument.amount_applied), 0)).where(
                Instrument.counterparty_id == counterparty.id,
                Instrument.instrument_type.in_(ADJUSTMENT_TYPES),
                Instrument.status != InstrumentStatus.CANCELLED,
            )
        ).scalar()))

        # Part of amount_paid that came from credit/debit notes
        adjusted_on_invoices = ZERO
        if invoice_ids:
            adjusted_on_invoices = Decimal(str(self.db.execute(
                select(func.coalesce(func.sum(Allocation.amount), 0))
                .join(Instrument, Allocation.instrument_id == Instrument.id)
                .where(
                    Allocation.invoice_id.in_(invoice_ids),
                    Instrument.instrument_type.in_(ADJUSTMENT_TYPES),
                )
            ).scalar()))

        total_settled = total_paid - adjusted_on_invoices
        outstanding_balance = total_invoiced - total_settled - total_adjustments

        unpaid = [
            invoice for invoice in invoices
            if invoice.status not in CLOSED_INVOICE_STATUSES
            and invoice.balance_due > 0
        ]
        overdue_amount = sum(
            (i.balance_due for i in unpaid if i.due_date < as_of), ZERO
        )

        summary = ExposureSummary(
            counterparty_id=counterparty.id,
            counterparty_kind=counterparty.kind,
            as_of=as_of,
            total_invoiced=total_invoiced,
            total_settled=total_settled,
            total_adjustments=total_adjustments,
            outstanding_balance=outstanding_balance,
            overdue_amount=overdue_amount,
            days_outstanding=average_age_in_days(unpaid, as_of),
            days_outstanding_metric=METRIC_LABELS[counterparty.kind],
        )
        if counterparty.credit_limit is not None:
            summary.credit_limit = counterparty.credit_limit
            summary.available_credit = max(
                ZERO, counterparty.credit_limit - outstanding_balance
            )
        return summary
