"""
Ageing service — open balances bucketed by days overdue.

    days_overdue = as_of - due_date
    <= 0      current
    1..30     days_1_30
    31..60    days_31_60
    61..90    days_61_90
    > 90      over_90

Each bucket includes its upper bound. Receivable and payable
invoices use the same boundaries. Paid, cancelled and written-off
invoices are left out.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_recon.models.counterparty import Counterparty
from ledger_recon.models.enums import InvoiceDirection, CLOSED_INVOICE_STATUSES
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.reports import (
    AgeingBucketSummary,
    AgeingBuckets,
    AgeingReport,
    CounterpartyAgeing,
)
from ledger_recon.services.counterparty_service import CounterpartyService

ZERO = Decimal("0")

# (field on AgeingBuckets, label, inclusive upper bound in days)
BUCKETS = (
    ("current", "Current", 0),
    ("days_1_30", "1-30 Days", 30),
    ("days_31_60", "31-60 Days", 60),
    ("days_61_90", "61-90 Days", 90),
    ("over_90", "90+ Days", None),
)


def bucket_for(days_overdue: int) -> str:
    for field, _, upper in BUCKETS[:-1]:
        if days_overdue <= upper:
            return field
    return BUCKETS[-1][0]


def classify_invoices(invoices: Iterable[Invoice], as_of: date) -> AgeingBuckets:
    """Sum open balances into buckets. Closed invoices are skipped."""
    buckets = AgeingBuckets()
    for invoice in invoices:
        if invoice.status in CLOSED_INVOICE_STATUSES:
            continue
        field = bucket_for((as_of - invoice.due_date).days)
        setattr(buckets, field, getattr(buckets, field) + invoice.balance_due)
    return buckets


class AgeingService:

    def __init__(self, db: Session):
        self.db = db
        self.counterparties = CounterpartyService(db)

    def _open_invoices(self, *criteria) -> list[Invoice]:
        invoices = self.db.execute(
            select(Invoice)
            .where(Invoice.status.not_in(CLOSED_INVOICE_STATUSES), *criteria)
            .order_by(Invoice.due_date, Invoice.id)
        ).scalars().all()
        return list(invoices)

    def ageing_for_counterparty(
        self, counterparty_id: int, as_of: date | None = None
    ) -> AgeingBuckets:
        counterparty = self.counterparties.get_counterparty(counterparty_id)
        invoices = self._open_invoices(Invoice.counterparty_id == counterparty.id)
        return classify_invoices(invoices, as_of or date.today())

    def ageing_report(
        self, direction: InvoiceDirection, as_of: date | None = None
    ) -> AgeingReport:
        """
        Portfolio ageing for one side of the books, with a row per
        counterparty (largest exposure first) and count/percentage
        per bucket.
        """
        as_of = as_of or date.today()
        invoices = self._open_invoices(Invoice.direction == direction)

        amounts = {field: ZERO for field, _, _ in BUCKETS}
        counts = {field: 0 for field, _, _ in BUCKETS}
        by_counterparty: dict[int, list[Invoice]] = {}

        for invoice in invoices:
            field = bucket_for((as_of - invoice.due_date).days)
            amounts[field] += invoice.balance_due
            counts[field] += 1
            by_counterparty.setdefault(invoice.counterparty_id, []).append(invoice)

        total = sum(amounts.values(), ZERO)
        summaries = [
            AgeingBucketSummary(
                label=label,
                amount=amounts[field],
                count=counts[field],
                percentage=(
                    (amounts[field] / total * 100).quantize(Decimal("0.01"))
                    if total > 0 else ZERO
                ),
            )
            for field, label, _ in BUCKETS
        ]

        names = dict(self.db.execute(
            select(Counterparty.id, Counterparty.name).where(
                Counterparty.id.in_(list(by_counterparty))
            )
        ).all())
        rows = []
        for counterparty_id, owned in by_counterparty.items():
            buckets = classify_invoices(owned, as_of)
            rows.append(CounterpartyAgeing(
                counterparty_id=counterparty_id,
                counterparty_name=names.get(counterparty_id, "Unknown"),
                buckets=buckets,
                total=buckets.total,
            ))
        rows.sort(key=lambda row: row.total, reverse=True)

        return AgeingReport(
            as_of=as_of,
            buckets=summaries,
            total=total,
            by_counterparty=rows,
        )
