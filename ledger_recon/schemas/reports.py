"""
Pydantic schemas for the read-only reports: statement, ageing
and exposure. None of these are persisted; they are rebuilt from
the store on every request.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from ledger_recon.models.enums import CounterpartyKind


ZERO = Decimal("0")


# --- Reconciliation statement ---

class StatementLine(BaseModel):
    """One invoice or instrument projected onto the statement."""
    record_id: int
    date: date
    type: str
    reference: str
    description: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    balance: Decimal = ZERO


class Discrepancy(BaseModel):
    message: str
    amount: Decimal


class ReconciliationStatement(BaseModel):
    counterparty_id: int
    counterparty_name: str
    period_start: date
    period_end: date
    opening_balance: Decimal
    closing_balance: Decimal
    total_debits: Decimal
    total_credits: Decimal
    transactions: list[StatementLine] = Field(default_factory=list)
    discrepancies: list[Discrepancy] = Field(default_factory=list)


# --- Ageing ---

class AgeingBuckets(BaseModel):
    current: Decimal = ZERO
    days_1_30: Decimal = ZERO
    days_31_60: Decimal = ZERO
    days_61_90: Decimal = ZERO
    over_90: Decimal = ZERO

    @computed_field
    @property
    def total(self) -> Decimal:
        return (
            self.current + self.days_1_30 + self.days_31_60
            + self.days_61_90 + self.over_90
        )


class AgeingBucketSummary(BaseModel):
    label: str
    amount: Decimal
    count: int
    percentage: Decimal


class CounterpartyAgeing(BaseModel):
    counterparty_id: int
    counterparty_name: str
    buckets: AgeingBuckets
    total: Decimal


class AgeingReport(BaseModel):
    as_of: date
    buckets: list[AgeingBucketSummary]
    total: Decimal
    by_counterparty: list[CounterpartyAgeing]


# --- Exposure ---

class ExposureSummary(BaseModel):
    counterparty_id: int
    counterparty_kind: CounterpartyKind
    as_of: date
    total_invoiced: Decimal
    total_settled: Decimal
    total_adjustments: Decimal
    outstanding_balance: Decimal
    overdue_amount: Decimal
    days_outstanding: int
    days_outstanding_metric: str
    credit_limit: Decimal | None = None
    available_credit: Decimal | None = None
