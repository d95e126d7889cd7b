"""
Pydantic schemas for invoices.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from ledger_recon.models.enums import InvoiceDirection, InvoiceStatus


class InvoiceCreate(BaseModel):
    counterparty_id: int
    issue_date: date
    due_date: date
    subtotal: Decimal = Field(gt=0, decimal_places=4)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    order_reference: str | None = Field(default=None, max_length=100)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    number: str | None = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def due_not_before_issue(self):
        if self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self


class InvoiceResponse(BaseModel):
    id: int
    number: str
    direction: InvoiceDirection
    counterparty_id: int
    order_reference: str | None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    currency: str
    issue_date: date
    due_date: date
    status: InvoiceStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class MarkOverdueResponse(BaseModel):
    as_of: date
    updated: int
