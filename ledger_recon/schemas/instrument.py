"""
Pydantic schemas for adjustment instruments.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger_recon.models.enums import InstrumentType, InstrumentStatus


class InstrumentCreate(BaseModel):
    instrument_type: InstrumentType
    counterparty_id: int
    instrument_date: date
    amount: Decimal = Field(gt=0, decimal_places=4)
    linked_invoice_id: int | None = None
    reason: str | None = Field(default=None, max_length=255)
    payment_method: str | None = Field(default=None, max_length=50)
    notes: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    number: str | None = Field(default=None, max_length=50)


class InstrumentReverse(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class InstrumentResponse(BaseModel):
    id: int
    number: str
    instrument_type: InstrumentType
    counterparty_id: int
    linked_invoice_id: int | None
    applied_to_invoice_id: int | None
    instrument_date: date
    original_amount: Decimal
    amount_applied: Decimal
    remaining: Decimal
    currency: str
    status: InstrumentStatus
    status_label: str
    reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
