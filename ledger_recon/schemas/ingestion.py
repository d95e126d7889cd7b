"""
Pydantic schemas for point-of-sale ingestion.

The payload is validated by the service, not by FastAPI, so that
malformed requests are answered with the INVALID_PAYLOAD envelope
the terminals expect.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class IngestionPayload(BaseModel):
    terminal_id: str = Field(min_length=1, max_length=100)
    external_transaction_id: str = Field(min_length=1, max_length=100)
    counterparty_code: str = Field(min_length=1, max_length=50)
    amount: Decimal = Field(gt=0, decimal_places=4)
    reason: str = Field(min_length=1, max_length=255)
    apply_immediately: bool = True
    linked_invoice_number: str | None = Field(default=None, max_length=50)
    payment_method: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class IngestionResult(BaseModel):
    success: bool = True
    instrument_number: str
    instrument_id: int
    amount: Decimal
    amount_applied: Decimal
    applied_to_invoice: str | None = None
    invoice_new_balance: Decimal | None = None
    status: str
    message: str | None = None


class IngestionErrorBody(BaseModel):
    success: bool = False
    error: str
    message: str
