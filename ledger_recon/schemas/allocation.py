"""
Pydantic schemas for allocations.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class AllocationRequest(BaseModel):
    instrument_id: int
    invoice_id: int
    amount: Decimal = Field(gt=0, decimal_places=4)


class AllocationLine(BaseModel):
    invoice_id: int
    amount: Decimal = Field(gt=0, decimal_places=4)


class SplitAllocationRequest(BaseModel):
    """One instrument spread over several invoices in one unit."""
    instrument_id: int
    lines: list[AllocationLine] = Field(min_length=1)


class ReverseAllocationRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class AllocationResult(BaseModel):
    """Outcome of a single allocate call."""
    allocation_id: int
    applied_amount: Decimal
    instrument_remaining: Decimal
    invoice_balance: Decimal
    instrument_status: str
    invoice_status: str


class AllocationResponse(BaseModel):
    id: int
    instrument_id: int
    invoice_id: int
    amount: Decimal
    reverses_allocation_id: int | None
    reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
