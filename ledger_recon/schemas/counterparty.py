"""
Pydantic schemas for counterparties.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger_recon.models.enums import CounterpartyKind


class CounterpartyCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    kind: CounterpartyKind
    credit_limit: Decimal | None = Field(default=None, ge=0)


class CounterpartyResponse(BaseModel):
    id: int
    code: str
    name: str
    kind: CounterpartyKind
    credit_limit: Decimal | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
