"""
Pydantic schemas for journal postings.

The ingestion adapter builds these to post the two balanced
lines that accompany an applied instrument.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from ledger_recon.models.enums import AccountType, EntryType


# --- Request Schemas ---

class LedgerEntryCreate(BaseModel):
    """A single debit or credit line."""
    account_id: int
    entry_type: EntryType
    amount: Decimal = Field(gt=0, decimal_places=4)
    description: str = Field(min_length=1, max_length=255)


class PostEntriesRequest(BaseModel):
    """
    A group of lines that must balance.

    transaction_id makes a retried posting idempotent.
    """
    transaction_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    currency: str = Field(min_length=3, max_length=3)
    entry_date: date
    reference_type: str | None = Field(default=None, max_length=50)
    reference_id: int | None = None
    entries: list[LedgerEntryCreate] = Field(min_length=2)

    @field_validator("entries")
    @classmethod
    def must_have_debits_and_credits(cls, v: list) -> list:
        types = {e.entry_type for e in v}
        if EntryType.DEBIT not in types or EntryType.CREDIT not in types:
            raise ValueError(
                "posting must contain at least one debit and one credit"
            )
        return v


class LedgerAccountCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    account_type: AccountType
    currency: str = Field(default="USD", min_length=3, max_length=3)


# --- Response Schemas ---

class LedgerEntryResponse(BaseModel):
    id: int
    transaction_id: uuid.UUID
    account_id: int
    entry_type: EntryType
    amount: Decimal
    currency: str
    description: str
    entry_date: date
    reference_type: str | None
    reference_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerAccountResponse(BaseModel):
    id: int
    code: str
    name: str
    account_type: AccountType
    currency: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    account_id: int
    account_code: str
    account_type: AccountType
    balance: Decimal
    currency: str
