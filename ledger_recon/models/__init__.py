"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from ledger_recon.models.base import Base
from ledger_recon.models.enums import (
    AccountType,
    EntryType,
    CounterpartyKind,
    InvoiceDirection,
    InvoiceStatus,
    InstrumentType,
    InstrumentStatus,
)
from ledger_recon.models.audit_log import AuditLog
from ledger_recon.models.ledger_account import LedgerAccount
from ledger_recon.models.ledger_entry import LedgerEntry
from ledger_recon.models.counterparty import Counterparty
from ledger_recon.models.invoice import Invoice
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.allocation import Allocation
from ledger_recon.models.external_submission import ExternalSubmission

__all__ = [
    "Base",
    "AccountType",
    "EntryType",
    "CounterpartyKind",
    "InvoiceDirection",
    "InvoiceStatus",
    "InstrumentType",
    "InstrumentStatus",
    "AuditLog",
    "LedgerAccount",
    "LedgerEntry",
    "Counterparty",
    "Invoice",
    "Instrument",
    "Allocation",
    "ExternalSubmission",
]
