"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An invalid status or
instrument type is caught at the database level, not just
in Python validation.
"""

import enum


class AccountType(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class EntryType(str, enum.Enum):
    """Direction of a ledger entry."""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class CounterpartyKind(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"


class InvoiceDirection(str, enum.Enum):
    """Receivable invoices are issued to customers, payable ones received from suppliers."""
    RECEIVABLE = "RECEIVABLE"
    PAYABLE = "PAYABLE"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    WRITTEN_OFF = "written_off"


class InstrumentType(str, enum.Enum):
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    ADVANCE = "advance"
    RECEIPT = "receipt"
    PAYMENT = "payment"


class InstrumentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PARTIAL = "partial"
    APPLIED = "applied"
    REVERSED = "reversed"
    CANCELLED = "cancelled"


# Invoice states that no longer accept allocations or count as open
CLOSED_INVOICE_STATUSES = (
    InvoiceStatus.PAID,
    InvoiceStatus.CANCELLED,
    InvoiceStatus.WRITTEN_OFF,
)

# Credit and debit notes adjust an invoice; the rest settle it
ADJUSTMENT_TYPES = (
    InstrumentType.CREDIT_NOTE,
    InstrumentType.DEBIT_NOTE,
)


def direction_for(kind: CounterpartyKind) -> InvoiceDirection:
    if kind == CounterpartyKind.CUSTOMER:
        return InvoiceDirection.RECEIVABLE
    return InvoiceDirection.PAYABLE
