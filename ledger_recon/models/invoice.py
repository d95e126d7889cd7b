"""
Invoice model.

One table holds both receivable (customer) and payable (vendor)
invoices; the two share the same shape and the same state machine.

total_amount, issue_date and due_date are fixed once issued.
amount_paid only moves through the AllocationService. The
version column makes concurrent writers to the same invoice fail
with StaleDataError rather than silently overwrite each other.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, ForeignKey, Integer,
    CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base
from ledger_recon.models.enums import (
    InvoiceDirection,
    InvoiceStatus,
    CLOSED_INVOICE_STATUSES,
)


VALID_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {
        InvoiceStatus.SENT,
        InvoiceStatus.PARTIAL,
        InvoiceStatus.PAID,
        InvoiceStatus.CANCELLED,
    },
    InvoiceStatus.SENT: {
        InvoiceStatus.PARTIAL,
        InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.CANCELLED,
        InvoiceStatus.WRITTEN_OFF,
    },
    InvoiceStatus.PARTIAL: {
        InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.SENT,  # every allocation reversed
        InvoiceStatus.WRITTEN_OFF,
    },
    InvoiceStatus.OVERDUE: {
        InvoiceStatus.PARTIAL,
        InvoiceStatus.PAID,
        InvoiceStatus.WRITTEN_OFF,
    },
    InvoiceStatus.PAID: {InvoiceStatus.PARTIAL, InvoiceStatus.SENT},  # reversal only
    InvoiceStatus.CANCELLED: set(),
    InvoiceStatus.WRITTEN_OFF: set(),
}


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="ck_invoice_paid_non_negative"),
        CheckConstraint(
            "amount_paid <= total_amount", name="ck_invoice_paid_within_total"
        ),
        CheckConstraint("total_amount > 0", name="ck_invoice_total_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    direction: Mapped[InvoiceDirection] = mapped_column(
        SAEnum(InvoiceDirection, name="invoice_direction_enum", create_constraint=True),
        nullable=False,
    )
    counterparty_id: Mapped[int] = mapped_column(
        ForeignKey("counterparties.id"), nullable=False, index=True
    )
    order_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(
            InvoiceStatus,
            name="invoice_status_enum",
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    counterparty: Mapped["Counterparty"] = relationship(back_populates="invoices")

    __mapper_args__ = {"version_id_col": version}

    @property
    def balance_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_INVOICE_STATUSES

    def is_overdue(self, as_of: date) -> bool:
        """Due date passed with something still owed."""
        return self.is_open and self.due_date < as_of and self.balance_due > 0

    def effective_status(self, as_of: date) -> InvoiceStatus:
        """Status as shown to a reader on ``as_of``, deriving overdue."""
        if self.status in (InvoiceStatus.SENT, InvoiceStatus.PARTIAL) and self.is_overdue(as_of):
            return InvoiceStatus.OVERDUE
        return self.status

    def can_transition_to(self, new_status: InvoiceStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Invoice {self.number} {self.total_amount} "
            f"paid={self.amount_paid} ({self.status.value})>"
        )
