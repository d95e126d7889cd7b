"""
Adjustment instrument model.

Credit notes, debit notes, advances, receipts and payments share
one shape: an original amount that is consumed, in one or more
allocations, against invoices of the same counterparty.

Credit and debit notes are two-phase: they are raised (pending),
approved, and only then allocated. Advances, receipts and payments
can be allocated straight away.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, ForeignKey, Integer, Text,
    CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base
from ledger_recon.models.enums import (
    InstrumentType,
    InstrumentStatus,
    ADJUSTMENT_TYPES,
)


VALID_TRANSITIONS: dict[InstrumentStatus, set[InstrumentStatus]] = {
    InstrumentStatus.PENDING: {
        InstrumentStatus.APPROVED,
        InstrumentStatus.PARTIAL,
        InstrumentStatus.APPLIED,
        InstrumentStatus.CANCELLED,
        InstrumentStatus.REVERSED,
    },
    InstrumentStatus.APPROVED: {
        InstrumentStatus.PARTIAL,
        InstrumentStatus.APPLIED,
        InstrumentStatus.CANCELLED,
        InstrumentStatus.REVERSED,
    },
    InstrumentStatus.PARTIAL: {
        InstrumentStatus.APPLIED,
        InstrumentStatus.APPROVED,  # allocations reversed
        InstrumentStatus.PENDING,
        InstrumentStatus.REVERSED,
    },
    InstrumentStatus.APPLIED: {
        InstrumentStatus.PARTIAL,
        InstrumentStatus.APPROVED,
        InstrumentStatus.PENDING,
        InstrumentStatus.REVERSED,
    },
    InstrumentStatus.REVERSED: set(),
    InstrumentStatus.CANCELLED: set(),
}

# Advances were always shown with their own wording
ADVANCE_STATUS_LABELS = {
    InstrumentStatus.PENDING: "active",
    InstrumentStatus.PARTIAL: "partially_applied",
    InstrumentStatus.APPLIED: "fully_applied",
}

NUMBER_PREFIXES = {
    InstrumentType.CREDIT_NOTE: "CN",
    InstrumentType.DEBIT_NOTE: "DN",
    InstrumentType.ADVANCE: "ADV",
    InstrumentType.RECEIPT: "RCP",
    InstrumentType.PAYMENT: "PAY",
}


class Instrument(Base):
    __tablename__ = "instruments"
    __table_args__ = (
        CheckConstraint(
            "amount_applied >= 0", name="ck_instrument_applied_non_negative"
        ),
        CheckConstraint(
            "amount_applied <= original_amount",
            name="ck_instrument_applied_within_original",
        ),
        CheckConstraint(
            "original_amount > 0", name="ck_instrument_original_positive"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    instrument_type: Mapped[InstrumentType] = mapped_column(
        SAEnum(
            InstrumentType,
            name="instrument_type_enum",
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    counterparty_id: Mapped[int] = mapped_column(
        ForeignKey("counterparties.id"), nullable=False, index=True
    )
    # The invoice the instrument was raised against; not necessarily
    # the one it ends up applied to.
    linked_invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    # Deprecated: only reflects the last invoice an instrument fully
    # settled. The allocations table is the record of where it went.
    applied_to_invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    instrument_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    amount_applied: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[InstrumentStatus] = mapped_column(
        SAEnum(
            InstrumentStatus,
            name="instrument_status_enum",
            create_constraint=True,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=InstrumentStatus.PENDING,
    )
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    counterparty: Mapped["Counterparty"] = relationship()
    linked_invoice: Mapped["Invoice | None"] = relationship(
        foreign_keys=[linked_invoice_id]
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining(self) -> Decimal:
        return self.original_amount - self.amount_applied

    @property
    def is_adjustment(self) -> bool:
        return self.instrument_type in ADJUSTMENT_TYPES

    @property
    def requires_approval(self) -> bool:
        return self.is_adjustment

    @property
    def status_label(self) -> str:
        if self.instrument_type == InstrumentType.ADVANCE:
            return ADVANCE_STATUS_LABELS.get(self.status, self.status.value)
        return self.status.value

    def can_transition_to(self, new_status: InstrumentStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Instrument {self.number} {self.instrument_type.value} "
            f"{self.amount_applied}/{self.original_amount} ({self.status.value})>"
        )
