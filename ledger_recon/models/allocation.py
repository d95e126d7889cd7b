"""
Allocation model.

One row per application of part of an instrument to an invoice.
Rows are append-only: a mistake is corrected by a reversing row
with a negative amount that points at the row it cancels.

For every instrument, the sum of its allocation amounts equals
its amount_applied.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, ForeignKey, String, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base


class Allocation(Base):
    __tablename__ = "allocations"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_allocation_amount_non_zero"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    instrument_id: Mapped[int] = mapped_column(
        ForeignKey("instruments.id"), nullable=False, index=True
    )
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    reverses_allocation_id: Mapped[int | None] = mapped_column(
        ForeignKey("allocations.id"), nullable=True, unique=True
    )
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    instrument: Mapped["Instrument"] = relationship()
    invoice: Mapped["Invoice"] = relationship()

    @property
    def is_reversal(self) -> bool:
        return self.reverses_allocation_id is not None

    def __repr__(self) -> str:
        return (
            f"<Allocation instrument={self.instrument_id} "
            f"invoice={self.invoice_id} {self.amount}>"
        )
