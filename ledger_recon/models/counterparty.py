"""
Counterparty model.

A customer or supplier that invoices and instruments are issued
against. Customers hold receivable invoices, suppliers hold
payable ones; everything downstream is keyed on the counterparty.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base
from ledger_recon.models.enums import CounterpartyKind, direction_for


class Counterparty(Base):
    __tablename__ = "counterparties"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[CounterpartyKind] = mapped_column(
        SAEnum(CounterpartyKind, name="counterparty_kind_enum", create_constraint=True),
        nullable=False,
    )
    credit_limit: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    invoices: Mapped[list["Invoice"]] = relationship(back_populates="counterparty")

    @property
    def direction(self):
        return direction_for(self.kind)

    def __repr__(self) -> str:
        return f"<Counterparty {self.code} ({self.kind.value})>"
