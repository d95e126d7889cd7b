"""
Chart of accounts used by the journal.

An account is identified by its code and currency together. The
point-of-sale postings open 1100/1200/2100/4100/5100 lazily in the
currency of the instrument being posted, so a EUR receipt and a
USD receipt never share a receivables account.
"""

from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base
from ledger_recon.models.enums import AccountType


class LedgerAccount(Base):

    __tablename__ = "ledger_accounts"
    __table_args__ = (
        UniqueConstraint("code", "currency", name="uq_ledger_account_code_currency"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum"),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # Deactivated, never deleted, once lines exist
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="account"
    )

    @property
    def chart_key(self) -> str:
        return f"{self.code}/{self.currency}"

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.chart_key} ({self.account_type.value})>"
