"""
External submission model.

Records every point-of-sale request that created an instrument,
keyed by the caller's transaction id. The unique constraint on
external_transaction_id is what makes duplicate submissions safe:
a second insert of the same id fails in the database, no matter
how close together the two requests arrive.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_recon.models.base import Base


class ExternalSubmission(Base):
    __tablename__ = "external_submissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_transaction_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    terminal_id: Mapped[str] = mapped_column(String(100), nullable=False)
    channel: Mapped[str] = mapped_column(String(50), nullable=False)
    instrument_id: Mapped[int | None] = mapped_column(
        ForeignKey("instruments.id"), nullable=True
    )
    # Response body returned for the original call, replayed verbatim
    response: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    instrument: Mapped["Instrument | None"] = relationship()
