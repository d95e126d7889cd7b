"""
Portfolio reports across all counterparties on one side of the books.
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_recon.models.base import get_db
from ledger_recon.models.enums import InvoiceDirection
from ledger_recon.services.ageing_service import AgeingService
from ledger_recon.schemas.reports import AgeingReport

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/ageing", response_model=AgeingReport)
def get_ageing_report(
    direction: InvoiceDirection = InvoiceDirection.RECEIVABLE,
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """
    Receivables or payables ageing.

    Bucket totals with counts and percentages, and a row per
    counterparty ordered by total open balance.
    """
    return AgeingService(db).ageing_report(direction, as_of)
