"""
Counterparty API endpoints, including the per-counterparty reports.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ledger_recon.exceptions import NotFoundError
from ledger_recon.models.base import get_db
from ledger_recon.services.ageing_service import AgeingService
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.exposure_service import ExposureService
from ledger_recon.services.reconciliation_service import ReconciliationService
from ledger_recon.schemas.counterparty import (
    CounterpartyCreate,
    CounterpartyResponse,
)
from ledger_recon.schemas.reports import (
    AgeingBuckets,
    ExposureSummary,
    ReconciliationStatement,
)

router = APIRouter(prefix="/counterparties", tags=["Counterparties"])


@router.post("", response_model=CounterpartyResponse, status_code=201)
def create_counterparty(
    request: CounterpartyCreate,
    db: Session = Depends(get_db),
):
    """Register a customer or supplier."""
    service = CounterpartyService(db)
    try:
        counterparty = service.create_counterparty(request)
        db.commit()
        return counterparty
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{counterparty_id}", response_model=CounterpartyResponse)
def get_counterparty(
    counterparty_id: int,
    db: Session = Depends(get_db),
):
    service = CounterpartyService(db)
    try:
        return service.get_counterparty(counterparty_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# --- Reports ---

@router.get(
    "/{counterparty_id}/statement",
    response_model=ReconciliationStatement,
)
def get_statement(
    counterparty_id: int,
    period_start: date = Query(...),
    period_end: date = Query(...),
    db: Session = Depends(get_db),
):
    """
    Reconciliation statement for a period.

    Opening balance, every invoice and instrument dated in the
    period with a running balance, and the closing balance.
    Discrepancies are listed, never corrected.
    """
    service = ReconciliationService(db)
    try:
        return service.build_statement(counterparty_id, period_start, period_end)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{counterparty_id}/ageing", response_model=AgeingBuckets)
def get_ageing(
    counterparty_id: int,
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """Open balances bucketed by days past due."""
    service = AgeingService(db)
    try:
        return service.ageing_for_counterparty(counterparty_id, as_of)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{counterparty_id}/exposure", response_model=ExposureSummary)
def get_exposure(
    counterparty_id: int,
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """Invoiced, settled, adjusted, outstanding and overdue totals."""
    service = ExposureService(db)
    try:
        return service.summarize(counterparty_id, as_of)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
