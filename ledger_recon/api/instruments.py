"""
Instrument API endpoints — credit notes, debit notes, advances,
receipts and payments.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledger_recon.exceptions import ConcurrencyConflict, NotFoundError
from ledger_recon.models.base import get_db
from ledger_recon.services.allocation_service import AllocationService
from ledger_recon.services.instrument_service import InstrumentService
from ledger_recon.schemas.allocation import AllocationResponse
from ledger_recon.schemas.instrument import (
    InstrumentCreate,
    InstrumentResponse,
    InstrumentReverse,
)

router = APIRouter(prefix="/instruments", tags=["Instruments"])


@router.post("", response_model=InstrumentResponse, status_code=201)
def create_instrument(
    request: InstrumentCreate,
    db: Session = Depends(get_db),
):
    """
    Raise an instrument in ``pending`` status.

    Credit and debit notes must be approved before they can be
    allocated; advances, receipts and payments can be allocated
    straight away.
    """
    service = InstrumentService(db)
    try:
        instrument = service.create_instrument(request)
        db.commit()
        return instrument
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrencyConflict as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/{instrument_id}", response_model=InstrumentResponse)
def get_instrument(
    instrument_id: int,
    db: Session = Depends(get_db),
):
    service = InstrumentService(db)
    try:
        return service.get_instrument(instrument_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{instrument_id}/approve", response_model=InstrumentResponse)
def approve_instrument(
    instrument_id: int,
    db: Session = Depends(get_db),
):
    service = InstrumentService(db)
    try:
        instrument = service.approve(instrument_id)
        db.commit()
        return instrument
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{instrument_id}/cancel", response_model=InstrumentResponse)
def cancel_instrument(
    instrument_id: int,
    db: Session = Depends(get_db),
):
    service = InstrumentService(db)
    try:
        instrument = service.cancel(instrument_id)
        db.commit()
        return instrument
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{instrument_id}/reverse", response_model=InstrumentResponse)
def reverse_instrument(
    instrument_id: int,
    request: InstrumentReverse,
    db: Session = Depends(get_db),
):
    """Reverse every live allocation and close the instrument."""
    service = InstrumentService(db)
    try:
        instrument = service.reverse_instrument(instrument_id, request.reason)
        db.commit()
        return instrument
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/{instrument_id}/allocations",
    response_model=list[AllocationResponse],
)
def get_instrument_allocations(
    instrument_id: int,
    db: Session = Depends(get_db),
):
    """Allocation history, reversals included, oldest first."""
    try:
        InstrumentService(db).get_instrument(instrument_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AllocationService(db).allocations_for_instrument(instrument_id)
