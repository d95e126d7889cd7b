"""
Allocation API endpoints.

Each request is a single unit of work: either the allocation
row and both counters are committed together, or nothing is.
A conflict with a concurrent allocation answers 409 and the
client may retry.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledger_recon.exceptions import AllocationConflict, NotFoundError
from ledger_recon.models.base import get_db
from ledger_recon.services.allocation_service import AllocationService
from ledger_recon.schemas.allocation import (
    AllocationRequest,
    AllocationResponse,
    AllocationResult,
    ReverseAllocationRequest,
    SplitAllocationRequest,
)

router = APIRouter(prefix="/allocations", tags=["Allocations"])


@router.post("", response_model=AllocationResult, status_code=201)
def allocate(
    request: AllocationRequest,
    db: Session = Depends(get_db),
):
    """
    Apply an instrument to an invoice.

    The amount applied is the smallest of the requested amount,
    what is left on the instrument and what is owed on the invoice.
    """
    service = AllocationService(db)
    try:
        result = service.allocate(
            request.instrument_id, request.invoice_id, request.amount
        )
        db.commit()
        return result
    except AllocationConflict as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/split", response_model=list[AllocationResult], status_code=201)
def allocate_split(
    request: SplitAllocationRequest,
    db: Session = Depends(get_db),
):
    """Spread one instrument over several invoices, all or nothing."""
    service = AllocationService(db)
    try:
        results = service.allocate_many(
            request.instrument_id,
            [(line.invoice_id, line.amount) for line in request.lines],
        )
        db.commit()
        return results
    except AllocationConflict as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/{allocation_id}/reverse",
    response_model=AllocationResponse,
    status_code=201,
)
def reverse_allocation(
    allocation_id: int,
    request: ReverseAllocationRequest,
    db: Session = Depends(get_db),
):
    """Record a negative counter-allocation. The original row stays."""
    service = AllocationService(db)
    try:
        counter = service.reverse_allocation(allocation_id, request.reason)
        db.commit()
        return counter
    except AllocationConflict as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
