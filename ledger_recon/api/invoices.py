"""
Invoice API endpoints.

Money never moves through these endpoints; amounts are settled
by allocating instruments (see api/allocations.py).
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledger_recon.exceptions import ConcurrencyConflict, NotFoundError
from ledger_recon.models.base import get_db
from ledger_recon.services.invoice_service import InvoiceService
from ledger_recon.schemas.invoice import (
    InvoiceCreate,
    InvoiceResponse,
    MarkOverdueResponse,
)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("", response_model=InvoiceResponse, status_code=201)
def create_invoice(
    request: InvoiceCreate,
    db: Session = Depends(get_db),
):
    """
    Create a draft invoice.

    Customers get receivable invoices (INV-), suppliers payable
    ones (BILL-). The number is generated unless one is given.
    """
    service = InvoiceService(db)
    try:
        invoice = service.create_invoice(request)
        db.commit()
        return invoice
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrencyConflict as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/mark-overdue", response_model=MarkOverdueResponse)
def mark_overdue(
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """Persist ``overdue`` on open invoices past their due date."""
    as_of = as_of or date.today()
    service = InvoiceService(db)
    updated = service.mark_overdue(as_of)
    db.commit()
    return MarkOverdueResponse(as_of=as_of, updated=updated)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
):
    service = InvoiceService(db)
    try:
        return service.get_invoice(invoice_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _change_status(db: Session, action, invoice_id: int):
    try:
        invoice = action(invoice_id)
        db.commit()
        return invoice
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
def send_invoice(invoice_id: int, db: Session = Depends(get_db)):
    """draft -> sent."""
    return _change_status(db, InvoiceService(db).send, invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
def cancel_invoice(invoice_id: int, db: Session = Depends(get_db)):
    """Only invoices with nothing applied can be cancelled."""
    return _change_status(db, InvoiceService(db).cancel, invoice_id)


@router.post("/{invoice_id}/write-off", response_model=InvoiceResponse)
def write_off_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return _change_status(db, InvoiceService(db).write_off, invoice_id)
