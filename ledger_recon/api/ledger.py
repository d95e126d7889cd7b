"""
Journal API endpoints.

Journal lines are written by the ingestion adapter when it
applies an instrument. These endpoints maintain the chart of
accounts and read the lines back.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledger_recon.exceptions import NotFoundError
from ledger_recon.models.base import get_db
from ledger_recon.models.ledger_account import LedgerAccount
from ledger_recon.services.journal_service import JournalService
from ledger_recon.schemas.ledger import (
    AccountBalanceResponse,
    LedgerAccountCreate,
    LedgerAccountResponse,
    LedgerEntryResponse,
)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.post("/accounts", response_model=LedgerAccountResponse, status_code=201)
def create_ledger_account(
    request: LedgerAccountCreate,
    db: Session = Depends(get_db),
):
    service = JournalService(db)
    try:
        account = service.create_account(request)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/accounts/{account_id}/balance",
    response_model=AccountBalanceResponse,
)
def get_account_balance(
    account_id: int,
    db: Session = Depends(get_db),
):
    """
    Current balance of a ledger account.

    Derived from the journal lines, never stored.
    """
    service = JournalService(db)
    try:
        balance = service.get_account_balance(account_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    account = db.get(LedgerAccount, account_id)

    return AccountBalanceResponse(
        account_id=account.id,
        account_code=account.code,
        account_type=account.account_type,
        balance=balance,
        currency=account.currency,
    )


@router.get("/entries", response_model=list[LedgerEntryResponse])
def get_entries_for_reference(
    reference_type: str,
    reference_id: int,
    db: Session = Depends(get_db),
):
    """Journal lines posted for one instrument, e.g. ``?reference_type=credit_note&reference_id=7``."""
    return JournalService(db).entries_for_reference(reference_type, reference_id)


@router.get("/integrity")
def check_integrity(db: Session = Depends(get_db)):
    """Trial balance: total debits must equal total credits."""
    return JournalService(db).check_integrity()
