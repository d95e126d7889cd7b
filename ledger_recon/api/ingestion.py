"""
Point-of-sale ingestion endpoints.

Terminals expect a flat JSON envelope rather than FastAPI's
``detail`` errors:

    {"success": true, "instrument_number": ..., ...}
    {"success": false, "error": "RATE_LIMIT_EXCEEDED", "message": ...}

The body is taken as raw JSON and validated by the service, so
every failure, malformed payloads included, comes back in that
shape with the matching status code.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ledger_recon.config import Settings, get_settings
from ledger_recon.exceptions import IngestionError
from ledger_recon.models.base import get_db
from ledger_recon.schemas.ingestion import IngestionErrorBody
from ledger_recon.services.ingestion_service import (
    IngestionService,
    SlidingWindowRateLimiter,
    get_rate_limiter,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pos", tags=["Point of Sale"])


def error_response(code: str, message: str, status_code: int) -> JSONResponse:
    body = IngestionErrorBody(error=code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _ingest(
    channel: str,
    payload: Any,
    api_key: str | None,
    db: Session,
    settings: Settings,
    rate_limiter: SlidingWindowRateLimiter,
) -> JSONResponse:
    service = IngestionService(db, settings=settings, rate_limiter=rate_limiter)
    try:
        result = service.ingest(channel, payload, api_key)
        db.commit()
    except IngestionError as e:
        db.rollback()
        return error_response(e.code, e.message, e.status_code)
    except Exception:
        db.rollback()
        logger.exception("Unexpected failure ingesting POS %s", channel)
        return error_response(
            "INTERNAL_ERROR", "Failed to process the request", 500
        )
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/credit-notes")
def ingest_credit_note(
    payload: Any = Body(None),
    x_pos_api_key: str | None = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    """
    Raise a customer credit note from a terminal.

    When ``apply_immediately`` is set and an invoice is linked,
    the note is applied at once without the approval step and
    Dr Sales Returns & Allowances / Cr Accounts Receivable is posted.
    """
    return _ingest("credit_note", payload, x_pos_api_key, db, settings, rate_limiter)


@router.post("/debit-notes")
def ingest_debit_note(
    payload: Any = Body(None),
    x_pos_api_key: str | None = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    """
    Raise a supplier debit note from a terminal.

    Posts Dr Accounts Payable / Cr Purchase Returns & Allowances
    for the amount applied.
    """
    return _ingest("debit_note", payload, x_pos_api_key, db, settings, rate_limiter)


@router.post("/receipts")
def ingest_receipt(
    payload: Any = Body(None),
    x_pos_api_key: str | None = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    """
    Record a customer payment taken at a terminal.

    Posts Dr Cash/Bank / Cr Accounts Receivable for the amount applied.
    """
    return _ingest("receipt", payload, x_pos_api_key, db, settings, rate_limiter)
