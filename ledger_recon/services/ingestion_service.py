"""
Ingestion service — instruments raised at a point-of-sale terminal.

A terminal posts a credit note, debit note or receipt. The
service:

1. Checks the shared secret (fails closed when none is configured)
2. Applies a per-terminal sliding one-minute rate limit
3. Validates the payload before touching the store
4. Replays the stored response if this external transaction id
   was seen before
5. Resolves the counterparty and the optional linked invoice
6. Claims the transaction id (unique insert)
7. Creates the instrument and, when asked, applies it to the
   linked invoice and posts two balanced journal lines

Duplicate submissions that race each other are settled by the
unique constraint in step 6, not by the lookup in step 4. The
loser rolls back and answers with the winner's stored response.

Every failure is an IngestionError with the code the terminals
understand. The caller commits on success and rolls back otherwise.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_recon.config import Settings, get_settings
from ledger_recon.exceptions import (
    ConcurrencyConflict,
    IngestionError,
    LedgerReconError,
)
from ledger_recon.models.enums import (
    CounterpartyKind,
    EntryType,
    InstrumentType,
)
from ledger_recon.models.external_submission import ExternalSubmission
from ledger_recon.models.instrument import Instrument
from ledger_recon.schemas.ingestion import IngestionPayload, IngestionResult
from ledger_recon.schemas.instrument import InstrumentCreate
from ledger_recon.schemas.ledger import LedgerEntryCreate, PostEntriesRequest
from ledger_recon.services.allocation_service import AllocationService
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.instrument_service import InstrumentService
from ledger_recon.services.invoice_service import InvoiceService
from ledger_recon.services.journal_service import (
    CASH_ACCOUNT,
    PAYABLES_ACCOUNT,
    PURCHASE_RETURNS_ACCOUNT,
    RECEIVABLES_ACCOUNT,
    SALES_RETURNS_ACCOUNT,
    JournalService,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Channel:
    """What a terminal endpoint creates and where its money is posted."""
    instrument_type: InstrumentType
    counterparty_kind: CounterpartyKind
    debit_account: tuple
    credit_account: tuple
    label: str


CHANNELS = {
    # Dr Sales Returns & Allowances, Cr Accounts Receivable
    "credit_note": Channel(
        InstrumentType.CREDIT_NOTE, CounterpartyKind.CUSTOMER,
        SALES_RETURNS_ACCOUNT, RECEIVABLES_ACCOUNT, "Credit Note",
    ),
    # Dr Accounts Payable, Cr Purchase Returns & Allowances
    "debit_note": Channel(
        InstrumentType.DEBIT_NOTE, CounterpartyKind.SUPPLIER,
        PAYABLES_ACCOUNT, PURCHASE_RETURNS_ACCOUNT, "Debit Note",
    ),
    # Dr Cash/Bank, Cr Accounts Receivable
    "receipt": Channel(
        InstrumentType.RECEIPT, CounterpartyKind.CUSTOMER,
        CASH_ACCOUNT, RECEIVABLES_ACCOUNT, "Receipt",
    ),
}


class SlidingWindowRateLimiter:
    """
    At most ``max_requests`` per key in any ``window_seconds`` span.

    Keys with no hit inside the window are dropped once per window,
    so terminals that go quiet do not stay in memory.
    """

    def __init__(self, max_requests: int, window_seconds: float = 60.0, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def _sweep(self, cutoff: float) -> None:
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in idle:
            del self._hits[key]

    def tracked_keys(self) -> set[str]:
        with self._lock:
            return set(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_rate_limiter: SlidingWindowRateLimiter | None = None


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Process-wide limiter shared by all ingestion requests."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = SlidingWindowRateLimiter(
            get_settings().POS_RATE_LIMIT_PER_MINUTE
        )
    return _rate_limiter


def _describe_validation_error(error: PydanticValidationError) -> str:
    problems = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "body"
        problems.append(f"{field}: {item['msg']}")
    return "; ".join(problems)


class IngestionService:

    def __init__(
        self,
        db: Session,
        settings: Settings | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter or get_rate_limiter()

    # --- Guards ---

    def authenticate(self, provided_key: str | None) -> None:
        expected = self.settings.POS_API_KEY
        if expected is None:
            if self.settings.POS_ALLOW_UNAUTHENTICATED:
                return
            logger.warning("POS request refused: no POS_API_KEY configured")
            raise IngestionError(
                "UNAUTHORIZED", "POS ingestion is not configured", 401
            )
        if provided_key != expected:
            logger.warning("POS request refused: invalid or missing API key")
            raise IngestionError(
                "UNAUTHORIZED", "Invalid or missing API key", 401
            )

    def check_rate_limit(self, terminal_id: str) -> None:
        if not self.rate_limiter.allow(terminal_id):
            logger.warning("POS rate limit exceeded for terminal %s", terminal_id)
            raise IngestionError("RATE_LIMIT_EXCEEDED", "Too many requests", 429)

    def validate(self, payload) -> IngestionPayload:
        if not isinstance(payload, dict):
            raise IngestionError("INVALID_PAYLOAD", "Body must be a JSON object")
        try:
            request = IngestionPayload.model_validate(payload)
        except PydanticValidationError as e:
            raise IngestionError(
                "INVALID_PAYLOAD", _describe_validation_error(e)
            ) from e
        if request.amount > self.settings.POS_MAX_AMOUNT:
            raise IngestionError(
                "INVALID_PAYLOAD",
                f"amount exceeds the maximum of {self.settings.POS_MAX_AMOUNT}",
            )
        return request

    # --- Idempotency ---

    def find_submission(self, external_transaction_id: str) -> ExternalSubmission | None:
        return self.db.execute(
            select(ExternalSubmission).where(
                ExternalSubmission.external_transaction_id == external_transaction_id
            )
        ).scalar_one_or_none()

    def _replay(self, submission: ExternalSubmission) -> IngestionResult:
        if submission.response is None:
            raise IngestionError(
                "DUPLICATE_IN_PROGRESS",
                f"Transaction {submission.external_transaction_id} is still being processed",
                409,
            )
        logger.info(
            "Duplicate POS transaction %s replayed",
            submission.external_transaction_id,
        )
        return IngestionResult.model_validate(submission.response)

    def _claim(self, request: IngestionPayload, channel_key: str) -> ExternalSubmission | IngestionResult:
        """Insert the submission row, or return the winner's result."""
        submission = ExternalSubmission(
            external_transaction_id=request.external_transaction_id,
            terminal_id=request.terminal_id,
            channel=channel_key,
        )
        self.db.add(submission)
        try:
            self.db.flush()
        except IntegrityError:
            # Nothing else has been written in this unit yet
            self.db.rollback()
            existing = self.find_submission(request.external_transaction_id)
            if existing is None:
                raise
            return self._replay(existing)
        return submission

    # --- Main entry point ---

    def ingest(self, channel_key: str, payload, api_key: str | None = None) -> IngestionResult:
        channel = CHANNELS[channel_key]

        self.authenticate(api_key)
        terminal_id = "unknown"
        if isinstance(payload, dict) and payload.get("terminal_id"):
            terminal_id = str(payload["terminal_id"])
        self.check_rate_limit(terminal_id)
        request = self.validate(payload)

        existing = self.find_submission(request.external_transaction_id)
        if existing is not None:
            return self._replay(existing)

        kind = channel.counterparty_kind.value
        counterparty = CounterpartyService(self.db).find_active_by_code(
            request.counterparty_code, channel.counterparty_kind
        )
        if counterparty is None:
            raise IngestionError(
                f"{kind}_NOT_FOUND",
                f"{kind.capitalize()} not found: {request.counterparty_code}",
                404,
            )

        invoice = None
        if request.linked_invoice_number:
            invoice = InvoiceService(self.db).find_by_number(request.linked_invoice_number)
            if invoice is None:
                raise IngestionError(
                    "INVOICE_NOT_FOUND",
                    f"Invoice not found: {request.linked_invoice_number}",
                    404,
                )
            if invoice.counterparty_id != counterparty.id:
                raise IngestionError(
                    f"{kind}_MISMATCH",
                    f"Invoice does not belong to this {kind.lower()}",
                )

        claimed = self._claim(request, channel_key)
        if isinstance(claimed, IngestionResult):
            return claimed
        submission = claimed

        try:
            result = self._create_and_apply(channel, request, counterparty, invoice)
        except LedgerReconError as e:
            if isinstance(e, IngestionError):
                raise
            status_code = 409 if isinstance(e, ConcurrencyConflict) else 400
            raise IngestionError(e.code, e.message, status_code) from e

        submission.instrument_id = result.instrument_id
        submission.response = result.model_dump(mode="json")
        self.db.flush()

        logger.info(
            "POS %s %s accepted from terminal %s (txn %s, applied %s)",
            channel.label, result.instrument_number, request.terminal_id,
            request.external_transaction_id, result.amount_applied,
        )
        return result

    def _create_and_apply(self, channel, request, counterparty, invoice) -> IngestionResult:
        notes = f"POS {channel.label} - terminal {request.terminal_id}"
        if request.notes:
            notes = f"{notes} | {request.notes}"

        instrument = InstrumentService(self.db).create_instrument(InstrumentCreate(
            instrument_type=channel.instrument_type,
            counterparty_id=counterparty.id,
            instrument_date=date.today(),
            amount=request.amount,
            linked_invoice_id=invoice.id if invoice else None,
            reason=request.reason,
            payment_method=request.payment_method,
            notes=notes,
            currency=invoice.currency if invoice else None,
        ))

        amount_applied = ZERO
        invoice_new_balance = None
        if request.apply_immediately and invoice is not None and invoice.balance_due > 0:
            allocation = AllocationService(self.db).allocate(
                instrument.id, invoice.id, request.amount, require_approval=False
            )
            amount_applied = allocation.applied_amount
            invoice_new_balance = allocation.invoice_balance
            self._post_journal(channel, instrument, amount_applied)
        elif invoice is not None:
            invoice_new_balance = invoice.balance_due

        return IngestionResult(
            instrument_number=instrument.number,
            instrument_id=instrument.id,
            amount=request.amount,
            amount_applied=amount_applied,
            applied_to_invoice=invoice.number if amount_applied > 0 else None,
            invoice_new_balance=invoice_new_balance,
            status=instrument.status_label,
        )

    def _post_journal(self, channel: Channel, instrument: Instrument, amount: Decimal) -> None:
        journal = JournalService(self.db)
        debit = journal.get_or_create_account(*channel.debit_account, instrument.currency)
        credit = journal.get_or_create_account(*channel.credit_account, instrument.currency)
        description = f"POS {channel.label} {instrument.number}"

        journal.post_entries(PostEntriesRequest(
            currency=instrument.currency,
            entry_date=date.today(),
            reference_type=channel.instrument_type.value,
            reference_id=instrument.id,
            entries=[
                LedgerEntryCreate(
                    account_id=debit.id,
                    entry_type=EntryType.DEBIT,
                    amount=amount,
                    description=description,
                ),
                LedgerEntryCreate(
                    account_id=credit.id,
                    entry_type=EntryType.CREDIT,
                    amount=amount,
                    description=description,
                ),
            ],
        ))
