"""
Instrument service — raising, approving and cancelling credit
notes, debit notes, advances, receipts and payments.

Applying an instrument to invoices is the AllocationService's
job. Reversing a whole instrument is done here by reversing every
live allocation through the AllocationService and then closing
the instrument as ``reversed``.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ledger_recon.config import get_settings
from ledger_recon.exceptions import (
    InvalidStatusTransition,
    MismatchError,
    NotFoundError,
    StateError,
    ValidationError,
)
from ledger_recon.models.enums import (
    CounterpartyKind,
    InstrumentStatus,
    InstrumentType,
)
from ledger_recon.models.instrument import Instrument, NUMBER_PREFIXES
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.instrument import InstrumentCreate
from ledger_recon.services.allocation_service import AllocationService
from ledger_recon.services.audit import record_event
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.numbering import flush_numbered, next_number, number_taken

logger = logging.getLogger(__name__)

# Which side of the books each instrument type belongs to
ALLOWED_KINDS = {
    InstrumentType.CREDIT_NOTE: {CounterpartyKind.CUSTOMER},
    InstrumentType.RECEIPT: {CounterpartyKind.CUSTOMER},
    InstrumentType.DEBIT_NOTE: {CounterpartyKind.SUPPLIER},
    InstrumentType.PAYMENT: {CounterpartyKind.SUPPLIER},
    InstrumentType.ADVANCE: {CounterpartyKind.CUSTOMER, CounterpartyKind.SUPPLIER},
}


class InstrumentService:

    def __init__(self, db: Session):
        self.db = db
        self.counterparties = CounterpartyService(db)

    def create_instrument(self, request: InstrumentCreate) -> Instrument:
        """Raise a new instrument in ``pending`` status."""
        counterparty = self.counterparties.get_counterparty(request.counterparty_id)
        if not counterparty.is_active:
            raise StateError(f"Counterparty {counterparty.code} is not active")

        if counterparty.kind not in ALLOWED_KINDS[request.instrument_type]:
            raise ValidationError(
                f"A {request.instrument_type.value} cannot be raised for a "
                f"{counterparty.kind.value.lower()}"
            )

        if request.linked_invoice_id is not None:
            invoice = self.db.get(Invoice, request.linked_invoice_id)
            if not invoice:
                raise NotFoundError("invoice", request.linked_invoice_id)
            if invoice.counterparty_id != counterparty.id:
                raise MismatchError(
                    f"Invoice {invoice.number} does not belong to "
                    f"{counterparty.code}",
                    code=f"{counterparty.kind.value}_MISMATCH",
                )

        if request.number and number_taken(self.db, Instrument, request.number):
            raise ValidationError(f"Instrument number {request.number} is already in use")
        number = request.number or next_number(
            self.db,
            Instrument,
            NUMBER_PREFIXES[request.instrument_type],
            request.instrument_date.year,
        )

        instrument = Instrument(
            number=number,
            instrument_type=request.instrument_type,
            counterparty_id=counterparty.id,
            linked_invoice_id=request.linked_invoice_id,
            instrument_date=request.instrument_date,
            original_amount=request.amount,
            currency=request.currency or get_settings().DEFAULT_CURRENCY,
            reason=request.reason,
            payment_method=request.payment_method,
            notes=request.notes,
        )
        self.db.add(instrument)
        flush_numbered(self.db, instrument, generated=not request.number)
        record_event(
            self.db, "instrument_created", "instrument", instrument.id,
            number=instrument.number, amount=instrument.original_amount,
        )
        return instrument

    def get_instrument(self, instrument_id: int) -> Instrument:
        instrument = self.db.get(Instrument, instrument_id)
        if not instrument:
            raise NotFoundError("instrument", instrument_id)
        return instrument

    def approve(self, instrument_id: int) -> Instrument:
        """Second phase for credit and debit notes: pending -> approved."""
        instrument = self.get_instrument(instrument_id)
        if not instrument.requires_approval:
            raise StateError(
                f"{instrument.instrument_type.value} {instrument.number} "
                f"does not need approval"
            )
        if instrument.status != InstrumentStatus.PENDING:
            raise InvalidStatusTransition(
                "instrument", instrument.status, InstrumentStatus.APPROVED
            )

        instrument.status = InstrumentStatus.APPROVED
        instrument.approved_at = datetime.utcnow()
        record_event(
            self.db, "instrument_approved", "instrument", instrument.id,
            number=instrument.number,
        )
        self.db.flush()
        logger.info("Approved %s", instrument.number)
        return instrument

    def cancel(self, instrument_id: int) -> Instrument:
        instrument = self.get_instrument(instrument_id)
        if instrument.amount_applied > 0:
            raise StateError(
                f"Instrument {instrument.number} has been applied; "
                f"reverse it instead"
            )
        if not instrument.can_transition_to(InstrumentStatus.CANCELLED):
            raise InvalidStatusTransition(
                "instrument", instrument.status, InstrumentStatus.CANCELLED
            )

        instrument.status = InstrumentStatus.CANCELLED
        record_event(
            self.db, "instrument_cancelled", "instrument", instrument.id,
            number=instrument.number,
        )
        self.db.flush()
        logger.info("Cancelled %s", instrument.number)
        return instrument

    def reverse_instrument(self, instrument_id: int, reason: str) -> Instrument:
        """
        Undo every allocation of an instrument and close it.

        Each live allocation gets its own reversing row, so the
        allocation history still shows where the money went.
        """
        instrument = self.get_instrument(instrument_id)
        if not instrument.can_transition_to(InstrumentStatus.REVERSED):
            raise InvalidStatusTransition(
                "instrument", instrument.status, InstrumentStatus.REVERSED
            )

        allocations = AllocationService(self.db)
        for allocation in allocations.live_allocations_for_instrument(instrument.id):
            allocations.reverse_allocation(allocation.id, reason)

        instrument = allocations.lock_instrument(instrument.id)
        instrument.status = InstrumentStatus.REVERSED
        record_event(
            self.db, "instrument_reversed", "instrument", instrument.id,
            number=instrument.number, reason=reason,
        )
        self.db.flush()
        logger.info("Reversed %s: %s", instrument.number, reason)
        return instrument
