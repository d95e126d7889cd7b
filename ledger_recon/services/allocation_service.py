"""
Allocation service — applies instruments to invoices.

This is the only code that moves Instrument.amount_applied and
Invoice.amount_paid. Every allocate call is one unit of work:

1. Lock the instrument row, then the invoice row (always in this
   order, so two allocations can never deadlock on each other)
2. Check both are allocatable and belong to the same counterparty
3. apply = min(requested, instrument remaining, invoice balance)
4. Add the allocation row
5. Move both counters and recompute both statuses
6. Flush

Rows are read with SELECT ... FOR UPDATE where the database
supports it. Both tables also carry a version column, so a writer
that read a stale row fails with StaleDataError instead of
over-applying; that is surfaced as AllocationConflict.

The service never commits. The caller commits on success and
rolls back on any exception, so a half-applied allocation is
never visible. allocate_with_retry() wraps that for callers that
want conflicts retried.
"""

import logging
import time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, aliased
from sqlalchemy.orm.exc import StaleDataError

from ledger_recon.config import get_settings
from ledger_recon.exceptions import (
    AllocationAlreadyReversed,
    AllocationConflict,
    InstrumentNotAllocatable,
    InsufficientInstrumentBalance,
    InvoiceAlreadySettled,
    InvoiceNotAllocatable,
    MismatchError,
    NotFoundError,
    StateError,
    ValidationError,
)
from ledger_recon.models.allocation import Allocation
from ledger_recon.models.enums import InstrumentStatus, InvoiceStatus
from ledger_recon.models.instrument import Instrument
from ledger_recon.models.invoice import Invoice
from ledger_recon.schemas.allocation import AllocationResult
from ledger_recon.services.audit import record_event
from ledger_recon.services.settlement import move_instrument, move_invoice

logger = logging.getLogger(__name__)

UNALLOCATABLE_INSTRUMENT_STATUSES = {
    InstrumentStatus.CANCELLED,
    InstrumentStatus.REVERSED,
}
UNALLOCATABLE_INVOICE_STATUSES = {
    InvoiceStatus.CANCELLED,
    InvoiceStatus.WRITTEN_OFF,
}


class AllocationService:

    def __init__(self, db: Session):
        self.db = db

    # --- Locking ---

    def lock_instrument(self, instrument_id: int) -> Instrument:
        """Load the instrument fresh from the store, row-locked."""
        instrument = self.db.get(
            Instrument, instrument_id,
            with_for_update=True, populate_existing=True,
        )
        if not instrument:
            raise NotFoundError("instrument", instrument_id)
        return instrument

    def lock_invoice(self, invoice_id: int) -> Invoice:
        """Load the invoice fresh from the store, row-locked."""
        invoice = self.db.get(
            Invoice, invoice_id,
            with_for_update=True, populate_existing=True,
        )
        if not invoice:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    # --- Checks ---

    def _check_instrument(self, instrument: Instrument, require_approval: bool) -> None:
        if instrument.status in UNALLOCATABLE_INSTRUMENT_STATUSES:
            raise InstrumentNotAllocatable(
                f"Instrument {instrument.number} is {instrument.status.value}"
            )
        if (
            require_approval
            and instrument.requires_approval
            and instrument.status == InstrumentStatus.PENDING
        ):
            raise InstrumentNotAllocatable(
                f"{instrument.instrument_type.value} {instrument.number} "
                f"must be approved before it is applied"
            )

    def _check_invoice(self, invoice: Invoice) -> None:
        if invoice.status in UNALLOCATABLE_INVOICE_STATUSES:
            raise InvoiceNotAllocatable(
                f"Invoice {invoice.number} is {invoice.status.value}"
            )

    def _check_pairing(self, instrument: Instrument, invoice: Invoice) -> None:
        if instrument.counterparty_id != invoice.counterparty_id:
            raise MismatchError(
                f"Instrument {instrument.number} and invoice {invoice.number} "
                f"belong to different counterparties",
                code="COUNTERPARTY_MISMATCH",
            )
        if instrument.currency != invoice.currency:
            raise MismatchError(
                f"Instrument {instrument.number} is in {instrument.currency}, "
                f"invoice {invoice.number} is in {invoice.currency}",
                code="CURRENCY_MISMATCH",
            )

    # --- Allocation ---

    def allocate(
        self,
        instrument_id: int,
        invoice_id: int,
        requested_amount: Decimal,
        *,
        require_approval: bool = True,
    ) -> AllocationResult:
        """
        Apply up to ``requested_amount`` of an instrument to an invoice.

        The amount actually applied is capped by what is left on
        the instrument and what is still owed on the invoice.

        ``require_approval=False`` lets point-of-sale ingestion
        apply a credit or debit note it has just raised.
        """
        requested_amount = _to_decimal(requested_amount)

        instrument = self.lock_instrument(instrument_id)
        invoice = self.lock_invoice(invoice_id)

        return self._apply(instrument, invoice, requested_amount, require_approval)

    def allocate_many(
        self,
        instrument_id: int,
        lines: list[tuple[int, Decimal]],
        *,
        require_approval: bool = True,
    ) -> list[AllocationResult]:
        """
        Split one instrument across several invoices in one unit.

        Invoices are locked in ascending id order after the
        instrument. If any line fails, the caller's rollback
        undoes every line.
        """
        if not lines:
            raise ValidationError("At least one allocation line is required")

        instrument = self.lock_instrument(instrument_id)
        invoices = {
            invoice_id: self.lock_invoice(invoice_id)
            for invoice_id in sorted({invoice_id for invoice_id, _ in lines})
        }

        return [
            self._apply(
                instrument,
                invoices[invoice_id],
                _to_decimal(amount),
                require_approval,
            )
            for invoice_id, amount in lines
        ]

    def _apply(
        self,
        instrument: Instrument,
        invoice: Invoice,
        requested_amount: Decimal,
        require_approval: bool,
    ) -> AllocationResult:
        self._check_instrument(instrument, require_approval)
        self._check_invoice(invoice)
        self._check_pairing(instrument, invoice)

        remaining = instrument.remaining
        if remaining <= 0:
            raise InsufficientInstrumentBalance(instrument.number, remaining)

        balance_due = invoice.balance_due
        if balance_due <= 0:
            raise InvoiceAlreadySettled(invoice.number, balance_due)

        apply_amount = min(requested_amount, remaining, balance_due)

        allocation = Allocation(
            instrument_id=instrument.id,
            invoice_id=invoice.id,
            amount=apply_amount,
        )
        self.db.add(allocation)

        move_instrument(instrument, apply_amount)
        if instrument.status == InstrumentStatus.APPLIED:
            instrument.applied_to_invoice_id = invoice.id

        move_invoice(invoice, apply_amount)

        self._flush()
        record_event(
            self.db, "allocation_applied", "allocation", allocation.id,
            instrument=instrument.number,
            invoice=invoice.number,
            requested=requested_amount,
            applied=apply_amount,
        )
        self._flush()

        logger.info(
            "Applied %s of %s to %s (instrument remaining %s, invoice balance %s)",
            apply_amount, instrument.number, invoice.number,
            instrument.remaining, invoice.balance_due,
        )
        return AllocationResult(
            allocation_id=allocation.id,
            applied_amount=apply_amount,
            instrument_remaining=remaining - apply_amount,
            invoice_balance=balance_due - apply_amount,
            instrument_status=instrument.status_label,
            invoice_status=invoice.status.value,
        )

    # --- Reversal ---

    def reverse_allocation(self, allocation_id: int, reason: str) -> Allocation:
        """
        Cancel a prior allocation with a negative counter-allocation.

        The original row is left untouched. Both counters move back
        by the original amount; neither may end up negative.
        """
        original = self.db.get(Allocation, allocation_id)
        if not original:
            raise NotFoundError("allocation", allocation_id)
        if original.is_reversal:
            raise StateError(f"Allocation {allocation_id} is itself a reversal")

        already = self.db.execute(
            select(Allocation.id).where(
                Allocation.reverses_allocation_id == allocation_id
            )
        ).scalar_one_or_none()
        if already is not None:
            raise AllocationAlreadyReversed(
                f"Allocation {allocation_id} was already reversed by {already}"
            )

        instrument = self.lock_instrument(original.instrument_id)
        invoice = self.lock_invoice(original.invoice_id)
        if instrument.status == InstrumentStatus.REVERSED:
            raise StateError(f"Instrument {instrument.number} is already reversed")
        # Written-off and cancelled invoices are closed for good
        self._check_invoice(invoice)

        delta = -original.amount
        counter = Allocation(
            instrument_id=instrument.id,
            invoice_id=invoice.id,
            amount=delta,
            reverses_allocation_id=original.id,
            reason=reason,
        )
        self.db.add(counter)

        move_instrument(instrument, delta)
        if (
            instrument.status != InstrumentStatus.APPLIED
            and instrument.applied_to_invoice_id == invoice.id
        ):
            instrument.applied_to_invoice_id = None

        move_invoice(invoice, delta)

        self._flush()
        record_event(
            self.db, "allocation_reversed", "allocation", counter.id,
            reverses=original.id,
            instrument=instrument.number,
            invoice=invoice.number,
            amount=original.amount,
            reason=reason,
        )
        self._flush()

        logger.info(
            "Reversed allocation %s (%s of %s on %s): %s",
            original.id, original.amount, instrument.number, invoice.number, reason,
        )
        return counter

    def _flush(self) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise AllocationConflict(
                "Instrument or invoice was changed by a concurrent allocation"
            ) from e
        except IntegrityError as e:
            raise AllocationConflict(
                "Allocation rejected by a store constraint"
            ) from e

    # --- Queries ---

    def get_allocation(self, allocation_id: int) -> Allocation:
        allocation = self.db.get(Allocation, allocation_id)
        if not allocation:
            raise NotFoundError("allocation", allocation_id)
        return allocation

    def allocations_for_instrument(self, instrument_id: int) -> list[Allocation]:
        allocations = self.db.execute(
            select(Allocation)
            .where(Allocation.instrument_id == instrument_id)
            .order_by(Allocation.id)
        ).scalars().all()
        return list(allocations)

    def allocations_for_invoice(self, invoice_id: int) -> list[Allocation]:
        allocations = self.db.execute(
            select(Allocation)
            .where(Allocation.invoice_id == invoice_id)
            .order_by(Allocation.id)
        ).scalars().all()
        return list(allocations)

    def live_allocations_for_instrument(self, instrument_id: int) -> list[Allocation]:
        """Allocations of the instrument that have not been reversed."""
        reversal = aliased(Allocation)
        allocations = self.db.execute(
            select(Allocation)
            .where(
                Allocation.instrument_id == instrument_id,
                Allocation.reverses_allocation_id.is_(None),
                ~select(reversal.id)
                .where(reversal.reverses_allocation_id == Allocation.id)
                .exists(),
            )
            .order_by(Allocation.id)
        ).scalars().all()
        return list(allocations)


def _to_decimal(value) -> Decimal:
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if amount <= 0:
        raise ValidationError(f"Allocation amount must be positive, got {amount}")
    return amount


def allocate_with_retry(
    session_factory,
    instrument_id: int,
    invoice_id: int,
    requested_amount: Decimal,
    *,
    require_approval: bool = True,
    max_retries: int | None = None,
) -> AllocationResult:
    """
    Run one allocation in its own session and commit it.

    A concurrency conflict rolls the whole attempt back and starts
    again from step 1 with fresh reads. Business-rule errors are
    raised straight away.
    """
    if max_retries is None:
        max_retries = get_settings().ALLOCATION_MAX_RETRIES

    attempt = 0
    while True:
        attempt += 1
        db = session_factory()
        try:
            result = AllocationService(db).allocate(
                instrument_id,
                invoice_id,
                requested_amount,
                require_approval=require_approval,
            )
            db.commit()
            return result
        except (AllocationConflict, StaleDataError, OperationalError) as e:
            db.rollback()
            if attempt > max_retries:
                raise AllocationConflict(
                    f"Allocation of instrument {instrument_id} to invoice "
                    f"{invoice_id} still conflicting after {attempt} attempts"
                ) from e
            logger.warning(
                "Allocation conflict on instrument %s / invoice %s, retrying (%d/%d)",
                instrument_id, invoice_id, attempt, max_retries,
            )
            time.sleep(0.05 * attempt)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
