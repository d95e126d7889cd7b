"""
Typed errors for the reconciliation and allocation engine.

Every error carries a machine-readable ``code`` so the HTTP layer
can report it without parsing messages.

Business-rule failures subclass ValueError. Routers catch
ValueError, roll the session back and answer 400/404; these
failures are never retried.

ConcurrencyConflict errors are the retryable ones: the store rejected
a write because a concurrent writer got there first (an allocation
on the same rows, or the same generated document number). The
whole call may be run again.
"""


class LedgerReconError(Exception):
    """Base class for all engine errors."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# --- Validation ---

class ValidationError(LedgerReconError, ValueError):
    """Malformed or out-of-range input, rejected before touching the store."""

    code = "VALIDATION_ERROR"


# --- Lookups ---

class NotFoundError(LedgerReconError, ValueError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier):
        super().__init__(
            f"{entity.replace('_', ' ').capitalize()} not found: {identifier}",
            code=f"{entity.upper()}_NOT_FOUND",
        )
        self.entity = entity
        self.identifier = identifier


class MismatchError(LedgerReconError, ValueError):
    """Two records that must belong together do not."""

    code = "MISMATCH"


# --- State ---

class StateError(LedgerReconError, ValueError):
    code = "INVALID_STATE"


class InsufficientInstrumentBalance(StateError):
    code = "INSUFFICIENT_INSTRUMENT_BALANCE"

    def __init__(self, number: str, remaining):
        super().__init__(
            f"Instrument {number} has no remaining balance "
            f"(remaining={remaining})"
        )
        self.remaining = remaining


class InvoiceAlreadySettled(StateError):
    code = "INVOICE_ALREADY_SETTLED"

    def __init__(self, number: str, balance_due):
        super().__init__(
            f"Invoice {number} is already settled (balance_due={balance_due})"
        )
        self.balance_due = balance_due


class InstrumentNotAllocatable(StateError):
    code = "INSTRUMENT_NOT_ALLOCATABLE"


class InvoiceNotAllocatable(StateError):
    code = "INVOICE_NOT_ALLOCATABLE"


class InvalidStatusTransition(StateError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, current, target):
        super().__init__(
            f"Cannot transition {entity} from {current.value} to {target.value}"
        )


class AllocationAlreadyReversed(StateError):
    code = "ALLOCATION_ALREADY_REVERSED"


# --- Concurrency ---

class ConcurrencyConflict(LedgerReconError):
    """A concurrent write won the race. Safe to retry the whole call."""

    code = "CONFLICT"


class AllocationConflict(ConcurrencyConflict):
    code = "ALLOCATION_CONFLICT"


class NumberConflict(ConcurrencyConflict):
    code = "NUMBER_CONFLICT"

    def __init__(self, number: str):
        super().__init__(
            f"Document number {number} was taken by a concurrent writer"
        )
        self.number = number


# --- External ingestion ---

class IngestionError(LedgerReconError):
    """Failure surfaced to a point-of-sale caller with an explicit code."""

    def __init__(self, code: str, message: str, status_code: int = 400):
        super().__init__(message, code=code)
        self.status_code = status_code
