"""Business logic services."""

from ledger_recon.services.journal_service import JournalService
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.invoice_service import InvoiceService
from ledger_recon.services.allocation_service import AllocationService, allocate_with_retry
from ledger_recon.services.instrument_service import InstrumentService
from ledger_recon.services.reconciliation_service import ReconciliationService
from ledger_recon.services.ageing_service import AgeingService
from ledger_recon.services.exposure_service import ExposureService
from ledger_recon.services.ingestion_service import IngestionService

__all__ = [
    "JournalService",
    "CounterpartyService",
    "InvoiceService",
    "AllocationService",
    "allocate_with_retry",
    "InstrumentService",
    "ReconciliationService",
    "AgeingService",
    "ExposureService",
    "IngestionService",
]
