"""
Ledger Reconciliation Engine — FastAPI Application.

This is the entry point for the application.
All routers are registered here.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler

from ledger_recon.config import get_settings
from ledger_recon.logging_config import configure_logging
from ledger_recon.api.health import router as health_router
from ledger_recon.api.counterparties import router as counterparties_router
from ledger_recon.api.invoices import router as invoices_router
from ledger_recon.api.instruments import router as instruments_router
from ledger_recon.api.allocations import router as allocations_router
from ledger_recon.api.reports import router as reports_router
from ledger_recon.api.ledger import router as ledger_router
from ledger_recon.api.ingestion import router as ingestion_router, error_response

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Invoice settlement, allocation and counterparty reconciliation",
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Terminals only understand the flat POS envelope
    if request.url.path.startswith(ingestion_router.prefix):
        return error_response("INVALID_PAYLOAD", "Request body is not valid JSON", 400)
    return await request_validation_exception_handler(request, exc)


# Register routers
app.include_router(health_router)
app.include_router(counterparties_router)
app.include_router(invoices_router)
app.include_router(instruments_router)
app.include_router(allocations_router)
app.include_router(reports_router)
app.include_router(ledger_router)
app.include_router(ingestion_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ledger_recon.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
