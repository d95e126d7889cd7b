"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Each test gets a fresh schema, and the
POS settings and rate limiter are replaced per test so no
state leaks between tests.
"""

import os

# Must be set before ledger_recon.models.base builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledger_recon.config import Settings, get_settings
from ledger_recon.main import app
from ledger_recon.models.base import Base, get_db
from ledger_recon.models.enums import CounterpartyKind, InstrumentType
from ledger_recon.schemas.counterparty import CounterpartyCreate
from ledger_recon.schemas.instrument import InstrumentCreate
from ledger_recon.schemas.invoice import InvoiceCreate
from ledger_recon.services.counterparty_service import CounterpartyService
from ledger_recon.services.ingestion_service import (
    SlidingWindowRateLimiter,
    get_rate_limiter,
)
from ledger_recon.services.instrument_service import InstrumentService
from ledger_recon.services.invoice_service import InvoiceService


# Use SQLite for tests — no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

POS_KEY = "test-pos-key"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """For code that opens and commits its own sessions."""
    return TestSessionLocal


@pytest.fixture
def pos_settings():
    """Settings with a known POS key and a small rate limit."""
    settings = Settings()
    settings.POS_API_KEY = POS_KEY
    settings.POS_ALLOW_UNAUTHENTICATED = False
    settings.POS_RATE_LIMIT_PER_MINUTE = 5
    return settings


@pytest.fixture
def rate_limiter(pos_settings):
    return SlidingWindowRateLimiter(pos_settings.POS_RATE_LIMIT_PER_MINUTE)


@pytest.fixture
def client(db_session, pos_settings, rate_limiter):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: pos_settings
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Builders ---

@pytest.fixture
def make_counterparty(db_session):
    def build(code, kind=CounterpartyKind.CUSTOMER, name=None, credit_limit=None):
        counterparty = CounterpartyService(db_session).create_counterparty(
            CounterpartyCreate(
                code=code,
                name=name or f"{code} Ltd",
                kind=kind,
                credit_limit=credit_limit,
            )
        )
        db_session.commit()
        return counterparty
    return build


@pytest.fixture
def customer(make_counterparty):
    return make_counterparty("CUST-001", name="Acme Retail")


@pytest.fixture
def supplier(make_counterparty):
    return make_counterparty("SUPP-001", CounterpartyKind.SUPPLIER, "Globex Supply")


@pytest.fixture
def make_invoice(db_session):
    def build(counterparty, total, issue_date=None, due_date=None, number=None, currency=None):
        issue_date = issue_date or date.today()
        invoice = InvoiceService(db_session).create_invoice(InvoiceCreate(
            counterparty_id=counterparty.id,
            issue_date=issue_date,
            due_date=due_date or issue_date + timedelta(days=30),
            subtotal=Decimal(str(total)),
            number=number,
            currency=currency,
        ))
        db_session.commit()
        return invoice
    return build


@pytest.fixture
def make_instrument(db_session):
    def build(
        counterparty,
        amount,
        instrument_type=InstrumentType.CREDIT_NOTE,
        instrument_date=None,
        number=None,
        approve=False,
        currency=None,
    ):
        service = InstrumentService(db_session)
        instrument = service.create_instrument(InstrumentCreate(
            instrument_type=instrument_type,
            counterparty_id=counterparty.id,
            instrument_date=instrument_date or date.today(),
            amount=Decimal(str(amount)),
            number=number,
            currency=currency,
        ))
        if approve:
            service.approve(instrument.id)
        db_session.commit()
        return instrument
    return build
