"""
Database engine, session management, and base model.

Every model inherits from Base. Every request gets a session
from get_db(). Services never commit; the caller owns the
transaction boundary and rolls back on any error.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from ledger_recon.config import get_settings

settings = get_settings()

# pool_pre_ping=True tests connections before handing them out,
# so a restarted database does not fail the first allocation
# attempted on a stale connection.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# autocommit=False: an allocation writes an allocation row and
# two counters, and all three must commit together or not at all.
# autoflush=False: SQL is only sent on explicit flush/commit.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The session is always closed when the request finishes,
    even if an error occurs, so connections are never leaked.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
