"""
Sequential document numbers: ``<PREFIX>-<YEAR>-<NNNN>``.

The next number is one past the highest existing number with the
same prefix and year. The unique constraint on the number column
is the final guard when two writers pick the same one: the loser
gets a NumberConflict and may run the whole call again.
"""

import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_recon.exceptions import NumberConflict, ValidationError


def format_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:04d}"


def next_number(db: Session, model, prefix: str, year: int) -> str:
    pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d+)$")
    numbers = db.execute(
        select(model.number).where(model.number.like(f"{prefix}-{year}-%"))
    ).scalars().all()

    highest = 0
    for number in numbers:
        match = pattern.match(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return format_number(prefix, year, highest + 1)


def number_taken(db: Session, model, number: str) -> bool:
    return db.execute(
        select(model.id).where(model.number == number)
    ).first() is not None


def flush_numbered(db: Session, document, generated: bool) -> None:
    """
    Flush a newly added numbered document.

    A clash on a generated number means another writer took it
    between next_number() and this flush. The session must be
    rolled back by the caller either way.
    """
    try:
        db.flush()
    except IntegrityError as e:
        if generated:
            raise NumberConflict(document.number) from e
        raise ValidationError(
            f"Document number {document.number} is already in use"
        ) from e
