"""
Counterparty service — customers and suppliers.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_recon.exceptions import NotFoundError, ValidationError
from ledger_recon.models.counterparty import Counterparty
from ledger_recon.models.enums import CounterpartyKind
from ledger_recon.schemas.counterparty import CounterpartyCreate


class CounterpartyService:

    def __init__(self, db: Session):
        self.db = db

    def create_counterparty(self, request: CounterpartyCreate) -> Counterparty:
        existing = self.db.execute(
            select(Counterparty).where(Counterparty.code == request.code)
        ).scalar_one_or_none()

        if existing:
            raise ValidationError(
                f"Counterparty with code '{request.code}' already exists"
            )

        counterparty = Counterparty(
            code=request.code,
            name=request.name,
            kind=request.kind,
            credit_limit=request.credit_limit,
        )
        self.db.add(counterparty)
        self.db.flush()
        return counterparty

    def get_counterparty(self, counterparty_id: int) -> Counterparty:
        counterparty = self.db.get(Counterparty, counterparty_id)
        if not counterparty:
            raise NotFoundError("counterparty", counterparty_id)
        return counterparty

    def find_active_by_code(
        self, code: str, kind: CounterpartyKind
    ) -> Counterparty | None:
        return self.db.execute(
            select(Counterparty).where(
                Counterparty.code == code,
                Counterparty.kind == kind,
                Counterparty.is_active.is_(True),
            )
        ).scalar_one_or_none()
