"""Append-only audit trail helper."""

import json

from sqlalchemy.orm import Session

from ledger_recon.models.audit_log import AuditLog


def record_event(
    db: Session,
    event_type: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    **details,
) -> AuditLog:
    entry = AuditLog(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details, default=str, sort_keys=True),
    )
    db.add(entry)
    return entry
