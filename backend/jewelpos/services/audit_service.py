# Overview: Service-layer operations for the audit trail; append-only events written with the action they record.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
from jewelpos.time_utils import utcnow
"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- No domain/business logic here.
- Events are written inside the same DB transaction as the action they record,
  so a rolled-back checkout or renegotiation leaves no event behind.
- occurred_at is when the action happened, naive UTC like every other
  timestamp (defaults to utcnow); created_at is the insert time (DB default).
"""


def record_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    sale_id: int | None = None,
    payable_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        sale_id=sale_id,
        payable_id=payable_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_events(
    *,
    sale_id: int | None = None,
    payable_id: int | None = None,
    event_type: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if sale_id is not None:
        q = q.filter(AuditEvent.sale_id == sale_id)
    if payable_id is not None:
        q = q.filter(AuditEvent.payable_id == payable_id)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    return q.order_by(AuditEvent.id.asc()).limit(limit).all()
