# Overview: Service-layer operations for the activity feed; append-only audit of ledger and workflow events.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..identity import Actor
from ..models import ActivityEvent
from ..time_utils import utcnow
"""
Activity Feed Invariants

- Append-only: no updates or deletes of existing events.
- No domain/business logic here; callers decide what happened.
- Events are written inside the same DB transaction as the change they
  record, so a rolled-back operation leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_activity(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id,
    actor: Actor | None = None,
    chain: str | None = None,
    request_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityEvent:
    ev = ActivityEvent(
        event_type=event_type,
        event_category=event_category,
        chain=chain,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=actor.id if actor else None,
        actor_name=actor.name if actor else None,
        actor_role=actor.role if actor else None,
        request_id=request_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_activity(
    *,
    chain: str | None = None,
    actor_id: str | None = None,
    request_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[ActivityEvent]:
    q = db.session.query(ActivityEvent)
    if chain is not None:
        q = q.filter(ActivityEvent.chain == chain)
    if actor_id is not None:
        q = q.filter(ActivityEvent.actor_id == actor_id)
    if request_id is not None:
        q = q.filter(ActivityEvent.request_id == request_id)
    if event_category is not None:
        q = q.filter(ActivityEvent.event_category == event_category)

    return q.order_by(
        ActivityEvent.occurred_at.desc(),
        ActivityEvent.id.desc(),
    ).limit(limit).all()
