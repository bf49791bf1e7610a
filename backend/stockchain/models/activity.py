from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class ActivityEvent(db.Model):
    """
    Append-only activity feed for ledger and workflow events.

    occurred_at is business time; created_at is system time (DB default).
    Rows are never updated or deleted.
    """
    __tablename__ = "activity_events"
    __table_args__ = (
        db.Index("ix_activity_events_chain_occurred", "chain", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    event_category = db.Column(db.String(32), nullable=False, index=True)
    chain = db.Column(db.String(32), nullable=True)

    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)

    actor_id = db.Column(db.String(128), nullable=True, index=True)
    actor_name = db.Column(db.String(255), nullable=True)
    actor_role = db.Column(db.String(64), nullable=True)

    request_id = db.Column(db.Integer, nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "chain": self.chain,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_role": self.actor_role,
            "request_id": self.request_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": json.loads(self.payload) if self.payload else None,
        }
