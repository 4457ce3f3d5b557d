# Overview: Append-only activity log for order transitions, billing, allocations and resets.

from __future__ import annotations

from typing import Callable, Optional
from datetime import datetime

from ..time_utils import timestamp_key, to_utc_z, utcnow
from .entity_store import EntityStore


"""
Activity log invariants

- Append-only: entries are never updated or deleted (the store enforces it).
- No domain logic here; callers decide what is worth recording.
- occurredAt is business time of the recorded action.
"""

COLLECTION = "activity_log"


class ActivityLog:
    def __init__(self, store: EntityStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def record(
        self,
        *,
        actor_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        note: Optional[str] = None,
        payload: Optional[dict] = None,
        occurred_at: Optional[datetime] = None,
    ) -> dict:
        return self.store.create(COLLECTION, {
            "actor": actor_id,
            "action": action,
            "entityType": entity_type,
            "entityId": entity_id,
            "note": note,
            "payload": payload or {},
            "occurredAt": to_utc_z(occurred_at or self.clock()),
        })

    def for_entity(self, entity_type: str, entity_id: str) -> list[dict]:
        events = [
            e for e in self.store.query_where(COLLECTION, "entityId", "==", entity_id)
            if e.get("entityType") == entity_type
        ]
        return sorted(
            events,
            key=lambda e: (timestamp_key(e.get("occurredAt")), timestamp_key(e.get("createdAt"))),
        )
