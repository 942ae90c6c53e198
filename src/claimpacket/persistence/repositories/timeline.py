"""Append-only claim timeline storage. No update or delete operations exist."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from claimpacket.models.timeline import TimelineEvent
from claimpacket.persistence.db import org_transaction

if TYPE_CHECKING:
    from sqlalchemy import Engine


class TimelineRepository(Protocol):
    def append(self, event: TimelineEvent) -> TimelineEvent: ...

    def list_for_claim(self, org_id: str, claim_id: str) -> list[TimelineEvent]: ...


def _row_to_event(row: Any) -> TimelineEvent:
    data = dict(row._mapping)
    if isinstance(data.get("metadata"), str):
        data["metadata"] = json.loads(data["metadata"])
    return TimelineEvent.model_validate(data)


class PostgresTimelineRepository:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def append(self, event: TimelineEvent) -> TimelineEvent:
        with org_transaction(self._engine, event.org_id) as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO claim_timeline_events (
                        id, claim_id, org_id, actor_id, actor_type, type,
                        description, metadata, created_at
                    ) VALUES (
                        :id, :claim_id, :org_id, :actor_id, :actor_type, :type,
                        :description, CAST(:metadata AS JSONB), :created_at
                    )
                    """
                ),
                {
                    **event.model_dump(exclude={"metadata"}),
                    "metadata": json.dumps(
                        event.metadata.model_dump(mode="json"), sort_keys=True
                    ),
                },
            )
        return event

    def list_for_claim(self, org_id: str, claim_id: str) -> list[TimelineEvent]:
        with org_transaction(self._engine, org_id) as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT id, claim_id, org_id, actor_id, actor_type, type,
                           description, metadata, created_at
                    FROM claim_timeline_events
                    WHERE claim_id = :claim_id AND org_id = :org_id
                    ORDER BY created_at, id
                    """
                ),
                {"claim_id": claim_id, "org_id": org_id},
            ).fetchall()
        return [_row_to_event(r) for r in rows]


class InMemoryTimelineRepository:
    """In-memory twin for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[TimelineEvent] = []

    def append(self, event: TimelineEvent) -> TimelineEvent:
        with self._lock:
            self._events.append(event)
        return event

    def list_for_claim(self, org_id: str, claim_id: str) -> list[TimelineEvent]:
        with self._lock:
            return [e for e in self._events if e.org_id == org_id and e.claim_id == claim_id]
