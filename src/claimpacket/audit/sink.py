"""Operational audit sinks for the report pipeline.

Records who generated, edited or deleted which report. This log is separate
from the claim timeline: deliveries are recorded only as TimelineEvents.

Sink requirements:
- Append-only: never truncate/overwrite
- Fail closed: any IO failure raises AuditSinkError
- Deterministic: sorted keys, compact separators
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

AUDIT_LOG_PATH_ENV = "CLAIMPACKET_AUDIT_LOG_PATH"
DEFAULT_AUDIT_LOG_PATH = "./var/audit/report_events.jsonl"

GENERATION_STARTED = "report.generation.started"
GENERATION_COMPLETED = "report.generation.completed"
GENERATION_FAILED = "report.generation.failed"
ARTIFACT_UPDATED = "artifact.updated"
ARTIFACT_DELETED = "artifact.deleted"


class AuditSinkError(Exception):
    """Raised when audit event emission fails.

    Surfaces to the API layer as a 500 response.
    """

    pass


@runtime_checkable
class AuditSink(Protocol):
    """Protocol for audit event sinks."""

    def emit(self, event: dict[str, Any]) -> None:
        """Emit an audit event to the sink.

        Raises:
            AuditSinkError: If emission fails for any reason
        """
        ...


def build_audit_event(
    event_type: str,
    *,
    org_id: str,
    actor_id: str | None,
    resource_type: str,
    resource_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build an audit event dict with a fresh id and UTC timestamp."""
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "org_id": org_id,
        "actor_id": actor_id,
        "resource": {"type": resource_type, "id": resource_id},
        "details": details or {},
    }


class JsonlFileAuditSink:
    """Append-only JSONL file sink.

    File path comes from CLAIMPACKET_AUDIT_LOG_PATH (default
    ./var/audit/report_events.jsonl); parent directories are created on
    first write.
    """

    def __init__(self, file_path: str | None = None) -> None:
        if file_path is not None:
            self._file_path = Path(file_path)
        else:
            self._file_path = Path(os.environ.get(AUDIT_LOG_PATH_ENV) or DEFAULT_AUDIT_LOG_PATH)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def emit(self, event: dict[str, Any]) -> None:
        """Append the event as one JSON line.

        Raises:
            AuditSinkError: If serialization or file write fails
        """
        try:
            line = json.dumps(event, sort_keys=True, separators=(",", ":")) + "\n"
        except (TypeError, ValueError) as e:
            raise AuditSinkError(f"Failed to serialize audit event: {e}") from e

        parent = self._file_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AuditSinkError(f"Failed to create audit log directory {parent}: {e}") from e

        try:
            with self._lock, open(self._file_path, mode="a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise AuditSinkError(f"Failed to write audit event to {self._file_path}: {e}") from e


class InMemoryAuditSink:
    """In-memory audit sink for testing (no disk writes)."""

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, event: dict[str, Any]) -> None:
        # Round-trip through JSON so tests see exactly what a file sink would write.
        try:
            line = json.dumps(event, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise AuditSinkError(f"Failed to serialize audit event: {e}") from e
        with self._lock:
            self._events.append(json.loads(line))

    @property
    def events(self) -> list[dict[str, Any]]:
        """Return all emitted events."""
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        """Return emitted events with the given event_type."""
        return [e for e in self.events if e["event_type"] == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
