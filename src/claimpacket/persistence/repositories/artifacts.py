"""Artifact row storage.

Updates are field-level last-writer-wins. Status is clamped inside the write
to the later of the stored and requested stage, so concurrent writers can
never move an artifact backward.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from claimpacket.models.artifact import Artifact, ArtifactStatus
from claimpacket.models.patching import merge_patch
from claimpacket.persistence.db import org_transaction

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "content_json",
        "content_text",
        "pdf_url",
        "checksum",
        "size_bytes",
        "storage_key",
        "thumbnail_url",
        "template_id",
        "updated_at",
    }
)


class ArtifactRepository(Protocol):
    def insert(self, artifact: Artifact) -> Artifact: ...

    def get(self, org_id: str, artifact_id: str) -> Artifact | None: ...

    def update(
        self,
        org_id: str,
        artifact_id: str,
        *,
        fields: dict[str, Any] | None = None,
        status: ArtifactStatus | None = None,
        attachments_patch: dict[str, Any] | None = None,
    ) -> Artifact | None:
        """Apply a field-level update. Returns None if no such artifact in org."""
        ...

    def delete(self, org_id: str, artifact_id: str) -> bool: ...

    def list_for_claim(self, org_id: str, claim_id: str) -> list[Artifact]: ...


def apply_update(
    current: Artifact,
    *,
    fields: dict[str, Any] | None = None,
    status: ArtifactStatus | None = None,
    attachments_patch: dict[str, Any] | None = None,
) -> Artifact:
    """Compute the post-update artifact.

    Raises:
        ValueError: If fields names a column that cannot be updated, or the
            result violates an artifact invariant (pydantic ValidationError).
    """
    fields = dict(fields or {})
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Not an updatable artifact field: {', '.join(sorted(unknown))}")

    data = current.model_dump()
    data.update(fields)
    if "updated_at" not in fields:
        data["updated_at"] = datetime.now(UTC)
    if status is not None:
        data["status"] = ArtifactStatus.latest(current.status, status)
    if attachments_patch is not None:
        data["attachments"] = merge_patch(
            current.attachments.model_dump(mode="json"), attachments_patch
        )
    return Artifact.model_validate(data)


_COLUMNS = """
    id, org_id, claim_id, type, status, title, content_json, content_text, pdf_url,
    checksum, size_bytes, storage_key, thumbnail_url, template_id, created_by_id,
    created_at, updated_at, attachments
"""


def _row_to_artifact(row: Any) -> Artifact:
    data = dict(row._mapping)
    for column in ("content_json", "attachments"):
        if isinstance(data.get(column), str):
            data[column] = json.loads(data[column])
    data["attachments"] = data.get("attachments") or {}
    return Artifact.model_validate(data)


def _artifact_params(artifact: Artifact) -> dict[str, Any]:
    dumped = artifact.model_dump(mode="json")
    params = artifact.model_dump()
    params["type"] = artifact.type.value
    params["status"] = artifact.status.value
    params["content_json"] = (
        json.dumps(dumped["content_json"], sort_keys=True)
        if artifact.content_json is not None
        else None
    )
    params["attachments"] = json.dumps(dumped["attachments"], sort_keys=True)
    return params


class PostgresArtifactRepository:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def insert(self, artifact: Artifact) -> Artifact:
        with org_transaction(self._engine, artifact.org_id) as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO report_artifacts (
                        id, org_id, claim_id, type, status, title, content_json,
                        content_text, pdf_url, checksum, size_bytes, storage_key,
                        thumbnail_url, template_id, created_by_id, created_at,
                        updated_at, attachments
                    ) VALUES (
                        :id, :org_id, :claim_id, :type, :status, :title,
                        CAST(:content_json AS JSONB), :content_text, :pdf_url,
                        :checksum, :size_bytes, :storage_key, :thumbnail_url,
                        :template_id, :created_by_id, :created_at, :updated_at,
                        CAST(:attachments AS JSONB)
                    )
                    """
                ),
                _artifact_params(artifact),
            )
        return artifact

    def _select(
        self, conn: Connection, org_id: str, artifact_id: str, *, for_update: bool = False
    ) -> Artifact | None:
        sql = (
            f"SELECT {_COLUMNS} FROM report_artifacts "
            "WHERE id = :id AND org_id = :org_id"
        )
        if for_update:
            sql += " FOR UPDATE"
        row = conn.execute(text(sql), {"id": artifact_id, "org_id": org_id}).fetchone()
        return _row_to_artifact(row) if row is not None else None

    def get(self, org_id: str, artifact_id: str) -> Artifact | None:
        with org_transaction(self._engine, org_id) as conn:
            return self._select(conn, org_id, artifact_id)

    def update(
        self,
        org_id: str,
        artifact_id: str,
        *,
        fields: dict[str, Any] | None = None,
        status: ArtifactStatus | None = None,
        attachments_patch: dict[str, Any] | None = None,
    ) -> Artifact | None:
        with org_transaction(self._engine, org_id) as conn:
            current = self._select(conn, org_id, artifact_id, for_update=True)
            if current is None:
                return None
            updated = apply_update(
                current, fields=fields, status=status, attachments_patch=attachments_patch
            )
            conn.execute(
                text(
                    """
                    UPDATE report_artifacts SET
                        status = :status, title = :title,
                        content_json = CAST(:content_json AS JSONB),
                        content_text = :content_text, pdf_url = :pdf_url,
                        checksum = :checksum, size_bytes = :size_bytes,
                        storage_key = :storage_key, thumbnail_url = :thumbnail_url,
                        template_id = :template_id, updated_at = :updated_at,
                        attachments = CAST(:attachments AS JSONB)
                    WHERE id = :id AND org_id = :org_id
                    """
                ),
                _artifact_params(updated),
            )
        return updated

    def delete(self, org_id: str, artifact_id: str) -> bool:
        with org_transaction(self._engine, org_id) as conn:
            result = conn.execute(
                text("DELETE FROM report_artifacts WHERE id = :id AND org_id = :org_id"),
                {"id": artifact_id, "org_id": org_id},
            )
        return result.rowcount > 0

    def list_for_claim(self, org_id: str, claim_id: str) -> list[Artifact]:
        with org_transaction(self._engine, org_id) as conn:
            rows = conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM report_artifacts "
                    "WHERE claim_id = :claim_id AND org_id = :org_id "
                    "ORDER BY created_at DESC, id"
                ),
                {"claim_id": claim_id, "org_id": org_id},
            ).fetchall()
        return [_row_to_artifact(r) for r in rows]


class InMemoryArtifactRepository:
    """In-memory twin for development and tests.

    The whole read-modify-write of update() runs under one lock, mirroring
    the row lock taken by the Postgres repository.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: dict[str, Artifact] = {}

    def insert(self, artifact: Artifact) -> Artifact:
        with self._lock:
            if artifact.id in self._artifacts:
                raise ValueError(f"Artifact {artifact.id} already exists")
            self._artifacts[artifact.id] = artifact
        return artifact

    def get(self, org_id: str, artifact_id: str) -> Artifact | None:
        with self._lock:
            artifact = self._artifacts.get(artifact_id)
        if artifact is None or artifact.org_id != org_id:
            return None
        return artifact

    def update(
        self,
        org_id: str,
        artifact_id: str,
        *,
        fields: dict[str, Any] | None = None,
        status: ArtifactStatus | None = None,
        attachments_patch: dict[str, Any] | None = None,
    ) -> Artifact | None:
        with self._lock:
            current = self._artifacts.get(artifact_id)
            if current is None or current.org_id != org_id:
                return None
            updated = apply_update(
                current, fields=fields, status=status, attachments_patch=attachments_patch
            )
            self._artifacts[artifact_id] = updated
        return updated

    def delete(self, org_id: str, artifact_id: str) -> bool:
        with self._lock:
            artifact = self._artifacts.get(artifact_id)
            if artifact is None or artifact.org_id != org_id:
                return False
            del self._artifacts[artifact_id]
        return True

    def list_for_claim(self, org_id: str, claim_id: str) -> list[Artifact]:
        with self._lock:
            matches = [
                a for a in self._artifacts.values() if a.org_id == org_id and a.claim_id == claim_id
            ]
        return sorted(matches, key=lambda a: (a.created_at, a.id), reverse=True)
