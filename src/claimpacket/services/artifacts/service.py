"""ArtifactStore - lifecycle of persisted reports.

Enforces invariants at the service layer:
- Org scoping on every read and write; cross-org access is NotFoundError
- The artifact's claim must belong to the same org, checked on every call
- Upload before metadata write; a failed metadata write deletes the upload
- Status never moves backward
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from claimpacket.audit.sink import (
    ARTIFACT_DELETED,
    ARTIFACT_UPDATED,
    AuditSink,
    build_audit_event,
)
from claimpacket.models.artifact import Artifact, ArtifactPatch, ArtifactStatus, ArtifactType
from claimpacket.persistence.repositories.artifacts import ArtifactRepository
from claimpacket.persistence.repositories.records import ClaimRecordsRepository
from claimpacket.reports.errors import (
    PersistenceError,
    UploadError,
    ValidationError,
    not_found,
)
from claimpacket.reports.renderer import RenderedReport
from claimpacket.storage.errors import ObjectStorageError
from claimpacket.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
PNG_CONTENT_TYPE = "image/png"


@dataclass(frozen=True)
class ArtifactContent:
    """Exactly one content format: structured JSON or a freeform text body."""

    content_json: dict[str, Any] | None = None
    content_text: str | None = None

    def __post_init__(self) -> None:
        if (self.content_json is None) == (self.content_text is None):
            raise ValidationError("Exactly one of content_json/content_text is required")

    @classmethod
    def structured(cls, content: dict[str, Any]) -> ArtifactContent:
        return cls(content_json=content)

    @classmethod
    def text(cls, body: str) -> ArtifactContent:
        return cls(content_text=body)

    def as_fields(self) -> dict[str, Any]:
        return {"content_json": self.content_json, "content_text": self.content_text}


@dataclass(frozen=True)
class _Uploaded:
    storage_key: str
    pdf_url: str
    thumbnail_url: str | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def thumbnail_key_for(storage_key: str) -> str:
    stem = storage_key.rsplit(".", 1)[0]
    return f"{stem}.png"


class ArtifactStore:
    """Owns artifact rows and the binaries they point at."""

    def __init__(
        self,
        artifacts: ArtifactRepository,
        records: ClaimRecordsRepository,
        object_store: ObjectStore,
        audit_sink: AuditSink,
        *,
        exports_bucket: str = "exports",
        thumbnails_bucket: str = "thumbnails",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._artifacts = artifacts
        self._records = records
        self._object_store = object_store
        self._audit_sink = audit_sink
        self._exports_bucket = exports_bucket
        self._thumbnails_bucket = thumbnails_bucket
        self._clock = clock or _utcnow

    def _require_claim(self, org_id: str, claim_id: str, **context: Any) -> None:
        if self._records.get_claim(org_id, claim_id) is None:
            raise not_found("Claim", claim_id=claim_id, **context)

    def _storage_key(self, org_id: str, claim_id: str, artifact_id: str, checksum: str) -> str:
        return f"{org_id}/{claim_id}/{artifact_id}-{checksum[:12]}.pdf"

    def _upload(self, artifact_id: str, key: str, rendered: RenderedReport) -> _Uploaded:
        """Upload the PDF (fatal on failure) and thumbnail (best-effort)."""
        context = {"artifact_id": artifact_id, "storage_key": key}
        try:
            meta = self._object_store.upload(
                self._exports_bucket, key, rendered.pdf_bytes, content_type=PDF_CONTENT_TYPE
            )
        except ObjectStorageError as e:
            raise UploadError(
                f"Report upload failed: {e.message}",
                context={**context, "storage_reason": e.reason},
            ) from e

        thumbnail_url = None
        if rendered.thumbnail_bytes is not None:
            try:
                thumb = self._object_store.upload(
                    self._thumbnails_bucket,
                    thumbnail_key_for(key),
                    rendered.thumbnail_bytes,
                    content_type=PNG_CONTENT_TYPE,
                )
                thumbnail_url = thumb.public_url
            except ObjectStorageError as e:
                logger.warning("Thumbnail upload failed, continuing without one: %s", e)

        return _Uploaded(storage_key=key, pdf_url=meta.public_url, thumbnail_url=thumbnail_url)

    def _discard(self, storage_key: str) -> None:
        """Best-effort removal of a PDF and its thumbnail."""
        for bucket, key in (
            (self._exports_bucket, storage_key),
            (self._thumbnails_bucket, thumbnail_key_for(storage_key)),
        ):
            try:
                self._object_store.delete(bucket, key)
            except ObjectStorageError as e:
                logger.warning("Could not remove stored object %s/%s: %s", bucket, key, e)

    def create(
        self,
        org_id: str,
        claim_id: str,
        artifact_type: ArtifactType,
        content: ArtifactContent,
        *,
        title: str,
        rendered: RenderedReport | None = None,
        finalize: bool = True,
        template_id: str | None = None,
        created_by_id: str | None = None,
    ) -> Artifact:
        """Persist a new artifact.

        Args:
            org_id: Owning organization.
            claim_id: Claim the artifact belongs to; must be in org_id.
            artifact_type: Kind of document.
            content: Structured or text content.
            title: Display title.
            rendered: Binaries to upload. None creates a content-only artifact.
            finalize: Start at FINALIZED instead of DRAFT.
            template_id: Template the content was rendered from.
            created_by_id: Acting user.

        Raises:
            NotFoundError: If the claim is not in the organization.
            UploadError: If the PDF upload fails. No row is written.
            PersistenceError: If the row write fails. Uploads are removed first.
        """
        if not title.strip():
            raise ValidationError("Artifact title is required", context={"claim_id": claim_id})
        self._require_claim(org_id, claim_id)

        artifact_id = str(uuid.uuid4())
        now = self._clock()
        uploaded = None
        if rendered is not None:
            key = self._storage_key(org_id, claim_id, artifact_id, rendered.checksum)
            uploaded = self._upload(artifact_id, key, rendered)

        try:
            artifact = Artifact(
                id=artifact_id,
                org_id=org_id,
                claim_id=claim_id,
                type=artifact_type,
                status=ArtifactStatus.FINALIZED if finalize else ArtifactStatus.DRAFT,
                title=title,
                content_json=content.content_json,
                content_text=content.content_text,
                pdf_url=uploaded.pdf_url if uploaded else None,
                checksum=rendered.checksum if rendered else None,
                size_bytes=rendered.size_bytes if rendered else None,
                storage_key=uploaded.storage_key if uploaded else None,
                thumbnail_url=uploaded.thumbnail_url if uploaded else None,
                template_id=template_id,
                created_by_id=created_by_id,
                created_at=now,
                updated_at=now,
            )
            self._artifacts.insert(artifact)
        except Exception as e:
            if uploaded is not None:
                self._discard(uploaded.storage_key)
            raise PersistenceError(
                f"Artifact metadata write failed: {e}",
                context={"artifact_id": artifact_id, "claim_id": claim_id},
            ) from e

        logger.info(
            "Created artifact: id=%s claim=%s status=%s", artifact.id, claim_id, artifact.status
        )
        return artifact

    def regenerate(
        self,
        org_id: str,
        artifact_id: str,
        rendered: RenderedReport,
        content: ArtifactContent,
        *,
        finalize: bool = True,
        template_id: str | None = None,
    ) -> Artifact:
        """Replace an artifact's binaries and content in place.

        Status is only ever advanced. An identical checksum skips the upload;
        content and template_id are still overwritten.

        Raises:
            NotFoundError: If the artifact or its claim is not in the org.
            UploadError: If the new PDF cannot be uploaded; the row is untouched.
            PersistenceError: If the row update fails; the new upload is removed.
        """
        current = self.get(org_id, artifact_id)
        status = ArtifactStatus.FINALIZED if finalize else None

        if current.checksum == rendered.checksum and current.storage_key:
            logger.info("Regeneration unchanged, skipping upload: id=%s", artifact_id)
            fields = {
                **content.as_fields(),
                "template_id": template_id or current.template_id,
                "updated_at": self._clock(),
            }
            try:
                updated = self._artifacts.update(
                    org_id, artifact_id, fields=fields, status=status
                )
            except Exception as e:
                raise PersistenceError(
                    f"Artifact metadata write failed: {e}", context={"artifact_id": artifact_id}
                ) from e
            if updated is None:
                raise not_found("Artifact", artifact_id=artifact_id)
            return updated

        key = self._storage_key(org_id, current.claim_id, artifact_id, rendered.checksum)
        uploaded = self._upload(artifact_id, key, rendered)
        fields = {
            **content.as_fields(),
            "pdf_url": uploaded.pdf_url,
            "checksum": rendered.checksum,
            "size_bytes": rendered.size_bytes,
            "storage_key": uploaded.storage_key,
            "thumbnail_url": uploaded.thumbnail_url,
            "template_id": template_id or current.template_id,
            "updated_at": self._clock(),
        }
        try:
            updated = self._artifacts.update(org_id, artifact_id, fields=fields, status=status)
        except Exception as e:
            self._discard(uploaded.storage_key)
            raise PersistenceError(
                f"Artifact metadata write failed: {e}", context={"artifact_id": artifact_id}
            ) from e
        if updated is None:
            self._discard(uploaded.storage_key)
            raise not_found("Artifact", artifact_id=artifact_id)

        if current.storage_key and current.storage_key != uploaded.storage_key:
            self._discard(current.storage_key)

        logger.info(
            "Regenerated artifact: id=%s checksum=%s status=%s",
            artifact_id,
            rendered.checksum[:12],
            updated.status,
        )
        return updated

    def get(self, org_id: str, artifact_id: str) -> Artifact:
        """Fetch an artifact scoped to org_id.

        Raises:
            NotFoundError: If absent, owned by another org, or its claim is not
                in org_id. All three are indistinguishable.
        """
        artifact = self._artifacts.get(org_id, artifact_id)
        if artifact is None or self._records.get_claim(org_id, artifact.claim_id) is None:
            raise not_found("Artifact", artifact_id=artifact_id)
        return artifact

    def list_for_claim(self, org_id: str, claim_id: str) -> list[Artifact]:
        self._require_claim(org_id, claim_id)
        return self._artifacts.list_for_claim(org_id, claim_id)

    def update(
        self,
        org_id: str,
        artifact_id: str,
        patch: ArtifactPatch,
        *,
        actor_id: str | None = None,
    ) -> Artifact:
        """Apply a user edit.

        Raises:
            ValidationError: If the patch is empty, requests a lower status,
                or would break an artifact invariant.
            NotFoundError: If the artifact is not in the organization.
        """
        if patch.is_empty():
            raise ValidationError("Patch contains no changes", context={"artifact_id": artifact_id})

        current = self.get(org_id, artifact_id)
        if patch.status is not None and patch.status.rank < current.status.rank:
            raise ValidationError(
                f"Artifact status cannot move from {current.status} to {patch.status}",
                context={"artifact_id": artifact_id},
            )

        fields: dict[str, Any] = {"updated_at": self._clock()}
        if patch.title is not None:
            fields["title"] = patch.title
        if patch.content_json is not None:
            fields.update(content_json=patch.content_json, content_text=None)
        if patch.content_text is not None:
            fields.update(content_text=patch.content_text, content_json=None)

        try:
            updated = self._artifacts.update(
                org_id,
                artifact_id,
                fields=fields,
                status=patch.status,
                attachments_patch=patch.attachments,
            )
        except ValueError as e:
            raise ValidationError(
                f"Invalid artifact update: {e}", context={"artifact_id": artifact_id}
            ) from e
        if updated is None:
            raise not_found("Artifact", artifact_id=artifact_id)

        changed = sorted(patch.model_dump(exclude_none=True))
        self._audit_sink.emit(
            build_audit_event(
                ARTIFACT_UPDATED,
                org_id=org_id,
                actor_id=actor_id,
                resource_type="artifact",
                resource_id=artifact_id,
                details={"fields": changed, "status": updated.status.value},
            )
        )
        return updated

    def advance_status(self, org_id: str, artifact_id: str, status: ArtifactStatus) -> Artifact:
        """Move an artifact forward to status; a no-op if it is already there or beyond."""
        updated = self._artifacts.update(
            org_id, artifact_id, fields={"updated_at": self._clock()}, status=status
        )
        if updated is None:
            raise not_found("Artifact", artifact_id=artifact_id)
        return updated

    def delete(self, org_id: str, artifact_id: str, *, actor_id: str | None = None) -> None:
        """Delete the row, then best-effort delete its stored binaries.

        Raises:
            NotFoundError: If the artifact is not in the organization.
        """
        current = self.get(org_id, artifact_id)
        if not self._artifacts.delete(org_id, artifact_id):
            raise not_found("Artifact", artifact_id=artifact_id)
        if current.storage_key:
            self._discard(current.storage_key)

        self._audit_sink.emit(
            build_audit_event(
                ARTIFACT_DELETED,
                org_id=org_id,
                actor_id=actor_id,
                resource_type="artifact",
                resource_id=artifact_id,
                details={"claim_id": current.claim_id, "type": current.type.value},
            )
        )
        logger.info("Deleted artifact: id=%s claim=%s", artifact_id, current.claim_id)
