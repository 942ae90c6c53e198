"""Persisted report artifacts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ArtifactType(StrEnum):
    INSURANCE_CLAIM = "INSURANCE_CLAIM"
    RETAIL_PROPOSAL = "RETAIL_PROPOSAL"
    SUPPLEMENT = "SUPPLEMENT"
    WEATHER_REPORT = "WEATHER_REPORT"
    OTHER = "OTHER"


class ArtifactStatus(StrEnum):
    """Lifecycle stage. Only ever moves forward: DRAFT -> FINALIZED -> SENT."""

    DRAFT = "DRAFT"
    FINALIZED = "FINALIZED"
    SENT = "SENT"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @classmethod
    def latest(cls, a: ArtifactStatus, b: ArtifactStatus) -> ArtifactStatus:
        """Return whichever of the two stages is further along."""
        return a if a.rank >= b.rank else b


_STATUS_RANK = {
    ArtifactStatus.DRAFT: 0,
    ArtifactStatus.FINALIZED: 1,
    ArtifactStatus.SENT: 2,
}


class ShareMetadata(BaseModel):
    """Share bookkeeping stored in Artifact.attachments. Unknown keys pass through."""

    model_config = ConfigDict(frozen=True, extra="allow")

    share_url: str | None = None
    shared_at: datetime | None = None
    shared_with: tuple[str, ...] = ()
    allow_download: bool | None = None


class Artifact(BaseModel):
    """A generated report tied to one claim and one organization.

    Invariants enforced on construction:
    - exactly one of content_json / content_text is set
    - pdf_url and checksum are both set or both unset
    """

    model_config = ConfigDict(frozen=True)

    id: str
    org_id: str
    claim_id: str
    type: ArtifactType
    status: ArtifactStatus = ArtifactStatus.DRAFT
    title: str
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    pdf_url: str | None = None
    checksum: str | None = None
    size_bytes: int | None = None
    storage_key: str | None = None
    thumbnail_url: str | None = None
    template_id: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime
    attachments: ShareMetadata = Field(default_factory=ShareMetadata)

    @model_validator(mode="after")
    def check_invariants(self) -> Artifact:
        if (self.content_json is None) == (self.content_text is None):
            raise ValueError("exactly one of content_json/content_text must be set")
        if (self.pdf_url is None) != (self.checksum is None):
            raise ValueError("pdf_url and checksum must be set together")
        return self


class ArtifactPatch(BaseModel):
    """User edit of an artifact.

    Omitted (None) fields are left unchanged. `attachments` is a JSON
    merge-patch applied to the stored share metadata. Setting one content
    format clears the other.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    status: ArtifactStatus | None = None
    content_json: dict[str, Any] | None = None
    content_text: str | None = None
    attachments: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_single_format(self) -> ArtifactPatch:
        if self.content_json is not None and self.content_text is not None:
            raise ValueError("content_json and content_text are mutually exclusive")
        return self

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)
