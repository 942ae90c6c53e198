"""Append-only claim timeline entries."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

BODY_PREVIEW_LIMIT = 500


class RecipientType(StrEnum):
    ADJUSTER = "adjuster"
    HOMEOWNER = "homeowner"
    CUSTOM = "custom"


class EmailSentMetadata(BaseModel):
    """What was sent, recorded well enough to reconstruct without the artifact.

    Unknown keys pass through.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    artifact_id: str
    artifact_title: str
    recipient_type: RecipientType
    to: str
    subject: str
    body_preview: str = Field(..., max_length=BODY_PREVIEW_LIMIT)
    access_link: str
    message_id: str | None = None


class TimelineEvent(BaseModel):
    """Immutable once written. Never updated or deleted by the pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    claim_id: str
    org_id: str
    actor_id: str | None = None
    actor_type: str = "user"
    type: str
    description: str
    metadata: EmailSentMetadata
    created_at: datetime
