"""Domain models for the report pipeline."""

from claimpacket.models.artifact import (
    Artifact,
    ArtifactPatch,
    ArtifactStatus,
    ArtifactType,
    ShareMetadata,
)
from claimpacket.models.context import PartialDataWarning, ReportContext
from claimpacket.models.template import (
    MergedTemplate,
    TemplateDefaults,
    TemplateDefinition,
    TemplateScope,
)
from claimpacket.models.timeline import EmailSentMetadata, RecipientType, TimelineEvent

__all__ = [
    "Artifact",
    "ArtifactPatch",
    "ArtifactStatus",
    "ArtifactType",
    "EmailSentMetadata",
    "MergedTemplate",
    "PartialDataWarning",
    "RecipientType",
    "ReportContext",
    "ShareMetadata",
    "TemplateDefaults",
    "TemplateDefinition",
    "TemplateScope",
    "TimelineEvent",
]
