"""Postgres repositories and their in-memory twins."""

from claimpacket.persistence.repositories.artifacts import (
    ArtifactRepository,
    InMemoryArtifactRepository,
    PostgresArtifactRepository,
)
from claimpacket.persistence.repositories.records import (
    ClaimRecordsRepository,
    InMemoryClaimRecordsRepository,
    PostgresClaimRecordsRepository,
)
from claimpacket.persistence.repositories.templates import (
    InMemoryTemplateRepository,
    PostgresTemplateRepository,
    TemplateRepository,
)
from claimpacket.persistence.repositories.timeline import (
    InMemoryTimelineRepository,
    PostgresTimelineRepository,
    TimelineRepository,
)

__all__ = [
    "ArtifactRepository",
    "ClaimRecordsRepository",
    "InMemoryArtifactRepository",
    "InMemoryClaimRecordsRepository",
    "InMemoryTemplateRepository",
    "InMemoryTimelineRepository",
    "PostgresArtifactRepository",
    "PostgresClaimRecordsRepository",
    "PostgresTemplateRepository",
    "PostgresTimelineRepository",
    "TemplateRepository",
    "TimelineRepository",
]
