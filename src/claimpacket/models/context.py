"""ReportContext: the flat, namespaced, JSON-safe input to every section.

Every leaf is a primitive, None, or a tuple of primitives/sub-models. Nothing
here references a live record, so a context can be serialized, diffed and
cached.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PartialDataWarning(BaseModel):
    """Non-fatal notice that an optional relation was absent.

    Attached to a successful result; never raised.
    """

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Dotted context path that was null-filled")
    message: str


class ClaimContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    claim_number: str
    status: str
    title: str | None = None
    description: str | None = None
    damage_type: str | None = None
    date_of_loss: str | None = None
    carrier: str | None = None
    policy_number: str | None = None
    insured_name: str | None = None
    adjuster_name: str | None = None
    adjuster_email: str | None = None
    adjuster_phone: str | None = None
    homeowner_email: str | None = None


class PropertyContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    full_address: str | None = Field(
        default=None, description="Always joined from the parts above"
    )
    property_type: str | None = None
    year_built: int | None = None
    roof_type: str | None = None
    roof_age_years: int | None = None
    square_feet: int | None = None
    stories: int | None = None


class CompanyContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    logo: str | None = None
    primary_color: str | None = None
    accent_color: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: str | None = None
    license_number: str | None = None
    header_text: str | None = None
    footer_text: str | None = None


class ClientContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    phone: str | None = None


class WeatherContext(BaseModel):
    """Most recent weather event for the claim, formatted for display."""

    model_config = ConfigDict(frozen=True)

    event_date: str | None = None
    event_type: str | None = None
    hail_size: str | None = None
    wind_speed: str | None = None
    precipitation: str | None = None
    source: str | None = None
    summary: str | None = None
    event_count: int = 1


class PhotoItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    thumbnail_url: str | None = None
    caption: str | None = None
    category: str
    taken_at: str | None = None


class DocumentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    url: str
    document_type: str | None = None


class MediaContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    photos: tuple[PhotoItem, ...] = ()
    photos_by_category: dict[str, tuple[PhotoItem, ...]] = Field(default_factory=dict)
    documents: tuple[DocumentItem, ...] = ()
    total_photos: int = 0
    total_documents: int = 0


class FindingItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    statement: str
    severity: str | None = None
    location: str | None = None


class NoteItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    author: str | None = None
    created_at: str


OPTIONAL_NAMESPACES: frozenset[str] = frozenset(
    {"property", "company", "client", "weather", "media", "findings", "notes"}
)


class ReportContext(BaseModel):
    """Everything a section generator may read, grouped by namespace.

    `warnings` records which optional relations were null-filled; it is not
    part of the serialized mapping.
    """

    model_config = ConfigDict(frozen=True)

    claim: ClaimContext
    property: PropertyContext | None = None
    company: CompanyContext = Field(default_factory=CompanyContext)
    client: ClientContext | None = None
    weather: WeatherContext | None = None
    media: MediaContext = Field(default_factory=MediaContext)
    findings: tuple[FindingItem, ...] = ()
    notes: tuple[NoteItem, ...] = ()
    generated_on: str
    warnings: tuple[PartialDataWarning, ...] = ()

    def as_mapping(self) -> dict[str, Any]:
        """Return the JSON-safe nested mapping (warnings excluded)."""
        return self.model_dump(mode="json", exclude={"warnings"})

    def sliced(self, namespaces: Iterable[str]) -> ReportContext:
        """Copy keeping only the named namespaces; the rest revert to empty defaults.

        `claim` and `generated_on` are always kept.
        """
        keep = set(namespaces)
        unknown = keep - OPTIONAL_NAMESPACES
        if unknown:
            raise ValueError(f"Unknown context namespace: {', '.join(sorted(unknown))}")
        cleared = {
            name: type(self).model_fields[name].get_default(call_default_factory=True)
            for name in OPTIONAL_NAMESPACES - keep
        }
        return self.model_copy(update=cleared)

    def lookup(self, path: str) -> Any:
        """Resolve a dotted path such as "company.logo" against the mapping.

        Returns None when any segment is missing or null.
        """
        node: Any = self.as_mapping()
        for segment in path.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(segment)
            if node is None:
                return None
        return node
