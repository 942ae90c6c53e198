"""Source records read by the Context Builder.

These mirror rows owned by the surrounding claims application. The pipeline
only reads them, except for the contact timestamps on ClaimRecord which the
delivery stage advances.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PhotoCategory(StrEnum):
    """Photo grouping used by the photo-evidence section."""

    ROOF = "ROOF"
    EXTERIOR = "EXTERIOR"
    INTERIOR = "INTERIOR"
    DETAIL = "DETAIL"
    AERIAL = "AERIAL"
    OTHER = "OTHER"


class ClaimRecord(BaseModel):
    """Root claim row. Mandatory for every report."""

    model_config = ConfigDict(frozen=True)

    claim_id: str
    org_id: str
    claim_number: str
    status: str = "open"
    title: str | None = None
    description: str | None = None
    damage_type: str | None = None
    date_of_loss: date | None = None
    carrier: str | None = None
    policy_number: str | None = None
    insured_name: str | None = None
    property_id: str | None = None
    client_id: str | None = None
    property_address: str | None = Field(
        default=None,
        description="Denormalized address copy; stale-prone, never used for rendering",
    )
    adjuster_name: str | None = None
    adjuster_email: str | None = None
    adjuster_phone: str | None = None
    homeowner_email: str | None = None
    last_contacted_at: datetime | None = None
    adjuster_packet_sent_at: datetime | None = None
    homeowner_packet_sent_at: datetime | None = None


class PropertyRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    property_id: str
    org_id: str
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    property_type: str | None = None
    year_built: int | None = None
    roof_type: str | None = None
    roof_age_years: int | None = None
    square_feet: int | None = None
    stories: int | None = None


class ClientRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    org_id: str
    name: str
    email: str | None = None
    phone: str | None = None


class OrgBranding(BaseModel):
    """Per-organization visual and contact defaults."""

    model_config = ConfigDict(frozen=True)

    org_id: str
    company_name: str | None = None
    logo_url: str | None = None
    primary_color: str | None = None
    accent_color: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: str | None = None
    license_number: str | None = None
    pdf_header_text: str | None = None
    pdf_footer_text: str | None = None


class WeatherRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    weather_id: str
    claim_id: str
    event_date: date | None = None
    event_type: str | None = None
    hail_size_inches: float | None = None
    wind_speed_mph: float | None = None
    precipitation_inches: float | None = None
    source: str | None = None
    summary: str | None = None


class PhotoRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    photo_id: str
    claim_id: str
    url: str
    thumbnail_url: str | None = None
    caption: str | None = None
    category: PhotoCategory = PhotoCategory.OTHER
    taken_at: datetime | None = None
    position: int = 0


class DocumentRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    claim_id: str
    title: str
    url: str
    document_type: str | None = None
    uploaded_at: datetime | None = None


class FindingRecord(BaseModel):
    """A single inspection statement; ordered by position."""

    model_config = ConfigDict(frozen=True)

    finding_id: str
    claim_id: str
    statement: str
    severity: str | None = None
    location: str | None = None
    position: int = 0


class NoteRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    note_id: str
    claim_id: str
    body: str
    author_name: str | None = None
    created_at: datetime
