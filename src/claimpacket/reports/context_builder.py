"""Context Builder: gather a claim's records into one ReportContext.

Only the root claim is mandatory. Every other relation is null-filled when
absent and noted with a PartialDataWarning. Derived strings such as the full
property address are always recomputed from their parts; the denormalized
copy on the claim row is ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from claimpacket.models.context import (
    ClaimContext,
    ClientContext,
    CompanyContext,
    DocumentItem,
    FindingItem,
    MediaContext,
    NoteItem,
    PartialDataWarning,
    PhotoItem,
    PropertyContext,
    ReportContext,
    WeatherContext,
)
from claimpacket.models.records import (
    ClaimRecord,
    OrgBranding,
    PhotoCategory,
    PhotoRecord,
    PropertyRecord,
    WeatherRecord,
)
from claimpacket.persistence.repositories.records import ClaimRecordsRepository
from claimpacket.reports.errors import not_found

logger = logging.getLogger(__name__)


def join_address(
    street: str | None, city: str | None, state: str | None, zip_code: str | None
) -> str | None:
    """Join address parts as "street, city, STATE zip", skipping blanks.

    >>> join_address("12 Elm St", "Denver", "CO", "80202")
    '12 Elm St, Denver, CO 80202'
    """
    clean = [(p or "").strip() for p in (street, city, state, zip_code)]
    street_part, city_part, state_part, zip_part = clean
    region = " ".join(p for p in (state_part, zip_part) if p)
    joined = ", ".join(p for p in (street_part, city_part, region) if p)
    return joined or None


def _fmt_number(value: float | None, unit: str) -> str | None:
    if value is None:
        return None
    return f"{value:g}{unit}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _claim_context(claim: ClaimRecord) -> ClaimContext:
    return ClaimContext(
        id=claim.claim_id,
        claim_number=claim.claim_number,
        status=claim.status,
        title=claim.title,
        description=claim.description,
        damage_type=claim.damage_type,
        date_of_loss=claim.date_of_loss.isoformat() if claim.date_of_loss else None,
        carrier=claim.carrier,
        policy_number=claim.policy_number,
        insured_name=claim.insured_name,
        adjuster_name=claim.adjuster_name,
        adjuster_email=claim.adjuster_email,
        adjuster_phone=claim.adjuster_phone,
        homeowner_email=claim.homeowner_email,
    )


def _property_context(record: PropertyRecord) -> PropertyContext:
    return PropertyContext(
        street=record.street,
        city=record.city,
        state=record.state,
        zip_code=record.zip_code,
        full_address=join_address(record.street, record.city, record.state, record.zip_code),
        property_type=record.property_type,
        year_built=record.year_built,
        roof_type=record.roof_type,
        roof_age_years=record.roof_age_years,
        square_feet=record.square_feet,
        stories=record.stories,
    )


def _company_context(branding: OrgBranding | None) -> CompanyContext:
    if branding is None:
        return CompanyContext()
    return CompanyContext(
        name=branding.company_name,
        logo=branding.logo_url,
        primary_color=branding.primary_color,
        accent_color=branding.accent_color,
        email=branding.email,
        phone=branding.phone,
        website=branding.website,
        address=branding.address,
        license_number=branding.license_number,
        header_text=branding.pdf_header_text,
        footer_text=branding.pdf_footer_text,
    )


def _weather_context(records: list[WeatherRecord]) -> WeatherContext:
    latest = records[0]
    return WeatherContext(
        event_date=latest.event_date.isoformat() if latest.event_date else None,
        event_type=latest.event_type,
        hail_size=_fmt_number(latest.hail_size_inches, '"'),
        wind_speed=_fmt_number(latest.wind_speed_mph, " mph"),
        precipitation=_fmt_number(latest.precipitation_inches, '"'),
        source=latest.source,
        summary=latest.summary,
        event_count=len(records),
    )


def _photo_item(photo: PhotoRecord) -> PhotoItem:
    return PhotoItem(
        id=photo.photo_id,
        url=photo.url,
        thumbnail_url=photo.thumbnail_url,
        caption=photo.caption,
        category=photo.category.value,
        taken_at=_iso(photo.taken_at),
    )


class ContextBuilder:
    """Builds a ReportContext for (claim_id, org_id). Performs no writes."""

    def __init__(
        self,
        records: ClaimRecordsRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._records = records
        self._clock = clock or (lambda: datetime.now(UTC))

    def build(self, claim_id: str, org_id: str) -> ReportContext:
        """Gather and normalize everything a section might need.

        Raises:
            NotFoundError: If the claim does not exist in org_id.
        """
        claim = self._records.get_claim(org_id, claim_id)
        if claim is None:
            raise not_found("Claim", claim_id=claim_id)

        warnings: list[PartialDataWarning] = []

        property_ctx: PropertyContext | None = None
        property_record = (
            self._records.get_property(org_id, claim.property_id) if claim.property_id else None
        )
        if property_record is not None:
            property_ctx = _property_context(property_record)
        else:
            warnings.append(PartialDataWarning(field="property", message="No property record"))

        branding = self._records.get_branding(org_id)
        if branding is None:
            warnings.append(
                PartialDataWarning(field="company", message="Organization has no branding")
            )

        client_ctx: ClientContext | None = None
        client = self._records.get_client(org_id, claim.client_id) if claim.client_id else None
        if client is not None:
            client_ctx = ClientContext(name=client.name, email=client.email, phone=client.phone)
        else:
            warnings.append(PartialDataWarning(field="client", message="No client record"))

        weather_records = self._records.list_weather(org_id, claim_id)
        weather_ctx: WeatherContext | None = None
        if weather_records:
            weather_ctx = _weather_context(weather_records)
        else:
            warnings.append(PartialDataWarning(field="weather", message="No weather records"))

        photos = [_photo_item(p) for p in self._records.list_photos(org_id, claim_id)]
        if not photos:
            warnings.append(PartialDataWarning(field="media.photos", message="No photos"))
        by_category: dict[str, tuple[PhotoItem, ...]] = {}
        for category in PhotoCategory:
            grouped = tuple(p for p in photos if p.category == category.value)
            if grouped:
                by_category[category.value] = grouped

        documents = tuple(
            DocumentItem(id=d.document_id, title=d.title, url=d.url, document_type=d.document_type)
            for d in self._records.list_documents(org_id, claim_id)
        )

        findings = tuple(
            FindingItem(statement=f.statement, severity=f.severity, location=f.location)
            for f in self._records.list_findings(org_id, claim_id)
        )
        notes = tuple(
            NoteItem(body=n.body, author=n.author_name, created_at=n.created_at.isoformat())
            for n in self._records.list_notes(org_id, claim_id)
        )

        context = ReportContext(
            claim=_claim_context(claim),
            property=property_ctx,
            company=_company_context(branding),
            client=client_ctx,
            weather=weather_ctx,
            media=MediaContext(
                photos=tuple(photos),
                photos_by_category=by_category,
                documents=documents,
                total_photos=len(photos),
                total_documents=len(documents),
            ),
            findings=findings,
            notes=notes,
            generated_on=self._clock().date().isoformat(),
            warnings=tuple(warnings),
        )

        if warnings:
            logger.warning(
                "Context for claim %s built with partial data: %s",
                claim_id,
                ", ".join(w.field for w in warnings),
            )
        else:
            logger.info("Context built for claim %s", claim_id)
        return context
