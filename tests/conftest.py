"""Pytest configuration and fixtures for claimpacket tests.

This module provides a seeded in-memory claim graph and a fully wired
ReportPipeline backed by in-memory repositories, a temporary filesystem
object store, an in-memory audit sink and the logging mail transport.
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from claimpacket.audit.sink import InMemoryAuditSink
from claimpacket.config import PipelineSettings
from claimpacket.models.records import (
    ClaimRecord,
    ClientRecord,
    DocumentRecord,
    FindingRecord,
    NoteRecord,
    OrgBranding,
    PhotoCategory,
    PhotoRecord,
    PropertyRecord,
    WeatherRecord,
)
from claimpacket.persistence.db import DATABASE_URL_ENV
from claimpacket.persistence.repositories import (
    InMemoryArtifactRepository,
    InMemoryClaimRecordsRepository,
    InMemoryTemplateRepository,
    InMemoryTimelineRepository,
)
from claimpacket.reports.pipeline import ReportPipeline
from claimpacket.services.delivery.mail import LoggingMailTransport
from claimpacket.storage.filesystem_store import FilesystemObjectStore

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
CLAIM_ID = "claim-1"
SPARSE_CLAIM_ID = "claim-2"
OTHER_ORG_CLAIM_ID = "claim-9"

FIXED_NOW = datetime(2026, 3, 14, 15, 0, tzinfo=UTC)


def seed_records(records: InMemoryClaimRecordsRepository) -> InMemoryClaimRecordsRepository:
    """Seed one complete claim, one bare claim, and a claim in another org."""
    records.set_branding(
        OrgBranding(
            org_id=ORG_ID,
            company_name="Summit Roofing",
            logo_url="https://cdn.example.com/summit-logo.png",
            primary_color="#123456",
            accent_color="#ff6600",
            email="office@summitroofing.example",
            phone="555-0100",
            license_number="CO-ROOF-4411",
        )
    )
    records.add_property(
        PropertyRecord(
            property_id="prop-1",
            org_id=ORG_ID,
            street="12 Elm St",
            city="Denver",
            state="CO",
            zip_code="80202",
            roof_type="Asphalt shingle",
            roof_age_years=14,
            square_feet=2400,
            stories=2,
        )
    )
    records.add_client(
        ClientRecord(
            client_id="client-1", org_id=ORG_ID, name="Dana Ortiz", email="dana@example.com"
        )
    )
    records.add_claim(
        ClaimRecord(
            claim_id=CLAIM_ID,
            org_id=ORG_ID,
            claim_number="CLM-1001",
            title="Hail damage at 12 Elm St",
            damage_type="hail",
            date_of_loss=date(2026, 2, 3),
            carrier="Acme Mutual",
            insured_name="Dana Ortiz",
            property_id="prop-1",
            client_id="client-1",
            property_address="OLD ADDRESS, Nowhere",
            adjuster_name="Sam Lee",
            adjuster_email="sam.lee@acme.example",
        )
    )
    records.add_weather(
        WeatherRecord(
            weather_id="wx-old",
            claim_id=CLAIM_ID,
            event_date=date(2025, 6, 1),
            event_type="wind",
            wind_speed_mph=48.0,
        )
    )
    records.add_weather(
        WeatherRecord(
            weather_id="wx-1",
            claim_id=CLAIM_ID,
            event_date=date(2026, 2, 3),
            event_type="hail",
            hail_size_inches=1.75,
            wind_speed_mph=62.0,
            source="NOAA",
        )
    )
    records.add_photo(
        PhotoRecord(
            photo_id="photo-2",
            claim_id=CLAIM_ID,
            url="https://cdn.example.com/p2.jpg",
            caption="Dented gutter",
            category=PhotoCategory.EXTERIOR,
            position=2,
        )
    )
    records.add_photo(
        PhotoRecord(
            photo_id="photo-1",
            claim_id=CLAIM_ID,
            url="https://cdn.example.com/p1.jpg",
            caption="Bruised shingles on north slope",
            category=PhotoCategory.ROOF,
            taken_at=datetime(2026, 2, 5, 10, 30, tzinfo=UTC),
            position=1,
        )
    )
    records.add_document(
        DocumentRecord(
            document_id="doc-1",
            claim_id=CLAIM_ID,
            title="Carrier estimate",
            url="https://cdn.example.com/estimate.pdf",
            document_type="estimate",
        )
    )
    records.add_finding(
        FindingRecord(
            finding_id="f-1",
            claim_id=CLAIM_ID,
            statement="Hail strikes on 8 of 10 test squares",
            severity="high",
            location="North slope",
        )
    )
    records.add_note(
        NoteRecord(
            note_id="n-1",
            claim_id=CLAIM_ID,
            body="Adjuster meeting scheduled",
            author_name="Sam Lee",
            created_at=datetime(2026, 2, 10, 9, 0, tzinfo=UTC),
        )
    )

    records.add_claim(
        ClaimRecord(claim_id=SPARSE_CLAIM_ID, org_id=ORG_ID, claim_number="CLM-1002")
    )
    records.add_claim(
        ClaimRecord(claim_id=OTHER_ORG_CLAIM_ID, org_id=OTHER_ORG_ID, claim_number="CLM-9009")
    )
    return records


@pytest.fixture(autouse=True)
def no_database(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep every test on the in-memory repositories."""
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


@pytest.fixture
def records() -> InMemoryClaimRecordsRepository:
    """Seeded claim records."""
    return seed_records(InMemoryClaimRecordsRepository())


@pytest.fixture
def templates() -> InMemoryTemplateRepository:
    """Empty template repository; tests add the definitions they need."""
    return InMemoryTemplateRepository()


@pytest.fixture
def artifacts() -> InMemoryArtifactRepository:
    return InMemoryArtifactRepository()


@pytest.fixture
def timeline() -> InMemoryTimelineRepository:
    return InMemoryTimelineRepository()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def mail_transport() -> LoggingMailTransport:
    return LoggingMailTransport()


@pytest.fixture
def temp_storage_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for object storage."""
    with tempfile.TemporaryDirectory(prefix="claimpacket_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def object_store(temp_storage_dir: Path) -> FilesystemObjectStore:
    return FilesystemObjectStore(
        base_dir=temp_storage_dir, public_base_url="https://files.example.com"
    )


@pytest.fixture
def settings() -> PipelineSettings:
    """Settings pinned for tests; nothing is read from the environment."""
    return PipelineSettings(
        public_base_url="https://reports.example.com",
        storage_public_base_url="https://files.example.com",
        render_timeout_seconds=30.0,
        link_signing_secret="test-link-secret",
    )


@pytest.fixture
def pipeline(
    settings: PipelineSettings,
    records: InMemoryClaimRecordsRepository,
    templates: InMemoryTemplateRepository,
    artifacts: InMemoryArtifactRepository,
    timeline: InMemoryTimelineRepository,
    object_store: FilesystemObjectStore,
    audit_sink: InMemoryAuditSink,
    mail_transport: LoggingMailTransport,
) -> Generator[ReportPipeline, None, None]:
    """A pipeline wired entirely to in-process collaborators."""
    built = ReportPipeline.from_settings(
        settings,
        records=records,
        templates=templates,
        artifacts=artifacts,
        timeline=timeline,
        object_store=object_store,
        audit_sink=audit_sink,
        mail_transport=mail_transport,
    )
    yield built
    built.close()
