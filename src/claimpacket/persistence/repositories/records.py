"""Read access to the claim's source records.

The claims application owns these tables; the pipeline reads them and only
writes the claim contact timestamps after a successful delivery.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from claimpacket.models.records import (
    ClaimRecord,
    ClientRecord,
    DocumentRecord,
    FindingRecord,
    NoteRecord,
    OrgBranding,
    PhotoRecord,
    PropertyRecord,
    WeatherRecord,
)
from claimpacket.persistence.db import org_transaction

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

CONTACT_TIMESTAMP_FIELDS = frozenset(
    {"last_contacted_at", "adjuster_packet_sent_at", "homeowner_packet_sent_at"}
)


class ClaimRecordsRepository(Protocol):
    """Org-scoped reads of claim source records."""

    def get_claim(self, org_id: str, claim_id: str) -> ClaimRecord | None: ...

    def get_property(self, org_id: str, property_id: str) -> PropertyRecord | None: ...

    def get_client(self, org_id: str, client_id: str) -> ClientRecord | None: ...

    def get_branding(self, org_id: str) -> OrgBranding | None: ...

    def list_weather(self, org_id: str, claim_id: str) -> list[WeatherRecord]: ...

    def list_photos(self, org_id: str, claim_id: str) -> list[PhotoRecord]: ...

    def list_documents(self, org_id: str, claim_id: str) -> list[DocumentRecord]: ...

    def list_findings(self, org_id: str, claim_id: str) -> list[FindingRecord]: ...

    def list_notes(self, org_id: str, claim_id: str) -> list[NoteRecord]: ...

    def record_contact(
        self, org_id: str, claim_id: str, timestamps: dict[str, datetime]
    ) -> ClaimRecord | None:
        """Set contact timestamp columns; returns the updated claim or None."""
        ...


def _check_timestamp_fields(timestamps: dict[str, datetime]) -> None:
    unknown = set(timestamps) - CONTACT_TIMESTAMP_FIELDS
    if unknown:
        raise ValueError(f"Not a contact timestamp field: {', '.join(sorted(unknown))}")


class PostgresClaimRecordsRepository:
    """Reads claim source tables with RLS scoping."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _one(self, org_id: str, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        with org_transaction(self._engine, org_id) as conn:
            row = conn.execute(text(sql), {"org_id": org_id, **params}).fetchone()
        return dict(row._mapping) if row is not None else None

    def _many(self, org_id: str, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        with org_transaction(self._engine, org_id) as conn:
            rows = conn.execute(text(sql), {"org_id": org_id, **params}).fetchall()
        return [dict(r._mapping) for r in rows]

    def get_claim(self, org_id: str, claim_id: str) -> ClaimRecord | None:
        row = self._one(
            org_id,
            """
            SELECT claim_id, org_id, claim_number, status, title, description,
                   damage_type, date_of_loss, carrier, policy_number, insured_name,
                   property_id, client_id, property_address, adjuster_name,
                   adjuster_email, adjuster_phone, homeowner_email,
                   last_contacted_at, adjuster_packet_sent_at, homeowner_packet_sent_at
            FROM claims
            WHERE claim_id = :claim_id AND org_id = :org_id
            """,
            {"claim_id": claim_id},
        )
        return ClaimRecord.model_validate(row) if row else None

    def get_property(self, org_id: str, property_id: str) -> PropertyRecord | None:
        row = self._one(
            org_id,
            """
            SELECT property_id, org_id, street, city, state, zip_code, property_type,
                   year_built, roof_type, roof_age_years, square_feet, stories
            FROM properties
            WHERE property_id = :property_id AND org_id = :org_id
            """,
            {"property_id": property_id},
        )
        return PropertyRecord.model_validate(row) if row else None

    def get_client(self, org_id: str, client_id: str) -> ClientRecord | None:
        row = self._one(
            org_id,
            """
            SELECT client_id, org_id, name, email, phone
            FROM clients
            WHERE client_id = :client_id AND org_id = :org_id
            """,
            {"client_id": client_id},
        )
        return ClientRecord.model_validate(row) if row else None

    def get_branding(self, org_id: str) -> OrgBranding | None:
        row = self._one(
            org_id,
            """
            SELECT org_id, company_name, logo_url, primary_color, accent_color, email,
                   phone, website, address, license_number, pdf_header_text,
                   pdf_footer_text
            FROM org_branding
            WHERE org_id = :org_id
            """,
            {},
        )
        return OrgBranding.model_validate(row) if row else None

    def list_weather(self, org_id: str, claim_id: str) -> list[WeatherRecord]:
        rows = self._many(
            org_id,
            """
            SELECT weather_id, claim_id, event_date, event_type, hail_size_inches,
                   wind_speed_mph, precipitation_inches, source, summary
            FROM weather_reports
            WHERE claim_id = :claim_id AND org_id = :org_id
            ORDER BY event_date DESC NULLS LAST, weather_id
            """,
            {"claim_id": claim_id},
        )
        return [WeatherRecord.model_validate(r) for r in rows]

    def list_photos(self, org_id: str, claim_id: str) -> list[PhotoRecord]:
        rows = self._many(
            org_id,
            """
            SELECT photo_id, claim_id, url, thumbnail_url, caption, category,
                   taken_at, position
            FROM claim_photos
            WHERE claim_id = :claim_id AND org_id = :org_id
            ORDER BY position, photo_id
            """,
            {"claim_id": claim_id},
        )
        return [PhotoRecord.model_validate(r) for r in rows]

    def list_documents(self, org_id: str, claim_id: str) -> list[DocumentRecord]:
        rows = self._many(
            org_id,
            """
            SELECT document_id, claim_id, title, url, document_type, uploaded_at
            FROM claim_documents
            WHERE claim_id = :claim_id AND org_id = :org_id
            ORDER BY uploaded_at NULLS LAST, document_id
            """,
            {"claim_id": claim_id},
        )
        return [DocumentRecord.model_validate(r) for r in rows]

    def list_findings(self, org_id: str, claim_id: str) -> list[FindingRecord]:
        rows = self._many(
            org_id,
            """
            SELECT finding_id, claim_id, statement, severity, location, position
            FROM claim_findings
            WHERE claim_id = :claim_id AND org_id = :org_id
            ORDER BY position, finding_id
            """,
            {"claim_id": claim_id},
        )
        return [FindingRecord.model_validate(r) for r in rows]

    def list_notes(self, org_id: str, claim_id: str) -> list[NoteRecord]:
        rows = self._many(
            org_id,
            """
            SELECT note_id, claim_id, body, author_name, created_at
            FROM claim_notes
            WHERE claim_id = :claim_id AND org_id = :org_id
            ORDER BY created_at, note_id
            """,
            {"claim_id": claim_id},
        )
        return [NoteRecord.model_validate(r) for r in rows]

    def record_contact(
        self, org_id: str, claim_id: str, timestamps: dict[str, datetime]
    ) -> ClaimRecord | None:
        _check_timestamp_fields(timestamps)
        if not timestamps:
            return self.get_claim(org_id, claim_id)

        # Column names come from the fixed allow-list above.
        sets = ", ".join(f"{name} = :{name}" for name in sorted(timestamps))
        with org_transaction(self._engine, org_id) as conn:
            result = conn.execute(
                text(
                    f"UPDATE claims SET {sets} "
                    "WHERE claim_id = :claim_id AND org_id = :org_id"
                ),
                {"claim_id": claim_id, "org_id": org_id, **timestamps},
            )
            if result.rowcount == 0:
                return None
        return self.get_claim(org_id, claim_id)


class InMemoryClaimRecordsRepository:
    """In-memory twin for development and tests.

    Seed with the add_* methods. Lookups apply the same org filter as the
    Postgres repository.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claims: dict[str, ClaimRecord] = {}
        self._properties: dict[str, PropertyRecord] = {}
        self._clients: dict[str, ClientRecord] = {}
        self._branding: dict[str, OrgBranding] = {}
        self._weather: list[WeatherRecord] = []
        self._photos: list[PhotoRecord] = []
        self._documents: list[DocumentRecord] = []
        self._findings: list[FindingRecord] = []
        self._notes: list[NoteRecord] = []

    def add_claim(self, claim: ClaimRecord) -> ClaimRecord:
        with self._lock:
            self._claims[claim.claim_id] = claim
        return claim

    def add_property(self, record: PropertyRecord) -> PropertyRecord:
        with self._lock:
            self._properties[record.property_id] = record
        return record

    def add_client(self, record: ClientRecord) -> ClientRecord:
        with self._lock:
            self._clients[record.client_id] = record
        return record

    def set_branding(self, branding: OrgBranding) -> OrgBranding:
        with self._lock:
            self._branding[branding.org_id] = branding
        return branding

    def add_weather(self, record: WeatherRecord) -> None:
        with self._lock:
            self._weather.append(record)

    def add_photo(self, record: PhotoRecord) -> None:
        with self._lock:
            self._photos.append(record)

    def add_document(self, record: DocumentRecord) -> None:
        with self._lock:
            self._documents.append(record)

    def add_finding(self, record: FindingRecord) -> None:
        with self._lock:
            self._findings.append(record)

    def add_note(self, record: NoteRecord) -> None:
        with self._lock:
            self._notes.append(record)

    def _owned_claim(self, org_id: str, claim_id: str) -> bool:
        claim = self._claims.get(claim_id)
        return claim is not None and claim.org_id == org_id

    def get_claim(self, org_id: str, claim_id: str) -> ClaimRecord | None:
        with self._lock:
            claim = self._claims.get(claim_id)
        if claim is None or claim.org_id != org_id:
            return None
        return claim

    def get_property(self, org_id: str, property_id: str) -> PropertyRecord | None:
        record = self._properties.get(property_id)
        return record if record is not None and record.org_id == org_id else None

    def get_client(self, org_id: str, client_id: str) -> ClientRecord | None:
        record = self._clients.get(client_id)
        return record if record is not None and record.org_id == org_id else None

    def get_branding(self, org_id: str) -> OrgBranding | None:
        return self._branding.get(org_id)

    def list_weather(self, org_id: str, claim_id: str) -> list[WeatherRecord]:
        with self._lock:
            if not self._owned_claim(org_id, claim_id):
                return []
            records = [w for w in self._weather if w.claim_id == claim_id]
        # Most recent event first; undated events last.
        dated = sorted(
            (w for w in records if w.event_date is not None),
            key=lambda w: (w.event_date, w.weather_id),
            reverse=True,
        )
        return dated + [w for w in records if w.event_date is None]

    def list_photos(self, org_id: str, claim_id: str) -> list[PhotoRecord]:
        with self._lock:
            if not self._owned_claim(org_id, claim_id):
                return []
            records = [p for p in self._photos if p.claim_id == claim_id]
        return sorted(records, key=lambda p: (p.position, p.photo_id))

    def list_documents(self, org_id: str, claim_id: str) -> list[DocumentRecord]:
        with self._lock:
            if not self._owned_claim(org_id, claim_id):
                return []
            return [d for d in self._documents if d.claim_id == claim_id]

    def list_findings(self, org_id: str, claim_id: str) -> list[FindingRecord]:
        with self._lock:
            if not self._owned_claim(org_id, claim_id):
                return []
            records = [f for f in self._findings if f.claim_id == claim_id]
        return sorted(records, key=lambda f: (f.position, f.finding_id))

    def list_notes(self, org_id: str, claim_id: str) -> list[NoteRecord]:
        with self._lock:
            if not self._owned_claim(org_id, claim_id):
                return []
            records = [n for n in self._notes if n.claim_id == claim_id]
        return sorted(records, key=lambda n: (n.created_at, n.note_id))

    def record_contact(
        self, org_id: str, claim_id: str, timestamps: dict[str, datetime]
    ) -> ClaimRecord | None:
        _check_timestamp_fields(timestamps)
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None or claim.org_id != org_id:
                return None
            updated = claim.model_copy(update=timestamps)
            self._claims[claim_id] = updated
        return updated
