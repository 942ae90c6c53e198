"""PostgreSQL repository integration tests.

Tests for:
- Artifact rows: insert/get/update/delete/list, status clamping, JSONB round trip
- Row-Level Security: another org cannot read or delete a row
- Timeline events: append-only (UPDATE/DELETE blocked by trigger)

These tests require a real PostgreSQL instance and use:
- CLAIMPACKET_DATABASE_ADMIN_URL for migrations
- CLAIMPACKET_TEST_DATABASE_URL for app-role operations (a non-superuser, so
  RLS applies)

Run with: pytest -q tests/test_postgres_repositories.py
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError

from claimpacket.models.artifact import Artifact, ArtifactStatus, ArtifactType
from claimpacket.models.timeline import EmailSentMetadata, RecipientType, TimelineEvent
from claimpacket.persistence.db import DATABASE_ADMIN_URL_ENV, org_transaction
from claimpacket.persistence.migrate import run_upgrade
from claimpacket.persistence.repositories import (
    PostgresArtifactRepository,
    PostgresTimelineRepository,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

APP_URL_ENV = "CLAIMPACKET_TEST_DATABASE_URL"
REQUIRE_POSTGRES_ENV = "CLAIMPACKET_REQUIRE_POSTGRES"

# Unique per run: timeline rows cannot be deleted afterwards.
ORG_A = f"org-a-{uuid.uuid4().hex[:12]}"
ORG_B = f"org-b-{uuid.uuid4().hex[:12]}"
NOW = datetime(2026, 3, 14, 15, 0, tzinfo=UTC)


def _skip_or_fail_if_no_postgres() -> tuple[str, str]:
    """Skip or fail if PostgreSQL is not configured.

    With CLAIMPACKET_REQUIRE_POSTGRES=1 (CI) a missing database fails the test.
    """
    admin_url = os.environ.get(DATABASE_ADMIN_URL_ENV)
    app_url = os.environ.get(APP_URL_ENV)
    if not admin_url or not app_url:
        msg = f"PostgreSQL tests require {DATABASE_ADMIN_URL_ENV} and {APP_URL_ENV}"
        if os.environ.get(REQUIRE_POSTGRES_ENV, "0") == "1":
            pytest.fail(f"REQUIRED: {msg} ({REQUIRE_POSTGRES_ENV}=1)")
        pytest.skip(msg)
    return admin_url, app_url


@pytest.fixture(scope="module")
def app_engine() -> Generator[Engine, None, None]:
    """Migrate with the admin role, then hand out an app-role engine."""
    admin_url, app_url = _skip_or_fail_if_no_postgres()

    admin_engine = create_engine(admin_url)
    run_upgrade(admin_engine)
    admin_engine.dispose()

    engine = create_engine(app_url)
    yield engine
    engine.dispose()


def _artifact(org_id: str = ORG_A, claim_id: str = "claim-1") -> Artifact:
    return Artifact(
        id=str(uuid.uuid4()),
        org_id=org_id,
        claim_id=claim_id,
        type=ArtifactType.INSURANCE_CLAIM,
        status=ArtifactStatus.FINALIZED,
        title="Claim Report - CLM-1001",
        content_json={"sections": [{"key": "cover", "title": "Cover Page"}]},
        pdf_url="https://files.example.com/exports/a.pdf",
        checksum="a" * 64,
        size_bytes=1024,
        storage_key=f"{org_id}/{claim_id}/a.pdf",
        created_at=NOW,
        updated_at=NOW,
    )


class TestPostgresArtifacts:
    def test_insert_and_get(self, app_engine: Engine) -> None:
        repo = PostgresArtifactRepository(app_engine)
        artifact = repo.insert(_artifact())

        assert repo.get(ORG_A, artifact.id) == artifact
        assert repo.delete(ORG_A, artifact.id) is True

    def test_other_org_cannot_see_or_delete(self, app_engine: Engine) -> None:
        repo = PostgresArtifactRepository(app_engine)
        artifact = repo.insert(_artifact())

        assert repo.get(ORG_B, artifact.id) is None
        assert repo.delete(ORG_B, artifact.id) is False
        assert repo.list_for_claim(ORG_B, "claim-1") == []
        assert repo.get(ORG_A, artifact.id) is not None

        repo.delete(ORG_A, artifact.id)

    def test_rls_hides_rows_without_org_filter(self, app_engine: Engine) -> None:
        repo = PostgresArtifactRepository(app_engine)
        artifact = repo.insert(_artifact())

        with org_transaction(app_engine, ORG_B) as conn:
            count = conn.execute(
                text("SELECT COUNT(*) FROM report_artifacts WHERE id = :id"),
                {"id": artifact.id},
            ).scalar_one()

        assert count == 0
        repo.delete(ORG_A, artifact.id)

    def test_update_clamps_status_and_merges_attachments(self, app_engine: Engine) -> None:
        repo = PostgresArtifactRepository(app_engine)
        artifact = repo.insert(_artifact())
        repo.update(ORG_A, artifact.id, status=ArtifactStatus.SENT)

        updated = repo.update(
            ORG_A,
            artifact.id,
            fields={"title": "Renamed"},
            status=ArtifactStatus.DRAFT,
            attachments_patch={"shared_with": ["a@b.example"]},
        )

        assert updated is not None
        assert updated.status == ArtifactStatus.SENT
        assert updated.title == "Renamed"
        assert updated.attachments.shared_with == ("a@b.example",)
        assert repo.get(ORG_A, artifact.id) == updated

        repo.delete(ORG_A, artifact.id)

    def test_update_missing_returns_none(self, app_engine: Engine) -> None:
        repo = PostgresArtifactRepository(app_engine)

        assert repo.update(ORG_A, "missing", fields={"title": "x"}) is None


class TestPostgresTimeline:
    def _event(self) -> TimelineEvent:
        return TimelineEvent(
            id=str(uuid.uuid4()),
            claim_id="claim-1",
            org_id=ORG_A,
            actor_id="user-1",
            type="email_sent",
            description="Claim Report emailed to adjuster a@b.example",
            metadata=EmailSentMetadata(
                artifact_id="art-1",
                artifact_title="Claim Report",
                recipient_type=RecipientType.ADJUSTER,
                to="a@b.example",
                subject="Packet",
                body_preview="Hello",
                access_link="https://reports.example.com/share/reports/art-1?r=adjuster&sig=x",
            ),
            created_at=NOW,
        )

    def test_append_and_list(self, app_engine: Engine) -> None:
        repo = PostgresTimelineRepository(app_engine)
        event = repo.append(self._event())

        assert event in repo.list_for_claim(ORG_A, "claim-1")
        assert event not in repo.list_for_claim(ORG_B, "claim-1")

    def test_events_are_immutable(self, app_engine: Engine) -> None:
        event = PostgresTimelineRepository(app_engine).append(self._event())

        with pytest.raises(DBAPIError), org_transaction(app_engine, ORG_A) as conn:
            conn.execute(
                text("DELETE FROM claim_timeline_events WHERE id = :id"), {"id": event.id}
            )

        with pytest.raises(DBAPIError), org_transaction(app_engine, ORG_A) as conn:
            conn.execute(
                text("UPDATE claim_timeline_events SET description = 'x' WHERE id = :id"),
                {"id": event.id},
            )
