"""Tests for the claimpacket HTTP API.

Covers:
- /health without credentials, X-Request-Id echo
- API key resolution: 401 on missing or unknown keys
- Report routes: generate (201), preview, get, patch, delete (204), send
- Error envelope: code, message, details, request_id
- Pipeline error mapping: 404 across orgs, 422 validation, 502 transport
- Background generation task routes
"""

from __future__ import annotations

import json
from collections.abc import Generator

import pytest
from conftest import CLAIM_ID, ORG_ID, OTHER_ORG_ID, SPARSE_CLAIM_ID
from fastapi.testclient import TestClient

from claimpacket.api.auth import API_KEY_HEADER, API_KEYS_ENV
from claimpacket.api.main import create_app
from claimpacket.audit.sink import InMemoryAuditSink
from claimpacket.config import PipelineSettings
from claimpacket.persistence.repositories import (
    InMemoryArtifactRepository,
    InMemoryClaimRecordsRepository,
    InMemoryTemplateRepository,
    InMemoryTimelineRepository,
)
from claimpacket.reports.errors import TransportError
from claimpacket.reports.pipeline import ReportPipeline
from claimpacket.services.delivery import MailMessage
from claimpacket.storage.filesystem_store import FilesystemObjectStore

ORG_KEY = "key-org-1"
OTHER_ORG_KEY = "key-org-2"

SEND_BODY = {
    "recipient_type": "adjuster",
    "to": "sam.lee@acme.example",
    "subject": "Claim packet CLM-1001",
    "message": "Please review.",
}


class RejectingTransport:
    def send(self, message: MailMessage) -> str:
        raise TransportError("Resend email failed: 422 invalid recipient")


@pytest.fixture(autouse=True)
def api_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Register one key per organization."""
    monkeypatch.setenv(
        API_KEYS_ENV,
        json.dumps(
            {
                ORG_KEY: {"org_id": ORG_ID, "actor_id": "svc-reports", "name": "Reports"},
                OTHER_ORG_KEY: {"org_id": OTHER_ORG_ID, "actor_id": "svc-other"},
            }
        ),
    )


@pytest.fixture
def client(pipeline: ReportPipeline) -> TestClient:
    return TestClient(create_app(pipeline))


def _headers(key: str = ORG_KEY) -> dict[str, str]:
    return {API_KEY_HEADER: key}


def _generate(client: TestClient, claim_id: str = CLAIM_ID) -> dict[str, object]:
    response = client.post(
        f"/v1/claims/{claim_id}/reports", json={"type": "INSURANCE_CLAIM"}, headers=_headers()
    )
    assert response.status_code == 201, response.text
    body: dict[str, object] = response.json()
    return body


class TestHealthAndAuth:
    def test_health_needs_no_key(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-Id": "req-123"})

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Request-Id"] == "req-123"

    def test_unsafe_request_id_replaced(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-Id": "x" * 300})

        assert response.headers["X-Request-Id"] != "x" * 300
        assert len(response.headers["X-Request-Id"]) == 36

    def test_missing_key(self, client: TestClient) -> None:
        response = client.post(f"/v1/claims/{CLAIM_ID}/reports/preview")

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"] == response.headers["X-Request-Id"]

    def test_unknown_key(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports/preview", headers=_headers("nope")
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid API key"

    def test_malformed_registry_fails_closed(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(API_KEYS_ENV, "{not json")

        response = client.post(f"/v1/claims/{CLAIM_ID}/reports/preview", headers=_headers())

        assert response.status_code == 401


class TestGenerateAndPreview:
    def test_generate(self, client: TestClient) -> None:
        body = _generate(client)

        assert body["claim_id"] == CLAIM_ID
        assert body["org_id"] == ORG_ID
        assert body["status"] == "FINALIZED"
        assert body["title"] == "Claim Report - CLM-1001"
        assert body["created_by_id"] == "svc-reports"
        assert str(body["pdf_url"]).startswith("https://files.example.com/exports/org-1/")

    def test_generate_with_options(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports",
            json={
                "type": "WEATHER_REPORT",
                "options": {"content_format": "text", "finalize": False, "title": "Storm"},
            },
            headers=_headers(),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "DRAFT"
        assert body["title"] == "Storm"
        assert body["content_json"] is None

    def test_generate_for_other_org_claim(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports", json={}, headers=_headers(OTHER_ORG_KEY)
        )

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["details"] == {"claim_id": CLAIM_ID}
        assert body["request_id"]

    def test_unknown_template(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports", json={"template_id": "missing"}, headers=_headers()
        )

        assert response.status_code == 404
        assert response.json()["code"] == "TEMPLATE_NOT_FOUND"

    def test_invalid_body(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports",
            json={"type": "BROCHURE", "options": {"format": "docx"}},
            headers=_headers(),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "REQUEST_VALIDATION_FAILED"
        fields = {e["field"] for e in body["details"]["errors"]}
        assert "type" in fields

    def test_preview_ready(self, client: TestClient) -> None:
        response = client.post(f"/v1/claims/{CLAIM_ID}/reports/preview", headers=_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["ready"] is True
        assert body["missing_fields"] == []

    def test_preview_sparse(self, client: TestClient) -> None:
        response = client.post(
            f"/v1/claims/{SPARSE_CLAIM_ID}/reports/preview", json={}, headers=_headers()
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ready"] is False
        assert "property.full_address" in body["missing_fields"]


class TestArtifactRoutes:
    def test_get(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.get(f"/v1/reports/{created['id']}", headers=_headers())

        assert response.status_code == 200
        assert response.json()["checksum"] == created["checksum"]

    def test_get_from_other_org(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.get(f"/v1/reports/{created['id']}", headers=_headers(OTHER_ORG_KEY))

        assert response.status_code == 404

    def test_patch(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.patch(
            f"/v1/reports/{created['id']}",
            json={"title": "Final packet", "attachments": {"allow_download": True}},
            headers=_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Final packet"
        assert body["attachments"]["allow_download"] is True

    def test_patch_backward_status(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.patch(
            f"/v1/reports/{created['id']}", json={"status": "DRAFT"}, headers=_headers()
        )

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_delete(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.delete(f"/v1/reports/{created['id']}", headers=_headers())

        assert response.status_code == 204
        assert client.get(f"/v1/reports/{created['id']}", headers=_headers()).status_code == 404

    def test_send(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.post(
            f"/v1/reports/{created['id']}/send", json=SEND_BODY, headers=_headers()
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["artifact_status"] == "SENT"
        assert body["timeline_event_id"]

    def test_send_invalid_address(self, client: TestClient) -> None:
        created = _generate(client)

        response = client.post(
            f"/v1/reports/{created['id']}/send",
            json={**SEND_BODY, "to": "not-an-email"},
            headers=_headers(),
        )

        assert response.status_code == 422


class TestTransportFailure:
    @pytest.fixture
    def failing_client(
        self,
        settings: PipelineSettings,
        records: InMemoryClaimRecordsRepository,
        templates: InMemoryTemplateRepository,
        artifacts: InMemoryArtifactRepository,
        timeline: InMemoryTimelineRepository,
        object_store: FilesystemObjectStore,
        audit_sink: InMemoryAuditSink,
    ) -> Generator[TestClient, None, None]:
        pipeline = ReportPipeline.from_settings(
            settings,
            records=records,
            templates=templates,
            artifacts=artifacts,
            timeline=timeline,
            object_store=object_store,
            audit_sink=audit_sink,
            mail_transport=RejectingTransport(),
        )
        yield TestClient(create_app(pipeline))
        pipeline.close()

    def test_send_failure_is_502(
        self, failing_client: TestClient, timeline: InMemoryTimelineRepository
    ) -> None:
        created = _generate(failing_client)

        response = failing_client.post(
            f"/v1/reports/{created['id']}/send", json=SEND_BODY, headers=_headers()
        )

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "TRANSPORT_FAILED"
        assert body["details"]["artifact_id"] == created["id"]
        assert timeline.list_for_claim(ORG_ID, CLAIM_ID) == []


class TestTaskRoutes:
    def test_start_and_poll(self, client: TestClient, pipeline: ReportPipeline) -> None:
        response = client.post(
            f"/v1/claims/{CLAIM_ID}/reports/tasks", json={"type": "OTHER"}, headers=_headers()
        )

        assert response.status_code == 202
        task_id = response.json()["task_id"]
        pipeline.wait_for_generation(task_id, ORG_ID, timeout=60)

        polled = client.get(f"/v1/report-tasks/{task_id}", headers=_headers())
        assert polled.status_code == 200
        assert polled.json()["status"] == "SUCCEEDED"

        hidden = client.get(f"/v1/report-tasks/{task_id}", headers=_headers(OTHER_ORG_KEY))
        assert hidden.status_code == 404
