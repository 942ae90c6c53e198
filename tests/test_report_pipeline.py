"""End-to-end tests for ReportPipeline with in-process collaborators.

Covers:
- generate_report: stored PDF, default title, audit started/completed
- Failures emit report.generation.failed and persist nothing
- Regeneration in place via GenerateOptions.artifact_id
- preview_context: ready vs. missing fields, never renders
- send_artifact, update_artifact, delete_artifact through the facade
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from conftest import CLAIM_ID, ORG_ID, OTHER_ORG_CLAIM_ID, OTHER_ORG_ID, SPARSE_CLAIM_ID

from claimpacket.audit.sink import (
    ARTIFACT_DELETED,
    ARTIFACT_UPDATED,
    GENERATION_COMPLETED,
    GENERATION_FAILED,
    GENERATION_STARTED,
    InMemoryAuditSink,
)
from claimpacket.config import PipelineSettings
from claimpacket.models.artifact import ArtifactPatch, ArtifactStatus, ArtifactType
from claimpacket.models.template import TemplateDefinition, TemplateScope
from claimpacket.persistence.repositories import (
    InMemoryArtifactRepository,
    InMemoryClaimRecordsRepository,
    InMemoryTemplateRepository,
    InMemoryTimelineRepository,
)
from claimpacket.reports.errors import (
    NotFoundError,
    RenderError,
    TemplateNotFoundError,
    ValidationError,
)
from claimpacket.reports.pipeline import GenerateOptions, ReportPipeline
from claimpacket.reports.renderer import PDF_MAGIC
from claimpacket.reports.sections import SectionInput, SectionMarkup, build_default_registry
from claimpacket.services.delivery import LoggingMailTransport
from claimpacket.storage.filesystem_store import FilesystemObjectStore

PHOTOS_ONLY = TemplateDefinition(
    id="mkt-photos",
    name="Photo Log",
    scope=TemplateScope.MARKETPLACE,
    section_order=("photo-evidence",),
)


def _broken_cover(section: SectionInput) -> SectionMarkup:
    raise ValueError("logo could not be resolved")


@pytest.fixture
def broken_pipeline(
    settings: PipelineSettings,
    records: InMemoryClaimRecordsRepository,
    templates: InMemoryTemplateRepository,
    artifacts: InMemoryArtifactRepository,
    timeline: InMemoryTimelineRepository,
    object_store: FilesystemObjectStore,
    audit_sink: InMemoryAuditSink,
) -> Generator[ReportPipeline, None, None]:
    """Pipeline whose cover section always fails."""
    built = ReportPipeline.from_settings(
        settings,
        records=records,
        templates=templates,
        artifacts=artifacts,
        timeline=timeline,
        object_store=object_store,
        audit_sink=audit_sink,
        registry=build_default_registry().with_generators(cover=_broken_cover),
    )
    yield built
    built.close()


class TestGenerateReport:
    def test_generates_and_stores_pdf(
        self,
        pipeline: ReportPipeline,
        object_store: FilesystemObjectStore,
    ) -> None:
        artifact = pipeline.generate_report(
            CLAIM_ID, ORG_ID, ArtifactType.INSURANCE_CLAIM, actor_id="user-1"
        )

        assert artifact.org_id == ORG_ID
        assert artifact.claim_id == CLAIM_ID
        assert artifact.status == ArtifactStatus.FINALIZED
        assert artifact.title == "Claim Report - CLM-1001"
        assert artifact.template_id == "builtin-default"
        assert artifact.created_by_id == "user-1"
        assert artifact.storage_key is not None
        assert artifact.pdf_url == f"https://files.example.com/exports/{artifact.storage_key}"
        assert artifact.thumbnail_url is not None

        stored = object_store.get("exports", artifact.storage_key)
        assert stored.body.startswith(PDF_MAGIC)
        assert stored.metadata.sha256 == artifact.checksum

    def test_structured_content(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "INSURANCE_CLAIM")

        assert artifact.content_json is not None
        assert artifact.content_text is None
        content = artifact.content_json
        assert content["template_id"] == "builtin-default"
        assert content["context"]["claim"]["claim_number"] == "CLM-1001"
        assert [s["key"] for s in content["sections"]][0] == "cover"
        assert "scope-matrix" in content["skipped_sections"]

    def test_text_content_and_draft(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(
            CLAIM_ID,
            ORG_ID,
            ArtifactType.WEATHER_REPORT,
            options=GenerateOptions(content_format="text", finalize=False, title="Weather"),
        )

        assert artifact.content_json is None
        assert artifact.content_text is not None
        assert "CLM-1001" in artifact.content_text
        assert artifact.status == ArtifactStatus.DRAFT
        assert artifact.title == "Weather"

    def test_sparse_claim_generates(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(SPARSE_CLAIM_ID, ORG_ID, "OTHER")

        assert artifact.title == "Claim Report - CLM-1002"
        assert artifact.content_json is not None
        warned = {w["field"] for w in artifact.content_json["warnings"]}
        assert "property" in warned

    def test_marketplace_template(
        self, pipeline: ReportPipeline, templates: InMemoryTemplateRepository
    ) -> None:
        templates.add(PHOTOS_ONLY)

        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER", template_id="mkt-photos")

        assert artifact.template_id == "mkt-photos"
        assert artifact.title == "Photo Log - CLM-1001"
        assert artifact.content_json is not None
        assert [s["key"] for s in artifact.content_json["sections"]] == ["photo-evidence"]

    def test_audit_trail(self, pipeline: ReportPipeline, audit_sink: InMemoryAuditSink) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER", actor_id="user-1")

        (started,) = audit_sink.of_type(GENERATION_STARTED)
        assert started["resource"] == {"type": "claim", "id": CLAIM_ID}
        assert started["actor_id"] == "user-1"
        (completed,) = audit_sink.of_type(GENERATION_COMPLETED)
        assert completed["resource"] == {"type": "artifact", "id": artifact.id}
        assert completed["details"]["checksum"] == artifact.checksum
        assert audit_sink.of_type(GENERATION_FAILED) == []


class TestGenerateFailures:
    def test_unknown_type_rejected_before_start(
        self, pipeline: ReportPipeline, audit_sink: InMemoryAuditSink
    ) -> None:
        with pytest.raises(ValidationError):
            pipeline.generate_report(CLAIM_ID, ORG_ID, "BROCHURE")

        assert audit_sink.events == []

    def test_unknown_template(
        self,
        pipeline: ReportPipeline,
        audit_sink: InMemoryAuditSink,
        artifacts: InMemoryArtifactRepository,
    ) -> None:
        with pytest.raises(TemplateNotFoundError):
            pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER", template_id="missing")

        (failed,) = audit_sink.of_type(GENERATION_FAILED)
        assert failed["details"]["code"] == "TEMPLATE_NOT_FOUND"
        assert failed["details"]["template_id"] == "missing"
        assert artifacts.list_for_claim(ORG_ID, CLAIM_ID) == []

    def test_claim_in_other_org_not_found(self, pipeline: ReportPipeline) -> None:
        with pytest.raises(NotFoundError):
            pipeline.generate_report(OTHER_ORG_CLAIM_ID, ORG_ID, "OTHER")

    def test_render_failure_persists_nothing(
        self,
        broken_pipeline: ReportPipeline,
        audit_sink: InMemoryAuditSink,
        artifacts: InMemoryArtifactRepository,
    ) -> None:
        with pytest.raises(RenderError) as exc_info:
            broken_pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        assert exc_info.value.section_key == "cover"
        assert artifacts.list_for_claim(ORG_ID, CLAIM_ID) == []
        (failed,) = audit_sink.of_type(GENERATION_FAILED)
        assert failed["details"]["section_key"] == "cover"
        assert audit_sink.of_type(GENERATION_COMPLETED) == []

    def test_options_reject_unknown_keys(self) -> None:
        with pytest.raises(ValueError):
            GenerateOptions.model_validate({"format": "docx"})


class TestRegeneration:
    def test_regenerates_in_place(
        self, pipeline: ReportPipeline, artifacts: InMemoryArtifactRepository
    ) -> None:
        draft = pipeline.generate_report(
            CLAIM_ID, ORG_ID, "OTHER", options=GenerateOptions(finalize=False)
        )

        regenerated = pipeline.generate_report(
            CLAIM_ID, ORG_ID, "OTHER", options=GenerateOptions(artifact_id=draft.id)
        )

        assert regenerated.id == draft.id
        assert regenerated.status == ArtifactStatus.FINALIZED
        assert len(artifacts.list_for_claim(ORG_ID, CLAIM_ID)) == 1

    def test_unchanged_pdf_still_switches_content_format(self, pipeline: ReportPipeline) -> None:
        first = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        again = pipeline.generate_report(
            CLAIM_ID,
            ORG_ID,
            "OTHER",
            options=GenerateOptions(artifact_id=first.id, content_format="text"),
        )

        assert again.checksum == first.checksum
        assert again.content_text
        assert again.content_json is None

    def test_artifact_of_other_claim_not_found(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        with pytest.raises(NotFoundError):
            pipeline.generate_report(
                SPARSE_CLAIM_ID, ORG_ID, "OTHER", options=GenerateOptions(artifact_id=artifact.id)
            )


class TestPreview:
    def test_complete_claim_is_ready(
        self,
        pipeline: ReportPipeline,
        audit_sink: InMemoryAuditSink,
        artifacts: InMemoryArtifactRepository,
    ) -> None:
        preview = pipeline.preview_context(CLAIM_ID, ORG_ID)

        assert preview.ready is True
        assert preview.missing_fields == []
        assert preview.template_id == "builtin-default"
        assert preview.context["claim"]["claim_number"] == "CLM-1001"
        assert preview.enabled_sections[0] == "cover"
        assert artifacts.list_for_claim(ORG_ID, CLAIM_ID) == []
        assert audit_sink.events == []

    def test_sparse_claim_not_ready(self, pipeline: ReportPipeline) -> None:
        preview = pipeline.preview_context(SPARSE_CLAIM_ID, ORG_ID)

        assert preview.ready is False
        assert "property.full_address" in preview.missing_fields
        assert "media.photos" in preview.missing_fields
        assert len(preview.missing_fields) == len(set(preview.missing_fields))
        assert {w.field for w in preview.warnings} >= {"property", "weather"}

    def test_missing_fields_follow_enabled_sections(
        self, pipeline: ReportPipeline, templates: InMemoryTemplateRepository
    ) -> None:
        templates.add(PHOTOS_ONLY)

        preview = pipeline.preview_context(SPARSE_CLAIM_ID, ORG_ID, "mkt-photos")

        assert preview.missing_fields == ["media.photos"]
        assert preview.enabled_sections == ["photo-evidence"]

    def test_unknown_template(self, pipeline: ReportPipeline) -> None:
        with pytest.raises(TemplateNotFoundError):
            pipeline.preview_context(CLAIM_ID, ORG_ID, "missing")

    def test_other_org_claim(self, pipeline: ReportPipeline) -> None:
        with pytest.raises(NotFoundError):
            pipeline.preview_context(CLAIM_ID, OTHER_ORG_ID)


class TestArtifactOperations:
    def test_send_artifact(
        self,
        pipeline: ReportPipeline,
        mail_transport: LoggingMailTransport,
        timeline: InMemoryTimelineRepository,
    ) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "INSURANCE_CLAIM")

        result = pipeline.send_artifact(
            artifact.id, ORG_ID, "adjuster", "sam.lee@acme.example", "Packet", "Attached."
        )

        assert result.success is True
        assert result.access_link.startswith(
            f"https://reports.example.com/share/reports/{artifact.id}?"
        )
        assert len(mail_transport.sent) == 1
        assert len(timeline.list_for_claim(ORG_ID, CLAIM_ID)) == 1
        assert pipeline.get_artifact(artifact.id, ORG_ID).status == ArtifactStatus.SENT

    def test_get_artifact_scoped(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        assert pipeline.get_artifact(artifact.id, ORG_ID) == artifact
        with pytest.raises(NotFoundError):
            pipeline.get_artifact(artifact.id, OTHER_ORG_ID)

    def test_update_artifact(self, pipeline: ReportPipeline, audit_sink: InMemoryAuditSink) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        updated = pipeline.update_artifact(
            artifact.id, ORG_ID, ArtifactPatch(title="Renamed"), actor_id="user-1"
        )

        assert updated.title == "Renamed"
        assert updated.pdf_url == artifact.pdf_url
        (event,) = audit_sink.of_type(ARTIFACT_UPDATED)
        assert event["details"]["fields"] == ["title"]

    def test_delete_artifact(
        self,
        pipeline: ReportPipeline,
        object_store: FilesystemObjectStore,
        audit_sink: InMemoryAuditSink,
    ) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")
        assert artifact.storage_key is not None

        pipeline.delete_artifact(artifact.id, ORG_ID, actor_id="user-1")

        with pytest.raises(NotFoundError):
            pipeline.get_artifact(artifact.id, ORG_ID)
        assert object_store.exists("exports", artifact.storage_key) is False
        assert len(audit_sink.of_type(ARTIFACT_DELETED)) == 1

    def test_delete_from_other_org_not_found(self, pipeline: ReportPipeline) -> None:
        artifact = pipeline.generate_report(CLAIM_ID, ORG_ID, "OTHER")

        with pytest.raises(NotFoundError):
            pipeline.delete_artifact(artifact.id, OTHER_ORG_ID)

        assert pipeline.get_artifact(artifact.id, ORG_ID).id == artifact.id
