"""ReportPipeline - the operations other parts of the system call.

Data flows one way: Context Builder -> Template Merger -> Renderer ->
Artifact Store -> Delivery & Audit. Preview stops after the merger and never
renders binaries; re-delivery enters at delivery only.

Produced operations:
- generate_report / start_generation + get_generation_task
- preview_context
- send_artifact
- get_artifact / update_artifact / delete_artifact
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from claimpacket.audit.sink import (
    GENERATION_COMPLETED,
    GENERATION_FAILED,
    GENERATION_STARTED,
    AuditSink,
    JsonlFileAuditSink,
    build_audit_event,
)
from claimpacket.config import PipelineSettings
from claimpacket.models.artifact import Artifact, ArtifactPatch, ArtifactType
from claimpacket.models.context import PartialDataWarning, ReportContext
from claimpacket.models.template import MergedTemplate
from claimpacket.models.timeline import RecipientType
from claimpacket.persistence.db import get_app_engine, is_postgres_configured
from claimpacket.persistence.repositories import (
    ArtifactRepository,
    ClaimRecordsRepository,
    InMemoryArtifactRepository,
    InMemoryClaimRecordsRepository,
    InMemoryTemplateRepository,
    InMemoryTimelineRepository,
    PostgresArtifactRepository,
    PostgresClaimRecordsRepository,
    PostgresTemplateRepository,
    PostgresTimelineRepository,
    TemplateRepository,
    TimelineRepository,
)
from claimpacket.reports.backend import BinaryRendererBackend, ReportlabRendererBackend
from claimpacket.reports.catalog import SECTIONS_BY_KEY
from claimpacket.reports.context_builder import ContextBuilder
from claimpacket.reports.errors import ReportPipelineError, ValidationError, not_found
from claimpacket.reports.renderer import RenderedReport, Renderer
from claimpacket.reports.sections import SectionRegistry, build_default_registry
from claimpacket.reports.tasks import GenerationTask, GenerationTaskRegistry
from claimpacket.reports.template_merger import TemplateMerger
from claimpacket.services.artifacts.service import ArtifactContent, ArtifactStore
from claimpacket.services.delivery.links import AccessLinkSigner
from claimpacket.services.delivery.mail import MailTransport, create_mail_transport
from claimpacket.services.delivery.service import DeliveryResult, DeliveryService
from claimpacket.storage import create_object_store
from claimpacket.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class GenerateOptions(BaseModel):
    """Caller choices for one generation.

    Attributes:
        title: Artifact title; defaults to "<template title> - <claim number>".
        content_format: Store the structured context ("json") or the plain
            text rendition ("text").
        finalize: Start the artifact at FINALIZED (default) instead of DRAFT.
        artifact_id: Regenerate this artifact in place instead of creating a
            new row.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    content_format: Literal["json", "text"] = "json"
    finalize: bool = True
    artifact_id: str | None = None


class PreviewResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    context: dict[str, Any]
    missing_fields: list[str]
    ready: bool
    warnings: tuple[PartialDataWarning, ...] = ()
    template_id: str | None = None
    enabled_sections: list[str] = Field(default_factory=list)


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def missing_fields(template: MergedTemplate, context: ReportContext) -> list[str]:
    """Required context paths of the enabled sections that are empty, in section order."""
    missing: list[str] = []
    for section in template.enabled_sections():
        definition = SECTIONS_BY_KEY.get(section.key)
        if definition is None:
            continue
        for path in definition.required_fields:
            if path not in missing and _is_missing(context.lookup(path)):
                missing.append(path)
    return missing


def _coerce_type(artifact_type: ArtifactType | str) -> ArtifactType:
    try:
        return ArtifactType(artifact_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown artifact type: {artifact_type}", context={"field": "type"}
        ) from e


class ReportPipeline:
    """Facade over the five pipeline stages."""

    def __init__(
        self,
        context_builder: ContextBuilder,
        template_merger: TemplateMerger,
        renderer: Renderer,
        artifact_store: ArtifactStore,
        delivery: DeliveryService,
        audit_sink: AuditSink,
        *,
        tasks: GenerationTaskRegistry | None = None,
    ) -> None:
        self.context_builder = context_builder
        self.template_merger = template_merger
        self.renderer = renderer
        self.artifact_store = artifact_store
        self.delivery = delivery
        self._audit_sink = audit_sink
        self._tasks = tasks or GenerationTaskRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings | None = None,
        *,
        records: ClaimRecordsRepository | None = None,
        templates: TemplateRepository | None = None,
        artifacts: ArtifactRepository | None = None,
        timeline: TimelineRepository | None = None,
        object_store: ObjectStore | None = None,
        audit_sink: AuditSink | None = None,
        mail_transport: MailTransport | None = None,
        backend: BinaryRendererBackend | None = None,
        registry: SectionRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> ReportPipeline:
        """Wire a pipeline from settings.

        Repositories default to Postgres when CLAIMPACKET_DATABASE_URL is set
        and to in-memory twins otherwise. Any collaborator can be passed in.
        """
        settings = settings or PipelineSettings.from_env()

        if is_postgres_configured():
            engine = get_app_engine()
            records = records or PostgresClaimRecordsRepository(engine)
            templates = templates or PostgresTemplateRepository(engine)
            artifacts = artifacts or PostgresArtifactRepository(engine)
            timeline = timeline or PostgresTimelineRepository(engine)
        else:
            records = records or InMemoryClaimRecordsRepository()
            templates = templates or InMemoryTemplateRepository()
            artifacts = artifacts or InMemoryArtifactRepository()
            timeline = timeline or InMemoryTimelineRepository()

        audit_sink = audit_sink or JsonlFileAuditSink()
        artifact_store = ArtifactStore(
            artifacts,
            records,
            object_store or create_object_store(settings),
            audit_sink,
            exports_bucket=settings.exports_bucket,
            thumbnails_bucket=settings.thumbnails_bucket,
            clock=clock,
        )
        delivery = DeliveryService(
            artifact_store,
            records,
            timeline,
            mail_transport or create_mail_transport(settings),
            AccessLinkSigner(
                settings.link_signing_secret,
                settings.public_base_url,
                custom_ttl_seconds=settings.custom_link_ttl_seconds,
                clock=clock,
            ),
            clock=clock,
        )
        renderer = Renderer(
            registry or build_default_registry(),
            backend or ReportlabRendererBackend(),
            timeout_seconds=settings.render_timeout_seconds,
        )
        return cls(
            ContextBuilder(records, clock=clock),
            TemplateMerger(templates, records),
            renderer,
            artifact_store,
            delivery,
            audit_sink,
        )

    def close(self) -> None:
        self._tasks.shutdown(wait=False)
        self.renderer.close()

    # Stages 1-2

    def build_context(self, claim_id: str, org_id: str) -> ReportContext:
        return self.context_builder.build(claim_id, org_id)

    def resolve_template(self, template_id: str | None, org_id: str) -> MergedTemplate:
        return self.template_merger.resolve_template(template_id, org_id)

    def preview_context(
        self, claim_id: str, org_id: str, template_id: str | None = None
    ) -> PreviewResult:
        """Validation-only path: context plus the gaps that would show in the report.

        Never renders binaries. Missing optional data yields ready=False rather
        than an error.

        Raises:
            NotFoundError: If the claim is not in the organization.
            TemplateNotFoundError: If an explicit template_id resolves to nothing.
        """
        context = self.build_context(claim_id, org_id)
        template = self.resolve_template(template_id, org_id)
        missing = missing_fields(template, context)
        return PreviewResult(
            context=context.as_mapping(),
            missing_fields=missing,
            ready=not missing,
            warnings=context.warnings,
            template_id=template.template_id,
            enabled_sections=[s.key for s in template.enabled_sections()],
        )

    # Stages 1-4

    def generate_report(
        self,
        claim_id: str,
        org_id: str,
        artifact_type: ArtifactType | str,
        template_id: str | None = None,
        options: GenerateOptions | None = None,
        *,
        actor_id: str | None = None,
    ) -> Artifact:
        """Build, render and persist a report.

        Raises:
            ValidationError: If the artifact type is unknown.
            NotFoundError: If the claim (or artifact being regenerated) is not in
                the organization.
            TemplateNotFoundError: If an explicit template_id resolves to nothing.
            RenderError: If rendering fails; nothing is persisted.
            UploadError: If the PDF upload fails; no row is written.
            PersistenceError: If the row write fails after upload.
        """
        kind = _coerce_type(artifact_type)
        options = options or GenerateOptions()

        self._emit(GENERATION_STARTED, org_id, actor_id, "claim", claim_id, {"type": kind.value})
        try:
            artifact, rendered = self._generate(
                claim_id, org_id, kind, template_id, options, actor_id
            )
        except ReportPipelineError as e:
            self._emit(
                GENERATION_FAILED,
                org_id,
                actor_id,
                "claim",
                claim_id,
                {"code": e.code, "message": e.message, **e.context},
            )
            raise

        self._emit(
            GENERATION_COMPLETED,
            org_id,
            actor_id,
            "artifact",
            artifact.id,
            {
                "claim_id": claim_id,
                "checksum": rendered.checksum,
                "sections": list(rendered.rendered_sections),
                "skipped_sections": list(rendered.skipped_sections),
            },
        )
        return artifact

    def _generate(
        self,
        claim_id: str,
        org_id: str,
        kind: ArtifactType,
        template_id: str | None,
        options: GenerateOptions,
        actor_id: str | None,
    ) -> tuple[Artifact, RenderedReport]:
        if options.artifact_id:
            existing = self.artifact_store.get(org_id, options.artifact_id)
            if existing.claim_id != claim_id:
                raise not_found("Artifact", artifact_id=options.artifact_id)

        context = self.build_context(claim_id, org_id)
        for warning in context.warnings:
            logger.warning("Partial data for claim %s: %s", claim_id, warning.message)
        template = self.resolve_template(template_id, org_id)
        rendered = self.renderer.render(template, context)

        if options.content_format == "text":
            content = ArtifactContent.text(rendered.plain_text)
        else:
            content = ArtifactContent.structured(
                {
                    "template_id": template.template_id,
                    "template_name": template.name,
                    "sections": [
                        {"key": s.key, "title": s.title}
                        for s in template.enabled_sections()
                        if s.key in rendered.rendered_sections
                    ],
                    "skipped_sections": list(rendered.skipped_sections),
                    "context": context.as_mapping(),
                    "warnings": [w.model_dump() for w in context.warnings],
                }
            )

        if options.artifact_id:
            artifact = self.artifact_store.regenerate(
                org_id,
                options.artifact_id,
                rendered,
                content,
                finalize=options.finalize,
                template_id=template.template_id,
            )
        else:
            title = options.title or (
                f"{template.defaults.title or template.name} - {context.claim.claim_number}"
            )
            artifact = self.artifact_store.create(
                org_id,
                claim_id,
                kind,
                content,
                title=title,
                rendered=rendered,
                finalize=options.finalize,
                template_id=template.template_id,
                created_by_id=actor_id,
            )
        return artifact, rendered

    def start_generation(
        self,
        claim_id: str,
        org_id: str,
        artifact_type: ArtifactType | str,
        template_id: str | None = None,
        options: GenerateOptions | None = None,
        *,
        actor_id: str | None = None,
    ) -> GenerationTask:
        """Queue generate_report and return a pollable task immediately.

        The claim and template are checked up front so obvious failures are
        reported synchronously.
        """
        kind = _coerce_type(artifact_type)
        self.build_context(claim_id, org_id)
        self.template_merger.find_definition(template_id, org_id)
        return self._tasks.submit(
            org_id,
            claim_id,
            lambda: self.generate_report(
                claim_id, org_id, kind, template_id, options, actor_id=actor_id
            ),
        )

    def get_generation_task(self, task_id: str, org_id: str) -> GenerationTask:
        return self._tasks.get(org_id, task_id)

    def wait_for_generation(
        self, task_id: str, org_id: str, timeout: float | None = None
    ) -> GenerationTask:
        return self._tasks.wait(org_id, task_id, timeout=timeout)

    # Stage 4

    def get_artifact(self, artifact_id: str, org_id: str) -> Artifact:
        return self.artifact_store.get(org_id, artifact_id)

    def update_artifact(
        self,
        artifact_id: str,
        org_id: str,
        patch: ArtifactPatch,
        *,
        actor_id: str | None = None,
    ) -> Artifact:
        return self.artifact_store.update(org_id, artifact_id, patch, actor_id=actor_id)

    def delete_artifact(
        self, artifact_id: str, org_id: str, *, actor_id: str | None = None
    ) -> None:
        self.artifact_store.delete(org_id, artifact_id, actor_id=actor_id)

    # Stage 5

    def send_artifact(
        self,
        artifact_id: str,
        org_id: str,
        recipient_type: RecipientType | str,
        to_address: str,
        subject: str,
        message: str,
        *,
        actor_id: str | None = None,
    ) -> DeliveryResult:
        return self.delivery.deliver(
            org_id, artifact_id, recipient_type, to_address, subject, message, actor_id=actor_id
        )

    def _emit(
        self,
        event_type: str,
        org_id: str,
        actor_id: str | None,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None:
        self._audit_sink.emit(
            build_audit_event(
                event_type,
                org_id=org_id,
                actor_id=actor_id,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details,
            )
        )
