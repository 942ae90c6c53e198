"""Report pipeline routes.

Provides:
- POST /v1/claims/{claim_id}/reports (generate, 201)
- POST /v1/claims/{claim_id}/reports/preview (validation only, 200)
- POST /v1/claims/{claim_id}/reports/tasks (fire-and-forget generate, 202)
- GET /v1/report-tasks/{task_id} (poll a generation task)
- GET/PATCH/DELETE /v1/reports/{artifact_id}
- POST /v1/reports/{artifact_id}/send (deliver; 502 on transport failure)

Pipeline errors propagate to the handlers in claimpacket.api.errors.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from claimpacket.api.auth import RequireTenantContext
from claimpacket.models.artifact import Artifact, ArtifactPatch, ArtifactStatus, ArtifactType
from claimpacket.reports.errors import TransportError
from claimpacket.reports.pipeline import GenerateOptions, PreviewResult, ReportPipeline
from claimpacket.reports.tasks import GenerationTask

router = APIRouter(prefix="/v1", tags=["Reports"])


class GenerateReportRequest(BaseModel):
    """Request body for report generation."""

    type: ArtifactType = ArtifactType.INSURANCE_CLAIM
    template_id: str | None = None
    options: GenerateOptions = Field(default_factory=GenerateOptions)


class PreviewRequest(BaseModel):
    template_id: str | None = None


class SendArtifactRequest(BaseModel):
    """Request body for delivery. Emptiness is checked by the pipeline."""

    recipient_type: str
    to: str
    subject: str
    message: str


class DeliveryResponse(BaseModel):
    success: bool
    artifact_id: str
    recipient_type: str
    to: str
    access_link: str
    message_id: str | None = None
    timeline_event_id: str | None = None
    artifact_status: ArtifactStatus | None = None


def _pipeline(request: Request) -> ReportPipeline:
    pipeline: ReportPipeline = request.app.state.pipeline
    return pipeline


@router.post("/claims/{claim_id}/reports", response_model=Artifact, status_code=201)
def generate_report(
    claim_id: str,
    body: GenerateReportRequest,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> Artifact:
    return _pipeline(request).generate_report(
        claim_id,
        tenant_ctx.org_id,
        body.type,
        body.template_id,
        body.options,
        actor_id=tenant_ctx.actor_id,
    )


@router.post("/claims/{claim_id}/reports/preview", response_model=PreviewResult)
def preview_report(
    claim_id: str,
    request: Request,
    tenant_ctx: RequireTenantContext,
    body: PreviewRequest | None = None,
) -> PreviewResult:
    """Context plus missing fields. Always 200 when the claim exists."""
    template_id = body.template_id if body else None
    return _pipeline(request).preview_context(claim_id, tenant_ctx.org_id, template_id)


@router.post("/claims/{claim_id}/reports/tasks", response_model=GenerationTask, status_code=202)
def start_report_generation(
    claim_id: str,
    body: GenerateReportRequest,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> GenerationTask:
    return _pipeline(request).start_generation(
        claim_id,
        tenant_ctx.org_id,
        body.type,
        body.template_id,
        body.options,
        actor_id=tenant_ctx.actor_id,
    )


@router.get("/report-tasks/{task_id}", response_model=GenerationTask)
def get_report_task(
    task_id: str,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> GenerationTask:
    return _pipeline(request).get_generation_task(task_id, tenant_ctx.org_id)


@router.get("/reports/{artifact_id}", response_model=Artifact)
def get_report(
    artifact_id: str,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> Artifact:
    return _pipeline(request).get_artifact(artifact_id, tenant_ctx.org_id)


@router.patch("/reports/{artifact_id}", response_model=Artifact)
def update_report(
    artifact_id: str,
    patch: ArtifactPatch,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> Artifact:
    return _pipeline(request).update_artifact(
        artifact_id, tenant_ctx.org_id, patch, actor_id=tenant_ctx.actor_id
    )


@router.delete("/reports/{artifact_id}", status_code=204)
def delete_report(
    artifact_id: str,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> Response:
    _pipeline(request).delete_artifact(
        artifact_id, tenant_ctx.org_id, actor_id=tenant_ctx.actor_id
    )
    return Response(status_code=204)


@router.post("/reports/{artifact_id}/send", response_model=DeliveryResponse)
def send_report(
    artifact_id: str,
    body: SendArtifactRequest,
    request: Request,
    tenant_ctx: RequireTenantContext,
) -> DeliveryResponse:
    """Deliver the report link. A transport failure is returned as 502."""
    result = _pipeline(request).send_artifact(
        artifact_id,
        tenant_ctx.org_id,
        body.recipient_type,
        body.to,
        body.subject,
        body.message,
        actor_id=tenant_ctx.actor_id,
    )
    if not result.success:
        raise TransportError(
            result.error_message or "Mail transport failed",
            code=result.error_code,
            context={"artifact_id": artifact_id, "recipient": result.to},
        )
    return DeliveryResponse(
        success=True,
        artifact_id=result.artifact_id,
        recipient_type=result.recipient_type.value,
        to=result.to,
        access_link=result.access_link,
        message_id=result.message_id,
        timeline_event_id=result.timeline_event_id,
        artifact_status=result.artifact_status,
    )
