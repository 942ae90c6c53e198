"""Report pipeline error taxonomy.

Every error carries a human-readable `message`, a machine `code`, and a
`context` dict (claim id, artifact id, section key, recipient) so the same
caller can retry without re-deriving state. PartialDataWarning lives with the
context models; it is attached to results and never raised.
"""

from __future__ import annotations

from typing import Any

from claimpacket.models.context import PartialDataWarning


class ReportPipelineError(Exception):
    """Base class for all pipeline errors."""

    default_code = "PIPELINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = {k: v for k, v in (context or {}).items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = " ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


class NotFoundError(ReportPipelineError):
    """Entity absent or owned by another organization.

    Both cases produce the same message so callers cannot enumerate ids
    across tenants.
    """

    default_code = "NOT_FOUND"


class ValidationError(ReportPipelineError):
    """Missing or malformed caller input."""

    default_code = "VALIDATION_ERROR"


class TemplateNotFoundError(ReportPipelineError):
    """An explicitly requested template resolved to nothing."""

    default_code = "TEMPLATE_NOT_FOUND"


class RenderError(ReportPipelineError):
    """Binary conversion failed or timed out."""

    default_code = "RENDER_FAILED"

    def __init__(
        self,
        message: str,
        *,
        section_key: str | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message, code=code, context={**(context or {}), "section_key": section_key}
        )
        self.section_key = section_key


class UploadError(ReportPipelineError):
    """Durable storage write failed; no metadata row was written."""

    default_code = "UPLOAD_FAILED"


class TransportError(ReportPipelineError):
    """Mail transport rejected or failed to send the message."""

    default_code = "TRANSPORT_FAILED"


class PersistenceError(ReportPipelineError):
    """Metadata write failed after a successful upload.

    Raised after compensating cleanup of the uploaded objects.
    """

    default_code = "PERSISTENCE_FAILED"


def not_found(kind: str, **context: Any) -> NotFoundError:
    """Build the uniform not-found error for an entity kind."""
    return NotFoundError(f"{kind} not found", context=context)


__all__ = [
    "NotFoundError",
    "PartialDataWarning",
    "PersistenceError",
    "RenderError",
    "ReportPipelineError",
    "TemplateNotFoundError",
    "TransportError",
    "UploadError",
    "ValidationError",
    "not_found",
]
