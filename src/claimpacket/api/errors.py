"""API error handling.

Global exception handlers:
- ClaimpacketHttpError: API-level errors (auth) with structured envelope
- ReportPipelineError: Pipeline errors mapped to HTTP status by kind
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from claimpacket.api.error_model import get_error_code_for_status, make_error_response
from claimpacket.reports.errors import (
    NotFoundError,
    PersistenceError,
    RenderError,
    ReportPipelineError,
    TemplateNotFoundError,
    TransportError,
    UploadError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PIPELINE_ERROR_STATUS: tuple[tuple[type[ReportPipelineError], int], ...] = (
    (NotFoundError, 404),
    (TemplateNotFoundError, 404),
    (ValidationError, 422),
    (RenderError, 500),
    (UploadError, 502),
    (TransportError, 502),
    (PersistenceError, 500),
)


class ClaimpacketHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 401, 404, 500).
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def status_for_pipeline_error(exc: ReportPipelineError) -> int:
    for error_type, status in PIPELINE_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


async def claimpacket_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ClaimpacketHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def pipeline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a pipeline error to its HTTP status, keeping code and retry context."""
    assert isinstance(exc, ReportPipelineError)

    status = status_for_pipeline_error(exc)
    if status >= 500:
        logger.warning("Pipeline error %s: %s", exc.code, exc)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=status,
        details=dict(exc.context) or None,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Maps standard HTTP exceptions to the error envelope."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Maps Pydantic validation errors to the error envelope.

    Does not expose raw validation internals.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Fails closed: returns 500 with safe generic message.
    Does NOT expose stack traces or exception details to clients.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )
