"""claimpacket FastAPI application factory."""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from claimpacket import __version__
from claimpacket.api.errors import (
    ClaimpacketHttpError,
    claimpacket_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    pipeline_error_handler,
    request_validation_error_handler,
)
from claimpacket.api.middleware.request_id import RequestIdMiddleware
from claimpacket.api.routes.health import router as health_router
from claimpacket.api.routes.reports import router as reports_router
from claimpacket.reports.errors import ReportPipelineError
from claimpacket.reports.pipeline import ReportPipeline


def create_app(pipeline: ReportPipeline | None = None) -> FastAPI:
    """Create and configure the claimpacket API.

    This factory:
    - Wires the report pipeline (from CLAIMPACKET_* settings unless one is given)
    - Registers the request ID middleware
    - Registers exception handlers that render the error envelope
    - Mounts the health router (no auth) and the /v1 report routes (API key)

    Args:
        pipeline: Optional pre-built pipeline, typically with in-memory
            repositories for tests.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="claimpacket API",
        description="Claim report generation, storage and delivery",
        version=__version__,
    )

    app.state.pipeline = pipeline or ReportPipeline.from_settings()

    app.add_middleware(RequestIdMiddleware)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop render and generation workers."""
        app.state.pipeline.close()

    app.add_exception_handler(ClaimpacketHttpError, claimpacket_http_error_handler)
    app.add_exception_handler(ReportPipelineError, pipeline_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(reports_router)

    return app
