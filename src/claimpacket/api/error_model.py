"""Error envelope returned by every failing claimpacket endpoint.

    {"code": "NOT_FOUND", "message": "Artifact not found",
     "details": {"artifact_id": "..."}, "request_id": "..."}

`details` carries the retry context of pipeline errors (claim id, artifact
id, section key, recipient) and is null when there is none.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from claimpacket.api.middleware.request_id import REQUEST_ID_HEADER, resolve_request_id


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def request_id_for(request: Request) -> str:
    """The middleware's id when it ran, otherwise one resolved from the header.

    Exception handlers for errors raised outside the middleware (e.g. during
    routing) still get an id.
    """
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return request_id
    return resolve_request_id(request.headers.get(REQUEST_ID_HEADER))


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(
        code=code, message=message, details=details, request_id=request_id_for(request)
    )
    return JSONResponse(
        status_code=http_status,
        content=envelope.model_dump(mode="json"),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )


STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
}


def get_error_code_for_status(status_code: int) -> str:
    return STATUS_CODES.get(status_code, "ERROR")
