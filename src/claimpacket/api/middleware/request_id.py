"""Request correlation ids.

Every response carries X-Request-Id. A caller-supplied id is kept only if it
is short and made of safe characters, since it is echoed into headers and
logs; anything else is replaced by a fresh uuid4.
"""

import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def resolve_request_id(incoming: str | None) -> str:
    """Return the caller's id if it is safe to echo, else a new uuid4."""
    if incoming:
        candidate = incoming.strip()
        if _SAFE_REQUEST_ID.match(candidate):
            return candidate
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach request.state.request_id and log one line per request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            "%s %s -> %d (%.1f ms) request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request_id,
        )
        return response
