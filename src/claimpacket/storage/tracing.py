"""OpenTelemetry tracing for object storage operations.

Spans carry the bucket, the backend name and the SHA256 of the key; raw keys
embed org and claim ids and are never exported.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from claimpacket.storage.models import StoredObject, StoredObjectMetadata

logger = logging.getLogger(__name__)

OTEL_ENABLED_ENV = "CLAIMPACKET_OTEL_ENABLED"

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _is_otel_enabled() -> bool:
    return _get_env_bool(OTEL_ENABLED_ENV, False)


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "upload", "get", "delete").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, bucket: str, key: str, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, bucket, key, *args, **kwargs)

            tracer = trace.get_tracer("claimpacket.object_store")
            with tracer.start_as_current_span(f"claimpacket.object_store.{operation}") as span:
                span.set_attribute("storage.bucket", bucket)
                span.set_attribute(
                    "claimpacket.object_key_sha256",
                    hashlib.sha256(key.encode("utf-8")).hexdigest(),
                )
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                try:
                    result = func(self, bucket, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                if result is not None:
                    _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add sha256/size attributes from a storage result. Never adds URLs or paths."""
    metadata: StoredObjectMetadata | None = None
    if isinstance(result, StoredObjectMetadata):
        metadata = result
    elif isinstance(result, StoredObject):
        metadata = result.metadata

    if metadata is not None:
        span.set_attribute("claimpacket.object_sha256", metadata.sha256)
        span.set_attribute("claimpacket.object_size_bytes", metadata.size_bytes)
        if metadata.content_type:
            span.set_attribute("claimpacket.object_content_type", metadata.content_type)
