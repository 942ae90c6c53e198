"""API-key tenant resolution.

The pipeline trusts an already-resolved (org_id, actor_id) pair; this module
is the resolver for the HTTP surface. Keys are configured as JSON in
CLAIMPACKET_API_KEYS_JSON:

    {"<api key>": {"org_id": "org-1", "actor_id": "svc-reports", "name": "Reports"}}

Fails closed on missing or invalid credentials. Errors do not reveal whether
an organization exists.
"""

import hmac
import json
import logging
import os
from typing import Annotated

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError

from claimpacket.api.errors import ClaimpacketHttpError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEYS_ENV = "CLAIMPACKET_API_KEYS_JSON"


class TenantContext(BaseModel):
    """Resolved caller identity."""

    org_id: str
    actor_id: str
    name: str | None = None


class ApiKeyRecord(BaseModel):
    """API key registry entry.

    actor_id is a stable, non-secret identifier for the key holder; it is
    recorded as the actor on artifacts, audit events and timeline entries.
    """

    org_id: str
    actor_id: str
    name: str | None = None


def _load_api_key_registry() -> dict[str, ApiKeyRecord]:
    """Load the API key registry from the environment.

    Returns an empty dict if the variable is missing or invalid.
    """
    raw = os.environ.get(API_KEYS_ENV)
    if not raw:
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse %s; treating as empty registry", API_KEYS_ENV)
        return {}

    if not isinstance(parsed, dict):
        logger.warning("%s is not a dict; treating as empty registry", API_KEYS_ENV)
        return {}

    registry: dict[str, ApiKeyRecord] = {}
    for key, value in parsed.items():
        if not isinstance(key, str) or not isinstance(value, dict):
            continue
        try:
            registry[key] = ApiKeyRecord.model_validate(value)
        except ValidationError:
            continue

    return registry


def _constant_time_lookup(
    provided_key: str, registry: dict[str, ApiKeyRecord]
) -> ApiKeyRecord | None:
    """Compare against every key with hmac.compare_digest so timing does not leak matches."""
    matched_record: ApiKeyRecord | None = None
    provided_bytes = provided_key.encode("utf-8")

    for registered_key, record in registry.items():
        if hmac.compare_digest(provided_bytes, registered_key.encode("utf-8")):
            matched_record = record

    return matched_record


def _unauthorized(message: str) -> ClaimpacketHttpError:
    return ClaimpacketHttpError(status_code=401, code="UNAUTHORIZED", message=message)


async def require_tenant_context(request: Request) -> TenantContext:
    """FastAPI dependency that resolves the caller's organization.

    Raises:
        ClaimpacketHttpError: 401 if the key is missing or not registered.
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        raise _unauthorized("Missing API key")

    record = _constant_time_lookup(api_key, _load_api_key_registry())
    if record is None:
        raise _unauthorized("Invalid API key")

    tenant_ctx = TenantContext(org_id=record.org_id, actor_id=record.actor_id, name=record.name)
    request.state.tenant_context = tenant_ctx
    return tenant_ctx


RequireTenantContext = Annotated[TenantContext, Depends(require_tenant_context)]
