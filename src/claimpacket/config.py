"""Runtime configuration for the claimpacket pipeline.

All settings come from environment variables; constructor arguments win
over the environment so tests can pin values without monkeypatching.

Environment Variables:
    CLAIMPACKET_OBJECT_STORE_BACKEND: "filesystem" or "s3" (default: "filesystem")
    CLAIMPACKET_OBJECT_STORE_BASE_DIR: Base directory for the filesystem backend
    CLAIMPACKET_PUBLIC_BASE_URL: Base URL for recipient access links
    CLAIMPACKET_STORAGE_PUBLIC_BASE_URL: Base URL that stored objects are served from
    CLAIMPACKET_EXPORTS_BUCKET: Bucket for rendered PDFs (default: "exports")
    CLAIMPACKET_THUMBNAILS_BUCKET: Bucket for thumbnails (default: "thumbnails")
    CLAIMPACKET_RENDER_TIMEOUT_SECONDS: Upper bound for binary rendering (default: 60)
    CLAIMPACKET_MAIL_PROVIDER: "dev" or "resend" (default: "dev")
    CLAIMPACKET_RESEND_API_KEY: API key for the Resend transport
    CLAIMPACKET_MAIL_FROM: Sender address
    CLAIMPACKET_MAIL_REPLY_TO: Optional reply-to address
    CLAIMPACKET_LINK_SIGNING_SECRET: HMAC secret for access links
    CLAIMPACKET_CUSTOM_LINK_TTL_SECONDS: Expiry for "custom" recipient links (default: 7 days)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

OBJECT_STORE_BACKEND_ENV = "CLAIMPACKET_OBJECT_STORE_BACKEND"
OBJECT_STORE_BASE_DIR_ENV = "CLAIMPACKET_OBJECT_STORE_BASE_DIR"
PUBLIC_BASE_URL_ENV = "CLAIMPACKET_PUBLIC_BASE_URL"
STORAGE_PUBLIC_BASE_URL_ENV = "CLAIMPACKET_STORAGE_PUBLIC_BASE_URL"
EXPORTS_BUCKET_ENV = "CLAIMPACKET_EXPORTS_BUCKET"
THUMBNAILS_BUCKET_ENV = "CLAIMPACKET_THUMBNAILS_BUCKET"
RENDER_TIMEOUT_ENV = "CLAIMPACKET_RENDER_TIMEOUT_SECONDS"
MAIL_PROVIDER_ENV = "CLAIMPACKET_MAIL_PROVIDER"
RESEND_API_KEY_ENV = "CLAIMPACKET_RESEND_API_KEY"
MAIL_FROM_ENV = "CLAIMPACKET_MAIL_FROM"
MAIL_REPLY_TO_ENV = "CLAIMPACKET_MAIL_REPLY_TO"
LINK_SIGNING_SECRET_ENV = "CLAIMPACKET_LINK_SIGNING_SECRET"
CUSTOM_LINK_TTL_ENV = "CLAIMPACKET_CUSTOM_LINK_TTL_SECONDS"

DEFAULT_RENDER_TIMEOUT_SECONDS = 60.0
DEFAULT_CUSTOM_LINK_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
DEFAULT_MAIL_FROM = "reports@claimpacket.local"


class ConfigurationError(Exception):
    """Raised when a required setting is missing or malformed."""

    pass


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _get_env_float(key: str, default: float) -> float:
    """Get a positive float from environment variable."""
    raw = _get_env_str(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get a positive integer from environment variable."""
    return int(_get_env_float(key, float(default)))


@dataclass(frozen=True)
class PipelineSettings:
    """Resolved pipeline settings.

    Attributes:
        object_store_backend: "filesystem" or "s3".
        object_store_base_dir: Base directory for the filesystem backend, or None
            for the OS temp directory.
        public_base_url: Base URL used for recipient access links.
        storage_public_base_url: Base URL stored objects are served from.
        exports_bucket: Bucket for rendered PDFs.
        thumbnails_bucket: Bucket for thumbnail PNGs.
        render_timeout_seconds: Upper bound for a single binary render.
        mail_provider: "dev" (log only) or "resend".
        resend_api_key: API key for the Resend transport.
        mail_from: Sender address for delivery emails.
        mail_reply_to: Optional reply-to address.
        link_signing_secret: HMAC secret for recipient access links.
        custom_link_ttl_seconds: Expiry applied to "custom" recipient links.
    """

    object_store_backend: str = "filesystem"
    object_store_base_dir: str | None = None
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    storage_public_base_url: str = f"{DEFAULT_PUBLIC_BASE_URL}/files"
    exports_bucket: str = "exports"
    thumbnails_bucket: str = "thumbnails"
    render_timeout_seconds: float = DEFAULT_RENDER_TIMEOUT_SECONDS
    mail_provider: str = "dev"
    resend_api_key: str = ""
    mail_from: str = DEFAULT_MAIL_FROM
    mail_reply_to: str | None = None
    link_signing_secret: str = "dev-link-secret"
    custom_link_ttl_seconds: int = DEFAULT_CUSTOM_LINK_TTL_SECONDS

    @classmethod
    def from_env(cls) -> PipelineSettings:
        """Build settings from CLAIMPACKET_* environment variables.

        Raises:
            ConfigurationError: If a value is malformed or the selected
                backend/provider is unknown.
        """
        backend = _get_env_str(OBJECT_STORE_BACKEND_ENV, "filesystem").lower()
        if backend not in ("filesystem", "s3"):
            raise ConfigurationError(f"Unsupported object store backend: {backend}")

        provider = _get_env_str(MAIL_PROVIDER_ENV, "dev").lower()
        if provider not in ("dev", "resend"):
            raise ConfigurationError(f"Unsupported mail provider: {provider}")

        public_base_url = _get_env_str(PUBLIC_BASE_URL_ENV, DEFAULT_PUBLIC_BASE_URL).rstrip("/")
        secret = _get_env_str(LINK_SIGNING_SECRET_ENV)
        if not secret:
            logger.warning(
                "%s is not set; using the development link secret", LINK_SIGNING_SECRET_ENV
            )
            secret = "dev-link-secret"

        return cls(
            object_store_backend=backend,
            object_store_base_dir=_get_env_str(OBJECT_STORE_BASE_DIR_ENV) or None,
            public_base_url=public_base_url,
            storage_public_base_url=_get_env_str(
                STORAGE_PUBLIC_BASE_URL_ENV, f"{public_base_url}/files"
            ).rstrip("/"),
            exports_bucket=_get_env_str(EXPORTS_BUCKET_ENV, "exports"),
            thumbnails_bucket=_get_env_str(THUMBNAILS_BUCKET_ENV, "thumbnails"),
            render_timeout_seconds=_get_env_float(
                RENDER_TIMEOUT_ENV, DEFAULT_RENDER_TIMEOUT_SECONDS
            ),
            mail_provider=provider,
            resend_api_key=_get_env_str(RESEND_API_KEY_ENV),
            mail_from=_get_env_str(MAIL_FROM_ENV, DEFAULT_MAIL_FROM),
            mail_reply_to=_get_env_str(MAIL_REPLY_TO_ENV) or None,
            link_signing_secret=secret,
            custom_link_ttl_seconds=_get_env_int(
                CUSTOM_LINK_TTL_ENV, DEFAULT_CUSTOM_LINK_TTL_SECONDS
            ),
        )
