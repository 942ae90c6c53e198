"""Signed recipient access links.

The email carries a link to the report rather than the PDF itself. Links are
HMAC-SHA256 signed over (artifact id, recipient type, expiry). Adjuster and
homeowner packet links never expire; custom-recipient links carry `exp`.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from claimpacket.models.timeline import RecipientType
from claimpacket.reports.errors import ValidationError

SHARE_PATH_PREFIX = "/share/reports/"


@dataclass(frozen=True)
class AccessGrant:
    artifact_id: str
    recipient_type: RecipientType
    expires_at: datetime | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AccessLinkSigner:
    """Builds and verifies recipient access links."""

    def __init__(
        self,
        secret: str,
        base_url: str,
        *,
        custom_ttl_seconds: int,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret:
            raise ValueError("Access link secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._base_url = base_url.rstrip("/")
        self._custom_ttl = timedelta(seconds=custom_ttl_seconds)
        self._clock = clock or _utcnow

    def _signature(self, artifact_id: str, recipient_type: str, exp: str) -> str:
        payload = f"{artifact_id}|{recipient_type}|{exp}".encode()
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def link_for(self, artifact_id: str, recipient_type: RecipientType) -> str:
        exp = ""
        if recipient_type == RecipientType.CUSTOM:
            exp = str(int((self._clock() + self._custom_ttl).timestamp()))

        params = {"r": recipient_type.value}
        if exp:
            params["exp"] = exp
        params["sig"] = self._signature(artifact_id, recipient_type.value, exp)
        path = f"{SHARE_PATH_PREFIX}{quote(artifact_id, safe='')}"
        return f"{self._base_url}{path}?{urlencode(params)}"

    def verify(self, url: str) -> AccessGrant:
        """Check a link's signature and expiry.

        Raises:
            ValidationError: If the link is malformed, tampered with, or expired.
        """
        parts = urlsplit(url)
        if not parts.path.startswith(SHARE_PATH_PREFIX):
            raise ValidationError("Not a report access link")
        artifact_id = unquote(parts.path[len(SHARE_PATH_PREFIX) :])
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}

        try:
            recipient_type = RecipientType(query.get("r", ""))
        except ValueError as e:
            raise ValidationError("Access link has an unknown recipient type") from e

        exp = query.get("exp", "")
        expected = self._signature(artifact_id, recipient_type.value, exp)
        if not hmac.compare_digest(expected, query.get("sig", "")):
            raise ValidationError(
                "Access link signature is invalid", context={"artifact_id": artifact_id}
            )

        expires_at = None
        if exp:
            try:
                expires_at = datetime.fromtimestamp(int(exp), tz=UTC)
            except ValueError as e:
                raise ValidationError("Access link expiry is malformed") from e
            if expires_at <= self._clock():
                raise ValidationError(
                    "Access link has expired", context={"artifact_id": artifact_id}
                )
        elif recipient_type == RecipientType.CUSTOM:
            raise ValidationError("Custom access links must carry an expiry")

        return AccessGrant(artifact_id, recipient_type, expires_at)
