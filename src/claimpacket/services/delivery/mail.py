"""Mail transports.

- ResendMailTransport: Resend HTTPS API over httpx
- LoggingMailTransport: development provider; logs and returns a synthetic id
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from claimpacket.config import PipelineSettings
from claimpacket.reports.errors import TransportError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class MailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None
    cc: tuple[str, ...] = field(default_factory=tuple)


class MailTransport(Protocol):
    def send(self, message: MailMessage) -> str:
        """Send a message and return the provider's message id.

        Raises:
            TransportError: If the provider rejects or cannot be reached.
        """
        ...


class ResendMailTransport:
    """Sends through the Resend API.

    Pass `client` to reuse a connection pool or to inject a mock transport.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        reply_to: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 20.0,
    ) -> None:
        if not api_key:
            raise ValueError("Resend API key is required")
        self._api_key = api_key
        self._sender = sender
        self._reply_to = reply_to
        self._client = client
        self._timeout = timeout

    def _post(self, client: httpx.Client, payload: dict[str, object]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        return client.post(RESEND_API_URL, json=payload, headers=headers)

    def send(self, message: MailMessage) -> str:
        payload: dict[str, object] = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        if message.cc:
            payload["cc"] = list(message.cc)
        if self._reply_to:
            payload["reply_to"] = self._reply_to

        try:
            if self._client is not None:
                resp = self._post(self._client, payload)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    resp = self._post(client, payload)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Resend request failed: {e}", context={"recipient": message.to}
            ) from e

        if resp.status_code >= 400:
            raise TransportError(
                f"Resend email failed: {resp.status_code} {resp.text[:200]}",
                context={"recipient": message.to},
            )
        try:
            message_id = resp.json().get("id") or ""
        except ValueError:
            message_id = ""
        logger.info("Email sent via resend: id=%s", message_id)
        return str(message_id)


class LoggingMailTransport:
    """Development transport. Nothing leaves the process."""

    def __init__(self) -> None:
        self.sent: list[MailMessage] = []

    def send(self, message: MailMessage) -> str:
        message_id = f"dev-{uuid.uuid4()}"
        self.sent.append(message)
        logger.info("Dev mail transport: id=%s subject=%r", message_id, message.subject)
        return message_id


def create_mail_transport(settings: PipelineSettings) -> MailTransport:
    """Build the transport selected by settings.mail_provider."""
    if settings.mail_provider == "resend":
        return ResendMailTransport(
            settings.resend_api_key,
            settings.mail_from,
            reply_to=settings.mail_reply_to,
        )
    return LoggingMailTransport()
