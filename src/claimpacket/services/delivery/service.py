"""DeliveryService - send a report link to a recipient and record it.

Audit rules:
- Transport failure returns a failed DeliveryResult; nothing is written
- Transport success updates contact timestamps, appends one email_sent
  TimelineEvent, and moves a FINALIZED artifact to SENT
- Content fields and attachments of the artifact are never touched
- No dedup: every successful send gets its own TimelineEvent
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from html import escape

from claimpacket.models.artifact import Artifact, ArtifactStatus
from claimpacket.models.timeline import (
    BODY_PREVIEW_LIMIT,
    EmailSentMetadata,
    RecipientType,
    TimelineEvent,
)
from claimpacket.persistence.repositories.records import ClaimRecordsRepository
from claimpacket.persistence.repositories.timeline import TimelineRepository
from claimpacket.reports.errors import TransportError, ValidationError
from claimpacket.reports.template_merger import FALLBACK_BRANDING
from claimpacket.services.artifacts.service import ArtifactStore
from claimpacket.services.delivery.links import AccessLinkSigner
from claimpacket.services.delivery.mail import MailMessage, MailTransport

logger = logging.getLogger(__name__)

EMAIL_SENT = "email_sent"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_CONTACT_FIELDS: dict[RecipientType, tuple[str, ...]] = {
    RecipientType.ADJUSTER: ("adjuster_packet_sent_at", "last_contacted_at"),
    RecipientType.HOMEOWNER: ("homeowner_packet_sent_at", "last_contacted_at"),
    RecipientType.CUSTOM: ("last_contacted_at",),
}


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt.

    Attributes:
        success: True if the transport accepted the message.
        artifact_id: Artifact that was sent.
        recipient_type: adjuster, homeowner or custom.
        to: Recipient address.
        access_link: Link included in the email.
        message_id: Transport message id on success.
        timeline_event_id: Id of the email_sent event on success.
        artifact_status: Artifact status after delivery.
        error_code: Machine code on failure.
        error_message: Human-readable reason on failure.
    """

    success: bool
    artifact_id: str
    recipient_type: RecipientType
    to: str
    access_link: str
    message_id: str | None = None
    timeline_event_id: str | None = None
    artifact_status: ArtifactStatus | None = None
    error_code: str | None = None
    error_message: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_text(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} must not be empty", context={"field": name})
    return value.strip()


def render_email_html(
    *,
    company_name: str,
    primary_color: str,
    artifact_title: str,
    message: str,
    access_link: str,
) -> str:
    """Branded email body. The user message is escaped; newlines become <br>."""
    body = "<br>".join(escape(line) for line in message.splitlines())
    return (
        '<div style="font-family:Helvetica,Arial,sans-serif;color:#1a1a1a;max-width:600px">'
        f'<div style="background:{escape(primary_color)};color:#ffffff;padding:16px;'
        f'font-size:18px;font-weight:bold">{escape(company_name)}</div>'
        f'<div style="padding:16px"><p>{body}</p>'
        f'<p><a href="{escape(access_link)}" style="display:inline-block;padding:10px 18px;'
        f"background:{escape(primary_color)};color:#ffffff;text-decoration:none;"
        f'border-radius:4px">View {escape(artifact_title)}</a></p>'
        f'<p style="color:#6b7280;font-size:12px">Sent by {escape(company_name)}</p>'
        "</div></div>"
    )


class DeliveryService:
    """Sends artifacts and records the audit trail."""

    def __init__(
        self,
        artifact_store: ArtifactStore,
        records: ClaimRecordsRepository,
        timeline: TimelineRepository,
        transport: MailTransport,
        link_signer: AccessLinkSigner,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._artifact_store = artifact_store
        self._records = records
        self._timeline = timeline
        self._transport = transport
        self._link_signer = link_signer
        self._clock = clock or _utcnow

    def deliver(
        self,
        org_id: str,
        artifact_id: str,
        recipient_type: RecipientType | str,
        to_address: str,
        subject: str,
        message: str,
        *,
        actor_id: str | None = None,
    ) -> DeliveryResult:
        """Email an access link for the artifact.

        Raises:
            ValidationError: If recipient type, address, subject or message is
                missing or malformed.
            NotFoundError: If the artifact or its claim is not in the org.
        """
        try:
            recipient = RecipientType(recipient_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown recipient type: {recipient_type}", context={"field": "recipient_type"}
            ) from e
        to_address = _require_text("to_address", to_address)
        subject = _require_text("subject", subject)
        message = _require_text("message", message)
        if not _EMAIL_RE.match(to_address):
            raise ValidationError(
                "to_address is not a valid email address", context={"recipient": to_address}
            )

        artifact = self._artifact_store.get(org_id, artifact_id)
        branding = self._records.get_branding(org_id)
        company_name = (branding.company_name if branding else None) or "Claim Reports"
        primary_color = (
            (branding.primary_color if branding else None)
            or FALLBACK_BRANDING.primary_color
            or "#000000"
        )

        link = self._link_signer.link_for(artifact.id, recipient)
        mail = MailMessage(
            to=to_address,
            subject=subject,
            html=render_email_html(
                company_name=company_name,
                primary_color=primary_color,
                artifact_title=artifact.title,
                message=message,
                access_link=link,
            ),
            text=f"{message}\n\n{link}\n",
        )

        try:
            message_id = self._transport.send(mail)
        except TransportError as e:
            logger.warning(
                "Delivery failed: artifact=%s recipient_type=%s code=%s",
                artifact.id,
                recipient,
                e.code,
            )
            return DeliveryResult(
                success=False,
                artifact_id=artifact.id,
                recipient_type=recipient,
                to=to_address,
                access_link=link,
                artifact_status=artifact.status,
                error_code=e.code,
                error_message=e.message,
            )

        return self._record_success(
            org_id, artifact, recipient, to_address, subject, message, link, message_id, actor_id
        )

    def _record_success(
        self,
        org_id: str,
        artifact: Artifact,
        recipient: RecipientType,
        to_address: str,
        subject: str,
        message: str,
        link: str,
        message_id: str,
        actor_id: str | None,
    ) -> DeliveryResult:
        sent_at = self._clock()
        # The event goes first: contact timestamps never exist without it.
        event = self._timeline.append(
            TimelineEvent(
                id=str(uuid.uuid4()),
                claim_id=artifact.claim_id,
                org_id=org_id,
                actor_id=actor_id,
                actor_type="user" if actor_id else "system",
                type=EMAIL_SENT,
                description=f"{artifact.title} emailed to {recipient.value} {to_address}",
                metadata=EmailSentMetadata(
                    artifact_id=artifact.id,
                    artifact_title=artifact.title,
                    recipient_type=recipient,
                    to=to_address,
                    subject=subject,
                    body_preview=message[:BODY_PREVIEW_LIMIT],
                    access_link=link,
                    message_id=message_id,
                ),
                created_at=sent_at,
            )
        )

        timestamps = {name: sent_at for name in _CONTACT_FIELDS[recipient]}
        if self._records.record_contact(org_id, artifact.claim_id, timestamps) is None:
            logger.warning(
                "Claim vanished before contact timestamps were recorded: %s", artifact.claim_id
            )

        status = artifact.status
        if artifact.status == ArtifactStatus.FINALIZED:
            status = self._artifact_store.advance_status(
                org_id, artifact.id, ArtifactStatus.SENT
            ).status

        logger.info(
            "Delivered artifact: id=%s recipient_type=%s event=%s",
            artifact.id,
            recipient,
            event.id,
        )
        return DeliveryResult(
            success=True,
            artifact_id=artifact.id,
            recipient_type=recipient,
            to=to_address,
            access_link=link,
            message_id=message_id,
            timeline_event_id=event.id,
            artifact_status=status,
        )
