"""Delivery & Audit: recipient links, mail transports, timeline records."""

from claimpacket.services.delivery.links import AccessGrant, AccessLinkSigner
from claimpacket.services.delivery.mail import (
    LoggingMailTransport,
    MailMessage,
    MailTransport,
    ResendMailTransport,
    create_mail_transport,
)
from claimpacket.services.delivery.service import DeliveryResult, DeliveryService

__all__ = [
    "AccessGrant",
    "AccessLinkSigner",
    "DeliveryResult",
    "DeliveryService",
    "LoggingMailTransport",
    "MailMessage",
    "MailTransport",
    "ResendMailTransport",
    "create_mail_transport",
]
