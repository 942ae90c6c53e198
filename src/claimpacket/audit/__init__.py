"""Append-only operational audit log for report generation and artifact edits."""

from claimpacket.audit.sink import (
    AuditSink,
    AuditSinkError,
    InMemoryAuditSink,
    JsonlFileAuditSink,
    build_audit_event,
)

__all__ = [
    "AuditSink",
    "AuditSinkError",
    "InMemoryAuditSink",
    "JsonlFileAuditSink",
    "build_audit_event",
]
