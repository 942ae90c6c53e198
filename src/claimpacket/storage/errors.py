"""Object storage error types.

Backends raise these and nothing else. The Artifact Store turns any of them
into UploadError (fatal for PDFs) or a logged warning (thumbnails, cleanup),
carrying `reason` into the pipeline error's context.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base class; `reason` is a stable short tag for logs and error context."""

    reason = "storage"
    default_message = "Object storage error"

    def __init__(
        self,
        message: str | None = None,
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.bucket = bucket
        self.key = key

    def __str__(self) -> str:
        located = "/".join(part for part in (self.bucket, self.key) if part)
        return f"{self.message} ({located})" if located else self.message


class ObjectNotFoundError(ObjectStorageError):
    reason = "not_found"
    default_message = "Object not found"


class PathTraversalError(ObjectStorageError):
    """Bucket or key would escape the storage root.

    Checked before any backend call: "..", absolute paths, backslashes and
    null bytes are refused.
    """

    reason = "invalid_key"
    default_message = "Invalid key: path traversal detected"


class StorageBackendError(ObjectStorageError):
    """The backend itself failed: disk full, permission denied, S3 error."""

    reason = "backend"
    default_message = "Storage backend error"

    def __init__(
        self,
        message: str | None = None,
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
        self.cause = cause
