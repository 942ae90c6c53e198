"""Durable object storage interface.

Every backend exposes the same bucket/key contract used by the Artifact Store:
upload returns metadata including the public URL, delete removes the object.
"""

from __future__ import annotations

import hashlib
import re
from abc import ABC, abstractmethod

from claimpacket.storage.errors import ObjectNotFoundError, PathTraversalError
from claimpacket.storage.models import StoredObject, StoredObjectMetadata

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")
_SAFE_BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]{1,62}$")


def is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences or unsafe characters.

    Detects empty keys, null bytes, backslashes, absolute paths, drive
    letters and ".." segments.
    """
    if not key:
        return True
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    if any(segment in ("..", ".", "") for segment in key.split("/")):
        return True
    return not bool(_SAFE_KEY_PATTERN.match(key))


def validate_location(bucket: str, key: str) -> None:
    """Raise PathTraversalError if bucket or key is unsafe."""
    if not _SAFE_BUCKET_PATTERN.match(bucket):
        raise PathTraversalError(
            message="Invalid bucket name", bucket=bucket, key=key
        )
    if is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            bucket=bucket,
            key=key,
        )


def compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash of data and return as hex string."""
    return hashlib.sha256(data).hexdigest()


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Implementations:
    - FilesystemObjectStore: Local filesystem (dev/test)
    - S3ObjectStore: AWS S3 compatible (production)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        """Store an object, replacing any existing object at the same key.

        Args:
            bucket: Target bucket.
            key: Object key within the bucket.
            data: Object content as bytes.
            content_type: Optional MIME type of the content.

        Returns:
            Metadata for the stored object including sha256 and public_url.

        Raises:
            PathTraversalError: If bucket or key is unsafe.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def get(self, bucket: str, key: str) -> StoredObject:
        """Retrieve an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If bucket or key is unsafe.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If bucket or key is unsafe.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    def exists(self, bucket: str, key: str) -> bool:
        """Return True if an object exists at bucket/key."""
        try:
            self.get(bucket, key)
        except ObjectNotFoundError:
            return False
        return True
