"""Object storage data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class StoredObjectMetadata:
    """Metadata for a stored object.

    Attributes:
        bucket: Bucket the object lives in.
        key: Object key within the bucket.
        sha256: SHA256 hash of the object content (hex string).
        size_bytes: Size of the object content in bytes.
        content_type: MIME type of the content (e.g., "application/pdf").
        public_url: URL the object is served from.
        created_at: Timestamp when the object was written.
    """

    bucket: str
    key: str
    sha256: str
    size_bytes: int
    content_type: str | None
    public_url: str
    created_at: datetime

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert metadata to dictionary for JSON serialization."""
        return {
            "bucket": self.bucket,
            "key": self.key,
            "sha256": self.sha256,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "public_url": self.public_url,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | None]) -> StoredObjectMetadata:
        """Create metadata from dictionary."""
        size_bytes_raw = data.get("size_bytes")
        content_type_raw = data.get("content_type")
        return cls(
            bucket=str(data["bucket"]),
            key=str(data["key"]),
            sha256=str(data["sha256"]),
            size_bytes=int(size_bytes_raw) if size_bytes_raw is not None else 0,
            content_type=str(content_type_raw) if content_type_raw else None,
            public_url=str(data["public_url"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )


@dataclass(frozen=True)
class StoredObject:
    """A stored object with metadata and body content."""

    metadata: StoredObjectMetadata
    body: bytes
