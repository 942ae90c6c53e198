"""Filesystem object storage backend.

Provides local storage for development and testing with:
- Bucket directories under a single base directory
- Path traversal protection
- SHA256 content hashing
- Atomic writes through temp files

Environment Variables:
    CLAIMPACKET_OBJECT_STORE_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / claimpacket_objects)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path

from claimpacket.config import OBJECT_STORE_BASE_DIR_ENV
from claimpacket.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from claimpacket.storage.models import StoredObject, StoredObjectMetadata
from claimpacket.storage.object_store import ObjectStore, compute_sha256, validate_location
from claimpacket.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_METADATA_SUFFIX = ".meta.json"


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    Objects are stored as:
        {base_dir}/{bucket}/{key}             # content
        {base_dir}/{bucket}/{key}.meta.json   # metadata

    Public URLs are built as {public_base_url}/{bucket}/{key}.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        public_base_url: str = "http://localhost:8000/files",
    ) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                CLAIMPACKET_OBJECT_STORE_BASE_DIR or the OS temp directory.
            public_base_url: Base URL objects are served from.
        """
        if base_dir is None:
            base_dir = os.environ.get(OBJECT_STORE_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "claimpacket_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        self._public_base_url = public_base_url.rstrip("/")
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _object_path(self, bucket: str, key: str) -> Path:
        """Resolve the content path for bucket/key, refusing anything outside base_dir."""
        validate_location(bucket, key)
        path = (self._base_dir / bucket / key).resolve()
        try:
            path.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                bucket=bucket,
                key=key,
            ) from e
        return path

    def _atomic_write(self, target: Path, data: bytes, bucket: str, key: str) -> None:
        tmp_file = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_file.write_bytes(data)
            tmp_file.replace(target)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("upload")
    def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        """Store an object."""
        path = self._object_path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create bucket directory: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        metadata = StoredObjectMetadata(
            bucket=bucket,
            key=key,
            sha256=compute_sha256(data),
            size_bytes=len(data),
            content_type=content_type,
            public_url=f"{self._public_base_url}/{bucket}/{key}",
            created_at=datetime.now(UTC),
        )

        self._atomic_write(path, data, bucket, key)
        meta_path = path.with_name(path.name + _METADATA_SUFFIX)
        self._atomic_write(
            meta_path, json.dumps(metadata.to_dict(), indent=2).encode("utf-8"), bucket, key
        )

        logger.debug(
            "Stored object: bucket=%s key=%s sha256=%s", bucket, key, metadata.sha256
        )
        return metadata

    @traced_storage_operation("get")
    def get(self, bucket: str, key: str) -> StoredObject:
        """Retrieve an object."""
        path = self._object_path(bucket, key)
        meta_path = path.with_name(path.name + _METADATA_SUFFIX)
        if not path.exists() or not meta_path.exists():
            raise ObjectNotFoundError(bucket=bucket, key=key)

        try:
            body = path.read_bytes()
            metadata = StoredObjectMetadata.from_dict(
                json.loads(meta_path.read_text(encoding="utf-8"))
            )
        except (OSError, json.JSONDecodeError, KeyError) as e:
            raise StorageBackendError(
                message=f"Failed to read object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("delete")
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object."""
        path = self._object_path(bucket, key)
        if not path.exists():
            raise ObjectNotFoundError(bucket=bucket, key=key)

        try:
            path.unlink()
            path.with_name(path.name + _METADATA_SUFFIX).unlink(missing_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        logger.debug("Deleted object: bucket=%s key=%s", bucket, key)
