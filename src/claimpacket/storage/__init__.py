"""Durable object storage for rendered reports and thumbnails.

Backends:
- FilesystemObjectStore: Local filesystem (dev/test)
- S3ObjectStore: AWS S3 compatible (production)
"""

from claimpacket.config import PipelineSettings
from claimpacket.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from claimpacket.storage.models import StoredObject, StoredObjectMetadata
from claimpacket.storage.object_store import ObjectStore


def create_object_store(settings: PipelineSettings) -> ObjectStore:
    """Build the object store selected by settings.object_store_backend."""
    if settings.object_store_backend == "s3":
        from claimpacket.storage.s3_store import S3ObjectStore

        return S3ObjectStore(public_base_url=settings.storage_public_base_url)

    from claimpacket.storage.filesystem_store import FilesystemObjectStore

    return FilesystemObjectStore(
        base_dir=settings.object_store_base_dir,
        public_base_url=settings.storage_public_base_url,
    )


__all__ = [
    "ObjectStore",
    "StoredObject",
    "StoredObjectMetadata",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "PathTraversalError",
    "StorageBackendError",
    "create_object_store",
]
