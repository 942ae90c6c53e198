"""S3-compatible object storage backend (boto3).

Buckets map one-to-one onto S3 buckets. Public URLs are built from the
configured storage base URL so a CDN or bucket website endpoint can front
the exports.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from claimpacket.storage.errors import ObjectNotFoundError, StorageBackendError
from claimpacket.storage.models import StoredObject, StoredObjectMetadata
from claimpacket.storage.object_store import ObjectStore, compute_sha256, validate_location
from claimpacket.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3ObjectStore(ObjectStore):
    """Object store backed by S3 (or any S3-compatible endpoint)."""

    def __init__(self, public_base_url: str, client: Any | None = None) -> None:
        """Initialize the S3 backend.

        Args:
            public_base_url: Base URL objects are served from.
            client: Optional preconfigured boto3 S3 client; defaults to
                boto3.client("s3") using the standard AWS environment.
        """
        self._client = client if client is not None else boto3.client("s3")
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def backend_name(self) -> str:
        return "s3"

    @traced_storage_operation("upload")
    def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        validate_location(bucket, key)
        sha256 = compute_sha256(data)
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "Metadata": {"sha256": sha256},
        }
        if content_type:
            params["ContentType"] = content_type

        try:
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed: bucket=%s error=%s", bucket, e)
            raise StorageBackendError(
                message=f"S3 upload failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

        return StoredObjectMetadata(
            bucket=bucket,
            key=key,
            sha256=sha256,
            size_bytes=len(data),
            content_type=content_type,
            public_url=f"{self._public_base_url}/{bucket}/{key}",
            created_at=datetime.now(UTC),
        )

    @traced_storage_operation("get")
    def get(self, bucket: str, key: str) -> StoredObject:
        validate_location(bucket, key)
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket=bucket, key=key) from e
            raise StorageBackendError(
                message=f"S3 read failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"S3 read failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

        last_modified = response.get("LastModified") or datetime.now(UTC)
        metadata = StoredObjectMetadata(
            bucket=bucket,
            key=key,
            sha256=response.get("Metadata", {}).get("sha256") or compute_sha256(body),
            size_bytes=len(body),
            content_type=response.get("ContentType"),
            public_url=f"{self._public_base_url}/{bucket}/{key}",
            created_at=last_modified,
        )
        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("delete")
    def delete(self, bucket: str, key: str) -> None:
        # S3 delete_object succeeds on missing keys, so probe first to keep
        # the ObjectNotFoundError contract.
        validate_location(bucket, key)
        try:
            self._client.head_object(Bucket=bucket, Key=key)
            self._client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket=bucket, key=key) from e
            raise StorageBackendError(
                message=f"S3 delete failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"S3 delete failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
