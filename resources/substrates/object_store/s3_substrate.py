"""S3-compatible object store backed by a boto3 client."""

from __future__ import annotations

from typing import Any, BinaryIO, Mapping

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from packages.stowage_shared.logging import get_logger
from resources.substrates.object_store.config import ObjectStoreSettings
from resources.substrates.object_store.substrate import (
    ObjectNotFoundError,
    ObjectStoreError,
    ObjectStoreHealthStatus,
    StoredObject,
)

_LOGGER = get_logger(__name__)
_MISSING_CODES = frozenset({"404", "NoSuchKey", "NoSuchBucket", "NotFound"})


class S3ObjectStore:
    """Persist objects in an S3-compatible service.

    A preconfigured ``client`` may be injected; otherwise one is built from
    settings with path-style addressing so MinIO-style endpoints work.
    """

    provider = "s3"

    def __init__(self, *, settings: ObjectStoreSettings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client if client is not None else _build_client(settings)
        self._known_buckets: set[str] = set()

    def health(self) -> ObjectStoreHealthStatus:
        try:
            self._client.list_buckets()
        except (BotoCoreError, ClientError) as exc:
            return ObjectStoreHealthStatus(
                ready=False,
                detail=f"s3 probe failed: {type(exc).__name__}",
            )
        return ObjectStoreHealthStatus(ready=True, detail="ok")

    def put_object(
        self,
        *,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> StoredObject:
        self._ensure_bucket(bucket)
        request: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": stream,
            "ContentLength": size,
            "ContentType": content_type,
        }
        if metadata:
            request["Metadata"] = dict(metadata)
        try:
            response = self._client.put_object(**request)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"failed to upload {bucket}/{key}") from exc

        return StoredObject(
            provider=self.provider,
            bucket=bucket,
            key=key,
            url=self._object_url(bucket, key),
            etag=str(response.get("ETag", "")).strip('"'),
        )

    def get_object(self, *, bucket: str, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(f"object not found: {bucket}/{key}") from exc
            raise ObjectStoreError(f"failed to download {bucket}/{key}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"failed to download {bucket}/{key}") from exc

        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def delete_object(self, *, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"failed to delete {bucket}/{key}") from exc

    def presign_get(self, *, bucket: str, key: str, expires_in_seconds: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"failed to presign {bucket}/{key}") from exc

    def object_exists(self, *, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise ObjectStoreError(f"failed to stat {bucket}/{key}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"failed to stat {bucket}/{key}") from exc
        return True

    def _ensure_bucket(self, bucket: str) -> None:
        """Create ``bucket`` on first use when ``ensure_bucket`` is enabled."""
        if not self._settings.ensure_bucket or bucket in self._known_buckets:
            return
        try:
            self._client.head_bucket(Bucket=bucket)
        except ClientError as exc:
            if _error_code(exc) not in _MISSING_CODES:
                raise ObjectStoreError(f"failed to check bucket {bucket}") from exc
            try:
                self._client.create_bucket(Bucket=bucket)
            except (BotoCoreError, ClientError) as create_exc:
                raise ObjectStoreError(f"failed to create bucket {bucket}") from create_exc
            _LOGGER.info("Created object store bucket %s", bucket)
        except BotoCoreError as exc:
            raise ObjectStoreError(f"failed to check bucket {bucket}") from exc
        self._known_buckets.add(bucket)

    def _object_url(self, bucket: str, key: str) -> str:
        base = self._settings.public_base_url or self._settings.endpoint_url
        if base is None:
            return f"s3://{bucket}/{key}"
        return f"{base}/{bucket}/{key}"


def _build_client(settings: ObjectStoreSettings) -> Any:
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.access_key_id,
        aws_secret_access_key=settings.secret_access_key,
        region_name=settings.region_name,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))
