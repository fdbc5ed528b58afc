"""Filesystem-backed object store with atomic safe-write semantics."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import BinaryIO, Mapping

from resources.substrates.object_store.config import ObjectStoreSettings
from resources.substrates.object_store.substrate import (
    ObjectNotFoundError,
    ObjectStoreError,
    ObjectStoreHealthStatus,
    StoredObject,
)

_COPY_CHUNK_BYTES = 1024 * 1024


class LocalFilesystemObjectStore:
    """Keep objects at ``<root>/<bucket>/<key>`` on local disk.

    Writes land in a sibling temp file and are moved into place with
    ``os.replace``, so readers never observe a partial object. The etag is the
    md5 of the content, matching S3 for single-part uploads.
    """

    provider = "filesystem"

    def __init__(self, *, settings: ObjectStoreSettings) -> None:
        self._settings = settings
        self._root = settings.root_path()

    def health(self) -> ObjectStoreHealthStatus:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            if not self._root.is_dir():
                return ObjectStoreHealthStatus(
                    ready=False,
                    detail=f"root path is not a directory: {self._root}",
                )
        except OSError as exc:
            return ObjectStoreHealthStatus(
                ready=False,
                detail=f"filesystem probe failed: {type(exc).__name__}",
            )
        return ObjectStoreHealthStatus(ready=True, detail="ok")

    def resolve_path(self, *, bucket: str, key: str) -> Path:
        """Map bucket/key onto a path that cannot escape the root."""
        parts = [bucket, *key.split("/")]
        if "/" in bucket or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"invalid object location: {bucket}/{key}")
        return self._root.joinpath(*parts)

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
        del content_type, metadata
        path = self.resolve_path(bucket=bucket, key=key)
        tmp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            digest = hashlib.md5(usedforsecurity=False)
            written = 0
            with NamedTemporaryFile(
                mode="wb",
                prefix=f".{self._settings.temp_prefix}-",
                suffix=".tmp",
                dir=path.parent,
                delete=False,
            ) as handle:
                tmp_path = Path(handle.name)
                while chunk := stream.read(_COPY_CHUNK_BYTES):
                    digest.update(chunk)
                    handle.write(chunk)
                    written += len(chunk)
                handle.flush()
                if self._settings.fsync_writes:
                    os.fsync(handle.fileno())

            if written != size:
                raise ObjectStoreError(
                    f"short write for {bucket}/{key}: expected {size} bytes, got {written}"
                )
            os.replace(tmp_path, path)
        except OSError as exc:
            raise ObjectStoreError(f"failed to write {bucket}/{key}") from exc
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)

        return StoredObject(
            provider=self.provider,
            bucket=bucket,
            key=key,
            url=self._object_url(path, bucket, key),
            etag=digest.hexdigest(),
        )

    def get_object(self, *, bucket: str, key: str) -> bytes:
        path = self.resolve_path(bucket=bucket, key=key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"object not found: {bucket}/{key}") from exc
        except OSError as exc:
            raise ObjectStoreError(f"failed to read {bucket}/{key}") from exc

    def delete_object(self, *, bucket: str, key: str) -> None:
        path = self.resolve_path(bucket=bucket, key=key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise ObjectStoreError(f"failed to delete {bucket}/{key}") from exc

    def presign_get(self, *, bucket: str, key: str, expires_in_seconds: int) -> str:
        # Local files carry no signature; expiry is ignored.
        del expires_in_seconds
        path = self.resolve_path(bucket=bucket, key=key)
        if not path.is_file():
            raise ObjectNotFoundError(f"object not found: {bucket}/{key}")
        return self._object_url(path, bucket, key)

    def object_exists(self, *, bucket: str, key: str) -> bool:
        return self.resolve_path(bucket=bucket, key=key).is_file()

    def _object_url(self, path: Path, bucket: str, key: str) -> str:
        if self._settings.public_base_url is not None:
            return f"{self._settings.public_base_url}/{bucket}/{key}"
        return path.as_uri()
