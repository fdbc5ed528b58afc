"""Transport-agnostic contract for bucket/key object persistence."""

from __future__ import annotations

from typing import BinaryIO, Mapping, Protocol

from pydantic import BaseModel, ConfigDict


class ObjectStoreError(Exception):
    """Raised when the backing store rejects or fails an operation."""


class ObjectNotFoundError(ObjectStoreError):
    """Raised when a bucket/key pair does not exist."""


class ObjectStoreHealthStatus(BaseModel):
    """Object store readiness payload."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ready: bool
    detail: str


class StoredObject(BaseModel):
    """Location and entity tag of one persisted object."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    bucket: str
    key: str
    url: str
    etag: str


class ObjectStore(Protocol):
    """Protocol for bucket/key object persistence operations."""

    def health(self) -> ObjectStoreHealthStatus:
        """Probe backend readiness."""

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
        """Persist ``size`` bytes read from ``stream`` under bucket/key."""

    def get_object(self, *, bucket: str, key: str) -> bytes:
        """Return object content; raise ``ObjectNotFoundError`` when absent."""

    def delete_object(self, *, bucket: str, key: str) -> None:
        """Delete one object; deleting a missing object is not an error."""

    def presign_get(self, *, bucket: str, key: str, expires_in_seconds: int) -> str:
        """Return a time-limited download URL."""

    def object_exists(self, *, bucket: str, key: str) -> bool:
        """Return whether bucket/key currently holds an object."""
