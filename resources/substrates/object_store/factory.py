"""Construct the configured object store backend."""

from __future__ import annotations

from typing import Any

from resources.substrates.object_store.config import ObjectStoreSettings
from resources.substrates.object_store.filesystem_substrate import (
    LocalFilesystemObjectStore,
)
from resources.substrates.object_store.s3_substrate import S3ObjectStore
from resources.substrates.object_store.substrate import ObjectStore


def build_object_store(
    *, settings: ObjectStoreSettings, s3_client: Any | None = None
) -> ObjectStore:
    """Return the backend selected by ``settings.backend``."""
    if settings.backend == "filesystem":
        return LocalFilesystemObjectStore(settings=settings)
    return S3ObjectStore(settings=settings, client=s3_client)
