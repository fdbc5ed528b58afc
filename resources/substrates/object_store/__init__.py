"""Object store substrate resource exports."""

from resources.substrates.object_store.component import RESOURCE_COMPONENT_ID
from resources.substrates.object_store.config import (
    ObjectStoreSettings,
    resolve_object_store_settings,
)
from resources.substrates.object_store.factory import build_object_store
from resources.substrates.object_store.filesystem_substrate import (
    LocalFilesystemObjectStore,
)
from resources.substrates.object_store.s3_substrate import S3ObjectStore
from resources.substrates.object_store.substrate import (
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreError,
    ObjectStoreHealthStatus,
    StoredObject,
)

__all__ = [
    "RESOURCE_COMPONENT_ID",
    "LocalFilesystemObjectStore",
    "ObjectNotFoundError",
    "ObjectStore",
    "ObjectStoreError",
    "ObjectStoreHealthStatus",
    "ObjectStoreSettings",
    "S3ObjectStore",
    "StoredObject",
    "build_object_store",
    "resolve_object_store_settings",
]
