"""Data-layer exports for the Upload Authority Service."""

from services.state.upload_authority.data.repository import (
    PostgresFileMetadataRepository,
    PostgresUploadRequestRepository,
)
from services.state.upload_authority.data.runtime import UploadPostgresRuntime

__all__ = [
    "PostgresFileMetadataRepository",
    "PostgresUploadRequestRepository",
    "UploadPostgresRuntime",
]
