"""Upload Authority Service native package exports."""

from packages.stowage_shared.envelope import Envelope, EnvelopeKind, EnvelopeMeta
from packages.stowage_shared.errors import ErrorCategory, ErrorDetail
from services.state.upload_authority.component import SERVICE_COMPONENT_ID
from services.state.upload_authority.config import UploadAuthoritySettings
from services.state.upload_authority.domain import (
    DownloadResult,
    FileMetadata,
    OutcomeStatus,
    PresignedUrl,
    UploadOutcome,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.implementation import (
    DefaultUploadAuthorityService,
)
from services.state.upload_authority.service import (
    UploadAuthorityService,
    build_upload_authority_service,
)

__all__ = [
    "SERVICE_COMPONENT_ID",
    "DefaultUploadAuthorityService",
    "DownloadResult",
    "Envelope",
    "EnvelopeKind",
    "EnvelopeMeta",
    "ErrorCategory",
    "ErrorDetail",
    "FileMetadata",
    "OutcomeStatus",
    "PresignedUrl",
    "UploadAuthorityService",
    "UploadAuthoritySettings",
    "UploadOutcome",
    "UploadRequest",
    "UploadStatus",
    "build_upload_authority_service",
]
