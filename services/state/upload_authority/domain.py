"""Domain contracts for Upload Authority Service records and payloads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UploadStatus(str, Enum):
    """Lifecycle states of one upload request."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class FileStatus(str, Enum):
    """Lifecycle states of one file metadata record."""

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class OutcomeStatus(str, Enum):
    """Caller-visible status of a submission or status query."""

    ACCEPTED = "ACCEPTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class UploadDescriptor(BaseModel):
    """Validated description of the bytes behind one upload request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    original_filename: str
    content_type: str
    size_bytes: int
    checksum: str
    metadata: dict[str, str] = Field(default_factory=dict)


class FailureReason(BaseModel):
    """Code and message recorded when a request transitions to FAILED."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    message: str


class UploadRequest(BaseModel):
    """Authoritative record tracking one (client_id, upload_id) submission."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    client_id: str
    upload_id: str
    status: UploadStatus
    attempt_count: int
    checksum: str
    file_metadata_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    original_filename: str
    content_type: str
    size_bytes: int
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class StorageInfo(BaseModel):
    """Where the bytes of one file live in the object store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    bucket: str
    key: str
    url: str
    etag: str


class FileMetadata(BaseModel):
    """Metadata for one stored file; ``storage`` is absent while provisional."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    client_id: str
    upload_request_id: str
    upload_id: str
    original_filename: str
    checksum: str
    size_bytes: int
    content_type: str
    storage: StorageInfo | None = None
    status: FileStatus
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class OutcomeError(BaseModel):
    """Failure detail attached to FAILED outcomes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    message: str
    occurred_at: datetime


class UploadOutcome(BaseModel):
    """Result of a submission or status query, derived from persisted state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: OutcomeStatus
    upload_request_id: str
    file_metadata_id: str | None = None
    file_url: str | None = None
    checksum: str
    original_filename: str
    size_bytes: int
    attempt_count: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    deduplicated: bool = False
    message: str
    error: OutcomeError | None = None


class DownloadResult(BaseModel):
    """File metadata plus the full stored content."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    file: FileMetadata
    content: bytes
    content_type: str
    content_length: int


class PresignedUrl(BaseModel):
    """Time-limited download URL for one completed file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    file_metadata_id: str
    url: str
    expiration_minutes: int
    expires_at: datetime


class SweepReport(BaseModel):
    """Counters from one reclaimer sweep."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sweep: str
    examined: int = 0
    affected: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime
    finished_at: datetime


class HealthStatus(BaseModel):
    """Service and owned dependency readiness."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service_ready: bool
    repository_ready: bool
    object_store_ready: bool
    detail: str
