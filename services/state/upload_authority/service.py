"""Authoritative in-process Python API for the Upload Authority Service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO, Mapping

from packages.stowage_shared.config import StowageSettings
from packages.stowage_shared.envelope import Envelope, EnvelopeMeta
from resources.substrates.object_store import ObjectStore
from services.state.upload_authority.domain import (
    DownloadResult,
    HealthStatus,
    PresignedUrl,
    UploadOutcome,
)


class UploadAuthorityService(ABC):
    """Public API for idempotent uploads and their stored files."""

    @abstractmethod
    def submit_upload(
        self,
        *,
        meta: EnvelopeMeta,
        client_id: str,
        upload_id: str,
        content: BinaryIO,
        size: int,
        content_type: str | None,
        filename: str,
        metadata: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> Envelope[UploadOutcome]:
        """Store one upload exactly once and wait for its outcome."""

    @abstractmethod
    def submit_upload_async(
        self,
        *,
        meta: EnvelopeMeta,
        client_id: str,
        upload_id: str,
        content: BinaryIO,
        size: int,
        content_type: str | None,
        filename: str,
        metadata: Mapping[str, str] | None = None,
    ) -> Envelope[UploadOutcome]:
        """Accept one upload and process it in the background."""

    @abstractmethod
    def get_upload_status(
        self, *, meta: EnvelopeMeta, upload_request_id: str, client_id: str
    ) -> Envelope[UploadOutcome]:
        """Return the current outcome of one upload request."""

    @abstractmethod
    def cancel_upload(
        self, *, meta: EnvelopeMeta, upload_request_id: str, client_id: str
    ) -> Envelope[bool]:
        """Cancel one PENDING or PROCESSING upload request."""

    @abstractmethod
    def download_file(
        self, *, meta: EnvelopeMeta, file_metadata_id: str, client_id: str
    ) -> Envelope[DownloadResult]:
        """Return one completed file with its content."""

    @abstractmethod
    def get_presigned_url(
        self,
        *,
        meta: EnvelopeMeta,
        file_metadata_id: str,
        client_id: str,
        expiration_minutes: int | None = None,
    ) -> Envelope[PresignedUrl]:
        """Return a time-limited download URL for one completed file."""

    @abstractmethod
    def health(self, *, meta: EnvelopeMeta) -> Envelope[HealthStatus]:
        """Return service and owned dependency readiness."""


def build_upload_authority_service(
    *,
    settings: StowageSettings,
    object_store: ObjectStore | None = None,
) -> UploadAuthorityService:
    """Build the default Upload Authority implementation from typed settings."""
    from services.state.upload_authority.implementation import (
        DefaultUploadAuthorityService,
    )

    return DefaultUploadAuthorityService.from_settings(
        settings, object_store=object_store
    )
