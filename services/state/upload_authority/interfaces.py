"""Persistence protocols used by the Upload Authority Service."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from services.state.upload_authority.domain import (
    FileMetadata,
    StorageInfo,
    UploadDescriptor,
    UploadRequest,
    UploadStatus,
)


class UploadRequestRepository(Protocol):
    """Durable upload request records with compare-and-swap updates.

    ``conditional_update`` is the only way a status changes; it applies the
    change only when the stored row still matches the guard and returns the
    updated record, or ``None`` when another writer got there first.
    """

    def insert_if_absent(
        self,
        *,
        request_id: str,
        client_id: str,
        upload_id: str,
        descriptor: UploadDescriptor,
    ) -> UploadRequest | None:
        """Insert a PENDING record; return ``None`` if the key already exists."""

    def conditional_update(
        self,
        *,
        request_id: str,
        expected: Sequence[UploadStatus],
        target: UploadStatus,
        increment_attempt: bool = False,
        failed_attempts_below: int | None = None,
        updated_before: datetime | None = None,
        file_metadata_id: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        completed_at: datetime | None = None,
    ) -> UploadRequest | None:
        """Move one record to ``target`` when its status is in ``expected``.

        A FAILED record only matches while ``attempt_count`` is below
        ``failed_attempts_below`` (when given); ``updated_before`` further
        requires ``updated_at`` to precede it. Moving to FAILED records the
        error fields; moving to PROCESSING or COMPLETED clears them.
        """

    def get_by_id(self, *, request_id: str) -> UploadRequest | None:
        """Read one record by id."""

    def get_by_key(self, *, client_id: str, upload_id: str) -> UploadRequest | None:
        """Read one record by idempotency key."""

    def find_completed_by_checksum(
        self, *, client_id: str, checksum: str
    ) -> UploadRequest | None:
        """Return the oldest COMPLETED record for this client and checksum."""

    def find_by_status_updated_before(
        self,
        *,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[UploadRequest]:
        """Return up to ``limit`` records in ``statuses``, oldest first.

        Results are ordered by ``(updated_at, id)``; ``after`` resumes strictly
        past that key so a caller can page through every candidate.
        """

    def delete_if(
        self,
        *,
        request_id: str,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
    ) -> bool:
        """Delete one record only while it still matches; return whether it did."""

    def ping(self) -> bool:
        """Return whether the backing store is reachable."""


class FileMetadataRepository(Protocol):
    """Durable file metadata records, one per upload request at most."""

    def insert(self, *, record: FileMetadata) -> FileMetadata:
        """Persist one provisional record."""

    def finalize(self, *, file_metadata_id: str, storage: StorageInfo) -> FileMetadata:
        """Attach storage info and mark the record COMPLETED."""

    def get_by_id(self, *, file_metadata_id: str) -> FileMetadata | None:
        """Read one record by id."""

    def get_by_upload_request(self, *, upload_request_id: str) -> FileMetadata | None:
        """Read the record belonging to one upload request."""

    def delete(self, *, file_metadata_id: str) -> bool:
        """Delete one record and return whether it existed."""
