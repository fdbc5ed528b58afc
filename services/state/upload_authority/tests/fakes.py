"""Thread-safe in-memory collaborators for Upload Authority tests.

The request fake applies every conditional update under one lock, which is
the same all-or-nothing guarantee a single Postgres ``UPDATE ... RETURNING``
gives the real repository.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import BinaryIO, Callable, Mapping, Sequence

from resources.substrates.object_store import (
    ObjectNotFoundError,
    ObjectStoreError,
    ObjectStoreHealthStatus,
    StoredObject,
)
from services.state.upload_authority.domain import (
    FileMetadata,
    FileStatus,
    StorageInfo,
    UploadDescriptor,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.errors import UploadNotFoundError


class TickingClock:
    """Deterministic clock that advances one millisecond per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += timedelta(milliseconds=1)
            return self._now

    def advance(self, delta: timedelta) -> None:
        with self._lock:
            self._now += delta


class FakeUploadRequestRepository:
    """In-memory upload request store with compare-and-swap updates."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or TickingClock()
        self._lock = threading.Lock()
        self.rows: dict[str, UploadRequest] = {}
        self.insert_calls = 0
        self.raise_on_get: Exception | None = None
        self.raise_on_delete_ids: set[str] = set()
        self.ready = True

    def insert_if_absent(
        self,
        *,
        request_id: str,
        client_id: str,
        upload_id: str,
        descriptor: UploadDescriptor,
    ) -> UploadRequest | None:
        with self._lock:
            self.insert_calls += 1
            for row in self.rows.values():
                if row.client_id == client_id and row.upload_id == upload_id:
                    return None
            now = self._clock()
            record = UploadRequest(
                id=request_id,
                client_id=client_id,
                upload_id=upload_id,
                status=UploadStatus.PENDING,
                attempt_count=0,
                checksum=descriptor.checksum,
                original_filename=descriptor.original_filename,
                content_type=descriptor.content_type,
                size_bytes=descriptor.size_bytes,
                metadata=dict(descriptor.metadata),
                created_at=now,
                updated_at=now,
            )
            self.rows[request_id] = record
            return record

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
        with self._lock:
            row = self.rows.get(request_id)
            if row is None or row.status not in expected:
                return None
            if (
                failed_attempts_below is not None
                and row.status == UploadStatus.FAILED
                and row.attempt_count >= failed_attempts_below
            ):
                return None
            if updated_before is not None and not row.updated_at < updated_before:
                return None

            changes: dict[str, object] = {
                "status": target,
                "updated_at": self._clock(),
            }
            if increment_attempt:
                changes["attempt_count"] = row.attempt_count + 1
            if target == UploadStatus.FAILED:
                changes["error_code"] = error_code
                changes["error_message"] = error_message
            elif target in (UploadStatus.PROCESSING, UploadStatus.COMPLETED):
                changes["error_code"] = None
                changes["error_message"] = None
            if file_metadata_id is not None:
                changes["file_metadata_id"] = file_metadata_id
            if completed_at is not None:
                changes["completed_at"] = completed_at
            updated = row.model_copy(update=changes)
            self.rows[request_id] = updated
            return updated

    def get_by_id(self, *, request_id: str) -> UploadRequest | None:
        if self.raise_on_get is not None:
            raise self.raise_on_get
        with self._lock:
            return self.rows.get(request_id)

    def get_by_key(self, *, client_id: str, upload_id: str) -> UploadRequest | None:
        with self._lock:
            for row in self.rows.values():
                if row.client_id == client_id and row.upload_id == upload_id:
                    return row
            return None

    def find_completed_by_checksum(
        self, *, client_id: str, checksum: str
    ) -> UploadRequest | None:
        with self._lock:
            matches = [
                row
                for row in self.rows.values()
                if row.client_id == client_id
                and row.checksum == checksum
                and row.status == UploadStatus.COMPLETED
            ]
        matches.sort(key=lambda row: (row.created_at, row.id))
        return matches[0] if matches else None

    def find_by_status_updated_before(
        self,
        *,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[UploadRequest]:
        with self._lock:
            matches = [
                row
                for row in self.rows.values()
                if row.status in statuses
                and row.updated_at < updated_before
                and (after is None or (row.updated_at, row.id) > after)
            ]
        matches.sort(key=lambda row: (row.updated_at, row.id))
        return matches[:limit]

    def delete_if(
        self,
        *,
        request_id: str,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
    ) -> bool:
        if request_id in self.raise_on_delete_ids:
            raise RuntimeError("delete failed")
        with self._lock:
            row = self.rows.get(request_id)
            if row is None or row.status not in statuses:
                return False
            if not row.updated_at < updated_before:
                return False
            del self.rows[request_id]
            return True

    def ping(self) -> bool:
        return self.ready

    def put(self, record: UploadRequest) -> None:
        """Seed one record directly, bypassing the state machine."""
        with self._lock:
            self.rows[record.id] = record


class FakeFileMetadataRepository:
    """In-memory file metadata store keyed by id."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or TickingClock()
        self._lock = threading.Lock()
        self.rows: dict[str, FileMetadata] = {}
        self.raise_on_finalize: Exception | None = None
        self.raise_on_delete: Exception | None = None

    def insert(self, *, record: FileMetadata) -> FileMetadata:
        with self._lock:
            for row in self.rows.values():
                if row.upload_request_id == record.upload_request_id:
                    raise RuntimeError("duplicate upload_request_id")
            self.rows[record.id] = record
            return record

    def finalize(self, *, file_metadata_id: str, storage: StorageInfo) -> FileMetadata:
        if self.raise_on_finalize is not None:
            raise self.raise_on_finalize
        with self._lock:
            row = self.rows.get(file_metadata_id)
            if row is None:
                raise UploadNotFoundError("file metadata not found")
            updated = row.model_copy(
                update={
                    "storage": storage,
                    "status": FileStatus.COMPLETED,
                    "updated_at": self._clock(),
                }
            )
            self.rows[file_metadata_id] = updated
            return updated

    def get_by_id(self, *, file_metadata_id: str) -> FileMetadata | None:
        with self._lock:
            return self.rows.get(file_metadata_id)

    def get_by_upload_request(self, *, upload_request_id: str) -> FileMetadata | None:
        with self._lock:
            for row in self.rows.values():
                if row.upload_request_id == upload_request_id:
                    return row
            return None

    def delete(self, *, file_metadata_id: str) -> bool:
        if self.raise_on_delete is not None:
            raise self.raise_on_delete
        with self._lock:
            return self.rows.pop(file_metadata_id, None) is not None


class FakeObjectStore:
    """In-memory object store recording every write."""

    provider = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.objects: dict[tuple[str, str], bytes] = {}
        self.put_calls: list[tuple[str, str]] = []
        self.deleted: list[tuple[str, str]] = []
        self.raise_on_put: Exception | None = None
        self.raise_on_delete: Exception | None = None
        self.put_gate: threading.Event | None = None
        self.put_entered = threading.Event()
        self.ready = True

    def health(self) -> ObjectStoreHealthStatus:
        return ObjectStoreHealthStatus(
            ready=self.ready, detail="ok" if self.ready else "store offline"
        )

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
        self.put_entered.set()
        if self.put_gate is not None:
            self.put_gate.wait(timeout=5)
        with self._lock:
            self.put_calls.append((bucket, key))
        if self.raise_on_put is not None:
            raise self.raise_on_put
        content = stream.read()
        if len(content) != size:
            raise ObjectStoreError("short read")
        with self._lock:
            self.objects[(bucket, key)] = content
        return StoredObject(
            provider=self.provider,
            bucket=bucket,
            key=key,
            url=f"memory://{bucket}/{key}",
            etag=f"etag-{len(content)}",
        )

    def get_object(self, *, bucket: str, key: str) -> bytes:
        with self._lock:
            try:
                return self.objects[(bucket, key)]
            except KeyError:
                raise ObjectNotFoundError(f"{bucket}/{key}") from None

    def delete_object(self, *, bucket: str, key: str) -> None:
        if self.raise_on_delete is not None:
            raise self.raise_on_delete
        with self._lock:
            self.deleted.append((bucket, key))
            self.objects.pop((bucket, key), None)

    def presign_get(self, *, bucket: str, key: str, expires_in_seconds: int) -> str:
        return f"memory://{bucket}/{key}?expires={expires_in_seconds}"

    def object_exists(self, *, bucket: str, key: str) -> bool:
        with self._lock:
            return (bucket, key) in self.objects
