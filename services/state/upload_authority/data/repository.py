"""Authoritative Postgres repositories for Upload Authority Service state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy import delete, func, literal, or_, select, text, tuple_, update
from sqlalchemy.dialects.postgresql import insert

from packages.stowage_shared.ids import ulid_bytes_to_str, ulid_str_to_bytes
from resources.substrates.postgres import ServiceSchemaSessionProvider
from services.state.upload_authority.domain import (
    FileMetadata,
    FileStatus,
    StorageInfo,
    UploadDescriptor,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.errors import UploadNotFoundError
from services.state.upload_authority.interfaces import (
    FileMetadataRepository,
    UploadRequestRepository,
)

from .schema import file_metadata, upload_requests

_ERROR_CLEARING_TARGETS = (UploadStatus.PROCESSING, UploadStatus.COMPLETED)


class PostgresUploadRequestRepository(UploadRequestRepository):
    """SQL repository over the ``upload_requests`` table.

    Status changes are single ``UPDATE ... WHERE ... RETURNING`` statements;
    the row returned is the only evidence that this caller won.
    """

    def __init__(
        self,
        sessions: ServiceSchemaSessionProvider,
        *,
        health_check: Callable[[], bool] | None = None,
    ) -> None:
        self._sessions = sessions
        self._health_check = health_check

    def insert_if_absent(
        self,
        *,
        request_id: str,
        client_id: str,
        upload_id: str,
        descriptor: UploadDescriptor,
    ) -> UploadRequest | None:
        with self._sessions.session() as session:
            stmt = (
                insert(upload_requests)
                .values(
                    id=ulid_str_to_bytes(request_id),
                    client_id=client_id,
                    upload_id=upload_id,
                    status=UploadStatus.PENDING.value,
                    attempt_count=0,
                    checksum=descriptor.checksum,
                    original_filename=descriptor.original_filename,
                    content_type=descriptor.content_type,
                    size_bytes=descriptor.size_bytes,
                    client_metadata=dict(descriptor.metadata),
                )
                .on_conflict_do_nothing(constraint="uq_upload_requests_client_upload")
                .returning(*upload_requests.c)
            )
            row = session.execute(stmt).mappings().one_or_none()
            return None if row is None else _to_upload_request(row)

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
        """Apply one guarded transition in a single statement."""
        table = upload_requests
        guard = [
            table.c.id == ulid_str_to_bytes(request_id),
            table.c.status.in_([status.value for status in expected]),
        ]
        if failed_attempts_below is not None:
            guard.append(
                or_(
                    table.c.status != UploadStatus.FAILED.value,
                    table.c.attempt_count < failed_attempts_below,
                )
            )
        if updated_before is not None:
            guard.append(table.c.updated_at < updated_before)

        values: dict[str, Any] = {"status": target.value, "updated_at": func.now()}
        if increment_attempt:
            values["attempt_count"] = table.c.attempt_count + 1
        if target == UploadStatus.FAILED:
            values["error_code"] = error_code
            values["error_message"] = error_message
        elif target in _ERROR_CLEARING_TARGETS:
            values["error_code"] = None
            values["error_message"] = None
        if file_metadata_id is not None:
            values["file_metadata_id"] = ulid_str_to_bytes(file_metadata_id)
        if completed_at is not None:
            values["completed_at"] = completed_at

        with self._sessions.session() as session:
            row = (
                session.execute(
                    update(table).where(*guard).values(**values).returning(*table.c)
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_upload_request(row)

    def get_by_id(self, *, request_id: str) -> UploadRequest | None:
        return self._one(upload_requests.c.id == ulid_str_to_bytes(request_id))

    def get_by_key(self, *, client_id: str, upload_id: str) -> UploadRequest | None:
        return self._one(
            upload_requests.c.client_id == client_id,
            upload_requests.c.upload_id == upload_id,
        )

    def find_completed_by_checksum(
        self, *, client_id: str, checksum: str
    ) -> UploadRequest | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(upload_requests)
                    .where(
                        upload_requests.c.client_id == client_id,
                        upload_requests.c.checksum == checksum,
                        upload_requests.c.status == UploadStatus.COMPLETED.value,
                    )
                    .order_by(upload_requests.c.created_at, upload_requests.c.id)
                    .limit(1)
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_upload_request(row)

    def find_by_status_updated_before(
        self,
        *,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[UploadRequest]:
        criteria = [
            upload_requests.c.status.in_([s.value for s in statuses]),
            upload_requests.c.updated_at < updated_before,
        ]
        if after is not None:
            after_updated_at, after_id = after
            criteria.append(
                tuple_(upload_requests.c.updated_at, upload_requests.c.id)
                > tuple_(
                    literal(after_updated_at), literal(ulid_str_to_bytes(after_id))
                )
            )
        with self._sessions.session() as session:
            rows = (
                session.execute(
                    select(upload_requests)
                    .where(*criteria)
                    .order_by(upload_requests.c.updated_at, upload_requests.c.id)
                    .limit(limit)
                )
                .mappings()
                .all()
            )
            return [_to_upload_request(row) for row in rows]

    def delete_if(
        self,
        *,
        request_id: str,
        statuses: Sequence[UploadStatus],
        updated_before: datetime,
    ) -> bool:
        with self._sessions.session() as session:
            result = session.execute(
                delete(upload_requests).where(
                    upload_requests.c.id == ulid_str_to_bytes(request_id),
                    upload_requests.c.status.in_([s.value for s in statuses]),
                    upload_requests.c.updated_at < updated_before,
                )
            )
            return int(result.rowcount or 0) > 0

    def ping(self) -> bool:
        if self._health_check is not None:
            return self._health_check()
        try:
            with self._sessions.session() as session:
                session.execute(text("SELECT 1"))
        except Exception:  # noqa: BLE001
            return False
        return True

    def _one(self, *criteria: Any) -> UploadRequest | None:
        with self._sessions.session() as session:
            row = (
                session.execute(select(upload_requests).where(*criteria))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_upload_request(row)


class PostgresFileMetadataRepository(FileMetadataRepository):
    """SQL repository over the ``file_metadata`` table."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def insert(self, *, record: FileMetadata) -> FileMetadata:
        values: dict[str, Any] = {
            "id": ulid_str_to_bytes(record.id),
            "client_id": record.client_id,
            "upload_request_id": ulid_str_to_bytes(record.upload_request_id),
            "upload_id": record.upload_id,
            "original_filename": record.original_filename,
            "checksum": record.checksum,
            "size_bytes": record.size_bytes,
            "content_type": record.content_type,
            "status": record.status.value,
            "client_metadata": dict(record.metadata),
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }
        values.update(_storage_values(record.storage))
        with self._sessions.session() as session:
            row = (
                session.execute(
                    insert(file_metadata).values(**values).returning(*file_metadata.c)
                )
                .mappings()
                .one()
            )
            return _to_file_metadata(row)

    def finalize(self, *, file_metadata_id: str, storage: StorageInfo) -> FileMetadata:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    update(file_metadata)
                    .where(file_metadata.c.id == ulid_str_to_bytes(file_metadata_id))
                    .values(
                        status=FileStatus.COMPLETED.value,
                        updated_at=func.now(),
                        **_storage_values(storage),
                    )
                    .returning(*file_metadata.c)
                )
                .mappings()
                .one_or_none()
            )
            if row is None:
                raise UploadNotFoundError(
                    "file metadata not found",
                    metadata={"file_metadata_id": file_metadata_id},
                )
            return _to_file_metadata(row)

    def get_by_id(self, *, file_metadata_id: str) -> FileMetadata | None:
        return self._one(file_metadata.c.id == ulid_str_to_bytes(file_metadata_id))

    def get_by_upload_request(self, *, upload_request_id: str) -> FileMetadata | None:
        return self._one(
            file_metadata.c.upload_request_id == ulid_str_to_bytes(upload_request_id)
        )

    def delete(self, *, file_metadata_id: str) -> bool:
        with self._sessions.session() as session:
            result = session.execute(
                delete(file_metadata).where(
                    file_metadata.c.id == ulid_str_to_bytes(file_metadata_id)
                )
            )
            return int(result.rowcount or 0) > 0

    def _one(self, *criteria: Any) -> FileMetadata | None:
        with self._sessions.session() as session:
            row = (
                session.execute(select(file_metadata).where(*criteria))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_file_metadata(row)


def _storage_values(storage: StorageInfo | None) -> dict[str, Any]:
    if storage is None:
        return {}
    return {
        "storage_provider": storage.provider,
        "storage_bucket": storage.bucket,
        "storage_key": storage.key,
        "storage_url": storage.url,
        "storage_etag": storage.etag,
    }


def _to_upload_request(row: Mapping[str, Any]) -> UploadRequest:
    """Map one SQL row to a strict upload request record."""
    return UploadRequest(
        id=_row_ulid(row, "id"),
        client_id=str(row["client_id"]),
        upload_id=str(row["upload_id"]),
        status=UploadStatus(row["status"]),
        attempt_count=int(row["attempt_count"]),
        checksum=str(row["checksum"]),
        file_metadata_id=_row_optional_ulid(row, "file_metadata_id"),
        error_code=row.get("error_code"),
        error_message=row.get("error_message"),
        original_filename=str(row["original_filename"]),
        content_type=str(row["content_type"]),
        size_bytes=int(row["size_bytes"]),
        metadata=dict(row.get("client_metadata") or {}),
        created_at=_row_dt(row, "created_at"),
        updated_at=_row_dt(row, "updated_at"),
        completed_at=None if row.get("completed_at") is None else _row_dt(row, "completed_at"),
    )


def _to_file_metadata(row: Mapping[str, Any]) -> FileMetadata:
    """Map one SQL row to a strict file metadata record."""
    storage = None
    if row.get("storage_key") is not None:
        storage = StorageInfo(
            provider=str(row["storage_provider"]),
            bucket=str(row["storage_bucket"]),
            key=str(row["storage_key"]),
            url=str(row["storage_url"]),
            etag=str(row.get("storage_etag") or ""),
        )
    return FileMetadata(
        id=_row_ulid(row, "id"),
        client_id=str(row["client_id"]),
        upload_request_id=_row_ulid(row, "upload_request_id"),
        upload_id=str(row["upload_id"]),
        original_filename=str(row["original_filename"]),
        checksum=str(row["checksum"]),
        size_bytes=int(row["size_bytes"]),
        content_type=str(row["content_type"]),
        storage=storage,
        status=FileStatus(row["status"]),
        metadata=dict(row.get("client_metadata") or {}),
        created_at=_row_dt(row, "created_at"),
        updated_at=_row_dt(row, "updated_at"),
    )


def _row_ulid(row: Mapping[str, Any], column: str) -> str:
    value = row.get(column)
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ValueError(f"expected ULID bytes column for {column}")
    return ulid_bytes_to_str(bytes(value))


def _row_optional_ulid(row: Mapping[str, Any], column: str) -> str | None:
    return None if row.get(column) is None else _row_ulid(row, column)


def _row_dt(row: Mapping[str, Any], column: str) -> datetime:
    """Read and normalize one timezone-aware datetime field from SQL row."""
    value = row.get(column)
    if not isinstance(value, datetime):
        raise ValueError(f"expected datetime column for {column}")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
