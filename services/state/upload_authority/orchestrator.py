"""Upload orchestration: validate, dedup, acquire, store, finalize or compensate.

The metadata store and the object store fail independently and share no
transaction. Ordering keeps them reconcilable: the provisional file record
exists before any bytes are written, the file record is finalized before the
request is completed, and any failure in between deletes what was written
before the request is marked FAILED.
"""

from __future__ import annotations

import hashlib
import tempfile
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import BinaryIO, Callable, Mapping

from packages.stowage_shared.ids import generate_ulid_str
from packages.stowage_shared.logging import fields, get_logger, log_context
from resources.substrates.object_store import ObjectStore, ObjectStoreError
from services.state.upload_authority.config import UploadAuthoritySettings
from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import (
    FailureReason,
    FileMetadata,
    FileStatus,
    OutcomeError,
    OutcomeStatus,
    StorageInfo,
    UploadDescriptor,
    UploadOutcome,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.errors import (
    UPLOAD_FAILED,
    WORKER_POOL_REJECTED,
    RetryExhaustedError,
    StorageError,
    UploadAuthorityError,
    UploadConflictError,
    UploadNotFoundError,
    UploadValidationError,
)
from services.state.upload_authority.interfaces import FileMetadataRepository
from services.state.upload_authority.validation import (
    SubmitUploadRequest,
    build_object_key,
    validate_submission,
)
from services.state.upload_authority.workers import BoundedWorkerPool

_LOGGER = get_logger(__name__)
_SPOOL_CHUNK_BYTES = 1024 * 1024

_OUTCOME_STATUS = {
    UploadStatus.PENDING: OutcomeStatus.ACCEPTED,
    UploadStatus.PROCESSING: OutcomeStatus.PROCESSING,
    UploadStatus.COMPLETED: OutcomeStatus.COMPLETED,
    UploadStatus.FAILED: OutcomeStatus.FAILED,
    UploadStatus.CANCELLED: OutcomeStatus.CANCELLED,
}
_OUTCOME_MESSAGE = {
    OutcomeStatus.ACCEPTED: "Upload accepted for processing",
    OutcomeStatus.PROCESSING: "Upload is being processed",
    OutcomeStatus.COMPLETED: "Upload completed successfully",
    OutcomeStatus.FAILED: "Upload failed",
    OutcomeStatus.CANCELLED: "Upload was cancelled",
}
_CLIENT_CANCELLABLE = (UploadStatus.PENDING, UploadStatus.PROCESSING)


@dataclass
class _PreparedUpload:
    """A validated, spooled submission whose record is ready for an attempt."""

    record: UploadRequest
    request: SubmitUploadRequest
    spool: BinaryIO
    checksum: str


class UploadOrchestrator:
    """Drive one submission through the upload lifecycle."""

    def __init__(
        self,
        *,
        coordinator: IdempotencyCoordinator,
        files: FileMetadataRepository,
        object_store: ObjectStore,
        settings: UploadAuthoritySettings,
        pool: BoundedWorkerPool | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._files = files
        self._object_store = object_store
        self._settings = settings
        self._pool = pool or BoundedWorkerPool(
            max_workers=settings.worker_pool_size,
            queue_size=settings.worker_queue_size,
        )
        self._clock = clock or (lambda: datetime.now(UTC))

    def submit(
        self,
        *,
        client_id: str,
        upload_id: str,
        stream: BinaryIO,
        size: int,
        content_type: str | None,
        filename: str,
        metadata: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> UploadOutcome:
        """Process one upload and wait up to ``timeout_seconds`` for the result.

        When the wait expires the current (PROCESSING) outcome is returned and
        the attempt keeps running in the pool.
        """
        prepared = self._prepare(
            client_id=client_id,
            upload_id=upload_id,
            stream=stream,
            size=size,
            content_type=content_type,
            filename=filename,
            metadata=metadata,
        )
        if isinstance(prepared, UploadOutcome):
            return prepared

        future = self._dispatch(prepared)
        if future is None:
            return self._outcome_for(prepared.record.id)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            return self._outcome_for(prepared.record.id)

    def submit_async(
        self,
        *,
        client_id: str,
        upload_id: str,
        stream: BinaryIO,
        size: int,
        content_type: str | None,
        filename: str,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadOutcome:
        """Hand the attempt to the pool and return ACCEPTED without waiting."""
        prepared = self._prepare(
            client_id=client_id,
            upload_id=upload_id,
            stream=stream,
            size=size,
            content_type=content_type,
            filename=filename,
            metadata=metadata,
        )
        if isinstance(prepared, UploadOutcome):
            return prepared

        if self._dispatch(prepared) is None:
            return self._outcome_for(prepared.record.id)
        accepted = self._outcome(prepared.record)
        return accepted.model_copy(
            update={
                "status": OutcomeStatus.ACCEPTED,
                "message": _OUTCOME_MESSAGE[OutcomeStatus.ACCEPTED],
                "error": None,
            }
        )

    def status(self, *, upload_request_id: str, client_id: str) -> UploadOutcome:
        """Rebuild the outcome of one request from persisted state."""
        return self._outcome(self._owned_record(upload_request_id, client_id))

    def cancel(self, *, upload_request_id: str, client_id: str) -> bool:
        """Cancel a PENDING or PROCESSING request owned by ``client_id``."""
        record = self._owned_record(upload_request_id, client_id)
        if self._coordinator.cancel(record.id, cancellable=_CLIENT_CANCELLABLE):
            with log_context({fields.UPLOAD_REQUEST_ID: record.id}):
                _LOGGER.info("Upload request cancelled")
            return True

        current = self._coordinator.get(record.id)
        state = record.status.value if current is None else current.status.value
        raise UploadConflictError(
            f"upload request in state {state} cannot be cancelled",
            metadata={"upload_request_id": record.id, "status": state},
        )

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def _prepare(
        self,
        *,
        client_id: str,
        upload_id: str,
        stream: BinaryIO,
        size: int,
        content_type: str | None,
        filename: str,
        metadata: Mapping[str, str] | None,
    ) -> _PreparedUpload | UploadOutcome:
        """Run the synchronous steps shared by both submission modes.

        Returns an outcome when the persisted state already answers the
        submission, otherwise a prepared upload that owns the spool file.
        """
        request = validate_submission(
            client_id=client_id,
            upload_id=upload_id,
            filename=filename,
            size_bytes=size,
            content_type=content_type,
            metadata=None if metadata is None else dict(metadata),
            max_file_size_bytes=self._settings.max_file_size_bytes,
            allowed_content_types=self._settings.allowed_content_types,
        )
        spool, checksum = self._spool(stream, request.size_bytes)
        handed_off = False
        try:
            # The key's own record answers first; content dedup only applies
            # to keys that still need an attempt.
            existing = self._coordinator.find(request.client_id, request.upload_id)
            if existing is not None:
                self._check_checksum(existing, checksum)
                settled = self._settled_outcome(existing)
                if settled is not None:
                    return settled

            duplicate = self._coordinator.find_duplicate_request(
                request.client_id, checksum
            )
            if duplicate is not None:
                return self._outcome(
                    duplicate, deduplicated=duplicate.upload_id != request.upload_id
                )

            record = self._coordinator.create_or_get(
                client_id=request.client_id,
                upload_id=request.upload_id,
                descriptor=UploadDescriptor(
                    original_filename=request.filename,
                    content_type=request.content_type,
                    size_bytes=request.size_bytes,
                    checksum=checksum,
                    metadata=request.metadata,
                ),
            )
            self._check_checksum(record, checksum)

            settled = self._settled_outcome(record)
            if settled is not None:
                return settled

            handed_off = True
            return _PreparedUpload(
                record=record, request=request, spool=spool, checksum=checksum
            )
        finally:
            if not handed_off:
                spool.close()

    @staticmethod
    def _check_checksum(record: UploadRequest, checksum: str) -> None:
        if record.checksum != checksum:
            raise UploadConflictError(
                "upload_id was already used for different content",
                metadata={"upload_request_id": record.id},
            )

    def _settled_outcome(self, record: UploadRequest) -> UploadOutcome | None:
        """Return the outcome for records that must not start a new attempt."""
        if record.status == UploadStatus.PENDING:
            return None
        if record.status == UploadStatus.FAILED:
            try:
                self._check_retry_budget(record)
            except RetryExhaustedError as exc:
                return self._outcome(record, failure=exc)
            return None
        return self._outcome(record)

    def _check_retry_budget(self, record: UploadRequest) -> None:
        if not self._coordinator.retries_remaining(record):
            raise RetryExhaustedError(
                f"retry limit of {self._coordinator.retry_limit} attempts reached",
                metadata={"upload_request_id": record.id},
            )

    def _dispatch(self, prepared: _PreparedUpload) -> Future[UploadOutcome] | None:
        """Queue one attempt; a rejected hand-off fails the request from PENDING."""
        try:
            return self._pool.submit(self._process, prepared)
        except RuntimeError as exc:
            prepared.spool.close()
            with log_context({fields.UPLOAD_REQUEST_ID: prepared.record.id}):
                _LOGGER.warning("Upload attempt rejected by worker pool: %s", exc)
            self._coordinator.mark_failed(
                prepared.record.id,
                FailureReason(code=WORKER_POOL_REJECTED, message=str(exc)),
                expected=(UploadStatus.PENDING,),
            )
            return None

    def _process(self, prepared: _PreparedUpload) -> UploadOutcome:
        record = prepared.record
        with log_context(
            {
                fields.UPLOAD_REQUEST_ID: record.id,
                fields.CLIENT_ID: record.client_id,
                fields.UPLOAD_ID: record.upload_id,
            }
        ):
            try:
                if self._coordinator.acquire_for_processing(record.id):
                    self._store(prepared)
                return self._outcome_for(record.id)
            finally:
                prepared.spool.close()

    def _store(self, prepared: _PreparedUpload) -> None:
        """Write file metadata and bytes for one acquired attempt."""
        record = prepared.record
        request = prepared.request
        file_id: str | None = None
        key: str | None = None
        try:
            self._remove_leftover(record.id)

            now = self._clock()
            file_id = generate_ulid_str()
            self._files.insert(
                record=FileMetadata(
                    id=file_id,
                    client_id=record.client_id,
                    upload_request_id=record.id,
                    upload_id=record.upload_id,
                    original_filename=request.filename,
                    checksum=prepared.checksum,
                    size_bytes=request.size_bytes,
                    content_type=request.content_type,
                    status=FileStatus.PROCESSING,
                    metadata=request.metadata,
                    created_at=now,
                    updated_at=now,
                )
            )

            key = build_object_key(
                client_id=record.client_id,
                upload_id=record.upload_id,
                filename=request.filename,
                now=now,
            )
            prepared.spool.seek(0)
            try:
                stored = self._object_store.put_object(
                    bucket=self._settings.bucket,
                    key=key,
                    stream=prepared.spool,
                    size=request.size_bytes,
                    content_type=request.content_type,
                    metadata=request.metadata,
                )
            except ObjectStoreError as exc:
                raise StorageError(
                    f"object store write failed: {exc}",
                    metadata={"bucket": self._settings.bucket, "key": key},
                ) from exc

            self._files.finalize(
                file_metadata_id=file_id,
                storage=StorageInfo(**stored.model_dump()),
            )
            self._coordinator.mark_completed(record.id, file_id)
            _LOGGER.info("Upload stored: key=%s", key)
        except Exception as exc:  # noqa: BLE001
            self._compensate(record.id, file_id=file_id, key=key, exc=exc)

    def _remove_leftover(self, upload_request_id: str) -> None:
        """Drop file metadata left behind by an earlier crashed attempt."""
        leftover = self._files.get_by_upload_request(upload_request_id=upload_request_id)
        if leftover is None:
            return
        _LOGGER.info("Removing leftover file metadata: file_metadata_id=%s", leftover.id)
        if leftover.storage is not None:
            self._delete_object_quietly(leftover.storage.bucket, leftover.storage.key)
        self._files.delete(file_metadata_id=leftover.id)

    def _compensate(
        self,
        upload_request_id: str,
        *,
        file_id: str | None,
        key: str | None,
        exc: Exception,
    ) -> None:
        """Undo a partial attempt, then record the failure."""
        if isinstance(exc, UploadAuthorityError):
            reason = exc.to_failure_reason()
        else:
            reason = FailureReason(
                code=UPLOAD_FAILED, message=f"{type(exc).__name__}: {exc}"
            )
        _LOGGER.warning(
            "Upload attempt failed; compensating: code=%s", reason.code, exc_info=exc
        )

        if key is not None:
            self._delete_object_quietly(self._settings.bucket, key)
        if file_id is not None:
            try:
                self._files.delete(file_metadata_id=file_id)
            except Exception:  # noqa: BLE001
                _LOGGER.warning(
                    "Compensation could not delete file metadata: file_metadata_id=%s",
                    file_id,
                    exc_info=True,
                )
        self._coordinator.mark_failed(upload_request_id, reason)

    def _delete_object_quietly(self, bucket: str, key: str) -> None:
        try:
            self._object_store.delete_object(bucket=bucket, key=key)
        except Exception:  # noqa: BLE001
            _LOGGER.warning(
                "Compensation could not delete object: bucket=%s key=%s",
                bucket,
                key,
                exc_info=True,
            )

    def _spool(self, stream: BinaryIO, declared_size: int) -> tuple[BinaryIO, str]:
        """Copy ``stream`` to a temp file once, hashing as it goes."""
        spool = tempfile.TemporaryFile(prefix="stowage-upload-")
        digest = hashlib.sha256()
        total = 0
        try:
            while chunk := stream.read(_SPOOL_CHUNK_BYTES):
                total += len(chunk)
                if total > declared_size:
                    break
                digest.update(chunk)
                spool.write(chunk)
            if total != declared_size:
                raise UploadValidationError(
                    "content length does not match declared size",
                    field_errors={"size_bytes": f"declared {declared_size} bytes"},
                )
            spool.flush()
            spool.seek(0)
        except Exception:
            spool.close()
            raise
        return spool, digest.hexdigest()

    def _owned_record(self, upload_request_id: str, client_id: str) -> UploadRequest:
        record = self._coordinator.get(upload_request_id)
        if record is None or record.client_id != client_id:
            raise UploadNotFoundError(
                "upload request not found",
                metadata={"upload_request_id": upload_request_id},
            )
        return record

    def _outcome_for(self, upload_request_id: str) -> UploadOutcome:
        record = self._coordinator.get(upload_request_id)
        if record is None:
            raise UploadNotFoundError(
                "upload request not found",
                metadata={"upload_request_id": upload_request_id},
            )
        return self._outcome(record)

    def _outcome(
        self,
        record: UploadRequest,
        *,
        deduplicated: bool = False,
        failure: UploadAuthorityError | None = None,
    ) -> UploadOutcome:
        """Map one persisted record onto the caller-visible outcome."""
        status = _OUTCOME_STATUS[record.status]
        file_url = None
        if record.status == UploadStatus.COMPLETED and record.file_metadata_id:
            file = self._files.get_by_id(file_metadata_id=record.file_metadata_id)
            if file is not None and file.storage is not None:
                file_url = file.storage.url

        error = None
        message = _OUTCOME_MESSAGE[status]
        if status == OutcomeStatus.FAILED:
            if failure is not None:
                error = OutcomeError(
                    code=failure.code,
                    message=f"{failure.message}; last error: {record.error_message or 'unknown'}",
                    occurred_at=record.updated_at,
                )
                message = "Upload failed; retry limit reached"
            else:
                error = OutcomeError(
                    code=record.error_code or UPLOAD_FAILED,
                    message=record.error_message or "upload failed",
                    occurred_at=record.updated_at,
                )
        elif deduplicated:
            message = "Identical content was already uploaded"

        return UploadOutcome(
            status=status,
            upload_request_id=record.id,
            file_metadata_id=record.file_metadata_id,
            file_url=file_url,
            checksum=record.checksum,
            original_filename=record.original_filename,
            size_bytes=record.size_bytes,
            attempt_count=record.attempt_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
            deduplicated=deduplicated,
            message=message,
            error=error,
        )
