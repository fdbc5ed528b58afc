"""Idempotency coordinator: the only writer of upload request status.

Every transition is one conditional update keyed by id and expected status.
There is no lock manager; whichever caller's update matches first wins and
everyone else observes a ``None``/``False`` result.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable, Sequence

from packages.stowage_shared.ids import generate_ulid_str
from packages.stowage_shared.logging import fields, get_logger, log_context
from services.state.upload_authority.domain import (
    FailureReason,
    UploadDescriptor,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.errors import (
    StateTransitionError,
    UploadConflictError,
)
from services.state.upload_authority.interfaces import UploadRequestRepository

_LOGGER = get_logger(__name__)

DEFAULT_CANCELLABLE = (
    UploadStatus.PENDING,
    UploadStatus.PROCESSING,
    UploadStatus.FAILED,
)


class IdempotencyCoordinator:
    """Gate every upload request state transition."""

    def __init__(
        self,
        *,
        repository: UploadRequestRepository,
        retry_limit: int = 3,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if retry_limit <= 0:
            raise ValueError("retry_limit must be > 0")
        self._repository = repository
        self._retry_limit = retry_limit
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def retry_limit(self) -> int:
        return self._retry_limit

    def create_or_get(
        self, *, client_id: str, upload_id: str, descriptor: UploadDescriptor
    ) -> UploadRequest:
        """Return the single record for this key, creating it when novel."""
        created = self._repository.insert_if_absent(
            request_id=generate_ulid_str(),
            client_id=client_id,
            upload_id=upload_id,
            descriptor=descriptor,
        )
        if created is not None:
            with log_context({fields.UPLOAD_REQUEST_ID: created.id}):
                _LOGGER.info("Upload request created")
            return created

        existing = self._repository.get_by_key(client_id=client_id, upload_id=upload_id)
        if existing is None:
            raise UploadConflictError(
                "upload request vanished after losing the creation race",
                metadata={"client_id": client_id, "upload_id": upload_id},
            )
        return existing

    def acquire_for_processing(self, request_id: str) -> bool:
        """Claim a PENDING or retryable FAILED record for one attempt."""
        updated = self._repository.conditional_update(
            request_id=request_id,
            expected=(UploadStatus.PENDING, UploadStatus.FAILED),
            target=UploadStatus.PROCESSING,
            increment_attempt=True,
            failed_attempts_below=self._retry_limit,
        )
        with log_context({fields.UPLOAD_REQUEST_ID: request_id}):
            if updated is None:
                _LOGGER.info("Upload request already claimed or not retryable")
                return False
            _LOGGER.info("Upload request acquired: attempt=%s", updated.attempt_count)
        return True

    def mark_completed(self, request_id: str, file_metadata_id: str) -> UploadRequest:
        """Finish a PROCESSING record; raise if it is no longer PROCESSING."""
        updated = self._repository.conditional_update(
            request_id=request_id,
            expected=(UploadStatus.PROCESSING,),
            target=UploadStatus.COMPLETED,
            file_metadata_id=file_metadata_id,
            completed_at=self._clock(),
        )
        if updated is None:
            current = self._repository.get_by_id(request_id=request_id)
            state = "missing" if current is None else current.status.value
            with log_context({fields.UPLOAD_REQUEST_ID: request_id}):
                _LOGGER.warning("Completion rejected: current_status=%s", state)
            raise StateTransitionError(
                f"cannot complete upload request in state {state}",
                metadata={"upload_request_id": request_id, "status": state},
            )
        return updated

    def mark_failed(
        self,
        request_id: str,
        error: FailureReason,
        *,
        expected: Sequence[UploadStatus] = (UploadStatus.PROCESSING,),
        updated_before: datetime | None = None,
    ) -> bool:
        """Record a failure; a record that moved on is left alone."""
        updated = self._repository.conditional_update(
            request_id=request_id,
            expected=tuple(expected),
            target=UploadStatus.FAILED,
            updated_before=updated_before,
            error_code=error.code,
            error_message=error.message,
        )
        with log_context({fields.UPLOAD_REQUEST_ID: request_id}):
            if updated is None:
                _LOGGER.info("Failure not recorded; record no longer matches")
                return False
            _LOGGER.warning("Upload request failed: code=%s", error.code)
        return True

    def cancel(
        self,
        request_id: str,
        *,
        cancellable: Sequence[UploadStatus] = DEFAULT_CANCELLABLE,
    ) -> bool:
        """Move a non-terminal record to CANCELLED."""
        updated = self._repository.conditional_update(
            request_id=request_id,
            expected=tuple(cancellable),
            target=UploadStatus.CANCELLED,
        )
        return updated is not None

    def find_duplicate_by_checksum(self, client_id: str, checksum: str) -> str | None:
        """Return the file metadata id of a completed upload with equal bytes."""
        match = self._repository.find_completed_by_checksum(
            client_id=client_id, checksum=checksum
        )
        if match is None:
            return None
        return match.file_metadata_id

    def find_duplicate_request(self, client_id: str, checksum: str) -> UploadRequest | None:
        """Return the completed request whose bytes match ``checksum``."""
        return self._repository.find_completed_by_checksum(
            client_id=client_id, checksum=checksum
        )

    def get(self, request_id: str) -> UploadRequest | None:
        return self._repository.get_by_id(request_id=request_id)

    def find(self, client_id: str, upload_id: str) -> UploadRequest | None:
        return self._repository.get_by_key(client_id=client_id, upload_id=upload_id)

    def retries_remaining(self, record: UploadRequest) -> bool:
        """Return whether a FAILED record may be acquired again."""
        return record.attempt_count < self._retry_limit
