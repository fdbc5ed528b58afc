"""Exception taxonomy raised inside the Upload Authority Service.

Every exception carries a stable code and converts to a shared
``ErrorDetail`` so the public API can return it inside a failed envelope.
"""

from __future__ import annotations

from typing import Mapping

from packages.stowage_shared.errors import (
    ErrorDetail,
    conflict_error,
    dependency_error,
    internal_error,
    not_found_error,
    validation_error,
)
from services.state.upload_authority.domain import FailureReason

UPLOAD_FAILED = "UPLOAD_FAILED"
PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"
WORKER_POOL_REJECTED = "WORKER_POOL_REJECTED"


class UploadAuthorityError(Exception):
    """Base class for Upload Authority Service errors."""

    code = "UPLOAD_AUTHORITY_ERROR"

    def __init__(self, message: str, *, metadata: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.metadata = {} if metadata is None else dict(metadata)

    def to_error_details(self) -> list[ErrorDetail]:
        return [internal_error(self.message, code=self.code, metadata=self.metadata)]

    def to_failure_reason(self) -> FailureReason:
        return FailureReason(code=self.code, message=self.message)


class UploadValidationError(UploadAuthorityError):
    """Request rejected before anything was persisted."""

    code = "UPLOAD_VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field_errors: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.field_errors = {} if field_errors is None else dict(field_errors)

    def to_error_details(self) -> list[ErrorDetail]:
        if not self.field_errors:
            return [validation_error(self.message, code=self.code)]
        return [
            validation_error(
                f"{field}: {reason}",
                code=self.code,
                metadata={"field": field},
            )
            for field, reason in self.field_errors.items()
        ]


class UploadConflictError(UploadAuthorityError):
    """Request collides with the current persisted state."""

    code = "UPLOAD_CONFLICT"

    def to_error_details(self) -> list[ErrorDetail]:
        return [conflict_error(self.message, code=self.code, metadata=self.metadata)]


class UploadNotFoundError(UploadAuthorityError):
    """Unknown identifier, or one owned by a different client."""

    code = "UPLOAD_NOT_FOUND"

    def to_error_details(self) -> list[ErrorDetail]:
        return [not_found_error(self.message, code=self.code, metadata=self.metadata)]


class StorageError(UploadAuthorityError):
    """Object store failure while moving bytes."""

    code = "STORAGE_FAILURE"

    def to_error_details(self) -> list[ErrorDetail]:
        return [
            dependency_error(
                self.message, code=self.code, retryable=True, metadata=self.metadata
            )
        ]


class StateTransitionError(UploadAuthorityError):
    """A transition was attempted from a state that does not allow it."""

    code = "INVALID_STATE_TRANSITION"


class RetryExhaustedError(UploadAuthorityError):
    """A FAILED request has used every attempt it is allowed."""

    code = "RETRY_EXHAUSTED"
