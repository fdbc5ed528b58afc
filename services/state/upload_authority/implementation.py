"""Concrete Upload Authority Service implementation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, BinaryIO, Callable, Mapping

from pydantic import BaseModel, ValidationError

from packages.stowage_shared.config import StowageSettings
from packages.stowage_shared.envelope import (
    Envelope,
    EnvelopeMeta,
    failure,
    success,
    validate_meta,
)
from packages.stowage_shared.errors import (
    ErrorDetail,
    codes,
    dependency_error,
    exception_to_error,
    not_found_error,
    validation_error,
)
from packages.stowage_shared.logging import get_logger, public_api_instrumented
from resources.substrates.object_store import (
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreError,
    build_object_store,
    resolve_object_store_settings,
)
from resources.substrates.postgres import normalize_postgres_error
from services.state.upload_authority.component import SERVICE_COMPONENT_ID
from services.state.upload_authority.config import (
    UploadAuthoritySettings,
    resolve_upload_authority_settings,
)
from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import (
    DownloadResult,
    FileMetadata,
    FileStatus,
    HealthStatus,
    PresignedUrl,
    UploadOutcome,
)
from services.state.upload_authority.errors import (
    StateTransitionError,
    UploadAuthorityError,
    UploadConflictError,
    UploadNotFoundError,
)
from services.state.upload_authority.interfaces import (
    FileMetadataRepository,
    UploadRequestRepository,
)
from services.state.upload_authority.orchestrator import UploadOrchestrator
from services.state.upload_authority.service import UploadAuthorityService
from services.state.upload_authority.validation import (
    FileReferenceRequest,
    UploadReferenceRequest,
)
from services.state.upload_authority.workers import BoundedWorkerPool

_LOGGER = get_logger(__name__)

MIN_PRESIGN_MINUTES = 1
MAX_PRESIGN_MINUTES = 1440


class DefaultUploadAuthorityService(UploadAuthorityService):
    """Default implementation over Postgres records and an object store."""

    def __init__(
        self,
        *,
        settings: UploadAuthoritySettings,
        requests: UploadRequestRepository,
        files: FileMetadataRepository,
        object_store: ObjectStore,
        pool: BoundedWorkerPool | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._requests = requests
        self._files = files
        self._object_store = object_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._coordinator = IdempotencyCoordinator(
            repository=requests,
            retry_limit=settings.retry_limit,
            clock=self._clock,
        )
        self._orchestrator = UploadOrchestrator(
            coordinator=self._coordinator,
            files=files,
            object_store=object_store,
            settings=settings,
            pool=pool,
            clock=self._clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: StowageSettings,
        *,
        object_store: ObjectStore | None = None,
    ) -> "DefaultUploadAuthorityService":
        """Build the service from typed settings and owned resources."""
        from services.state.upload_authority.data import (
            PostgresFileMetadataRepository,
            PostgresUploadRequestRepository,
            UploadPostgresRuntime,
        )

        runtime = UploadPostgresRuntime.from_settings(settings)
        runtime.ensure_schema()
        return cls(
            settings=resolve_upload_authority_settings(settings),
            requests=PostgresUploadRequestRepository(
                runtime.schema_sessions, health_check=runtime.is_healthy
            ),
            files=PostgresFileMetadataRepository(runtime.schema_sessions),
            object_store=object_store
            or build_object_store(settings=resolve_object_store_settings(settings)),
        )

    @property
    def coordinator(self) -> IdempotencyCoordinator:
        return self._coordinator

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop the worker pool; queued attempts finish when ``wait`` is set."""
        self._orchestrator.shutdown(wait=wait)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("client_id", "upload_id"),
    )
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
        errors = validate_meta(meta)
        if errors:
            return failure(meta=meta, errors=errors)

        try:
            outcome = self._orchestrator.submit(
                client_id=client_id,
                upload_id=upload_id,
                stream=content,
                size=size,
                content_type=content_type,
                filename=filename,
                metadata=metadata,
                timeout_seconds=timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(meta=meta, operation="submit_upload", exc=exc)
        return success(meta=meta, payload=outcome)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("client_id", "upload_id"),
    )
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
        """Accept one upload and return before the bytes are stored."""
        errors = validate_meta(meta)
        if errors:
            return failure(meta=meta, errors=errors)

        try:
            outcome = self._orchestrator.submit_async(
                client_id=client_id,
                upload_id=upload_id,
                stream=content,
                size=size,
                content_type=content_type,
                filename=filename,
                metadata=metadata,
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(
                meta=meta, operation="submit_upload_async", exc=exc
            )
        return success(meta=meta, payload=outcome)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("upload_request_id", "client_id"),
    )
    def get_upload_status(
        self, *, meta: EnvelopeMeta, upload_request_id: str, client_id: str
    ) -> Envelope[UploadOutcome]:
        """Rebuild the outcome of one request from persisted state."""
        request, errors = self._validate_request(
            meta=meta,
            model=UploadReferenceRequest,
            payload={"upload_request_id": upload_request_id, "client_id": client_id},
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, UploadReferenceRequest)

        try:
            outcome = self._orchestrator.status(
                upload_request_id=request.upload_request_id,
                client_id=request.client_id,
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(
                meta=meta, operation="get_upload_status", exc=exc
            )
        return success(meta=meta, payload=outcome)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("upload_request_id", "client_id"),
    )
    def cancel_upload(
        self, *, meta: EnvelopeMeta, upload_request_id: str, client_id: str
    ) -> Envelope[bool]:
        """Cancel one request; anything past PROCESSING is a conflict."""
        request, errors = self._validate_request(
            meta=meta,
            model=UploadReferenceRequest,
            payload={"upload_request_id": upload_request_id, "client_id": client_id},
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, UploadReferenceRequest)

        try:
            cancelled = self._orchestrator.cancel(
                upload_request_id=request.upload_request_id,
                client_id=request.client_id,
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(meta=meta, operation="cancel_upload", exc=exc)
        return success(meta=meta, payload=cancelled)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("file_metadata_id", "client_id"),
    )
    def download_file(
        self, *, meta: EnvelopeMeta, file_metadata_id: str, client_id: str
    ) -> Envelope[DownloadResult]:
        """Read one completed file and its bytes."""
        request, errors = self._validate_request(
            meta=meta,
            model=FileReferenceRequest,
            payload={"file_metadata_id": file_metadata_id, "client_id": client_id},
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, FileReferenceRequest)

        try:
            file = self._completed_file(request)
            assert file.storage is not None
            content = self._object_store.get_object(
                bucket=file.storage.bucket, key=file.storage.key
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(meta=meta, operation="download_file", exc=exc)
        return success(
            meta=meta,
            payload=DownloadResult(
                file=file,
                content=content,
                content_type=file.content_type,
                content_length=len(content),
            ),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
        id_fields=("file_metadata_id", "client_id"),
    )
    def get_presigned_url(
        self,
        *,
        meta: EnvelopeMeta,
        file_metadata_id: str,
        client_id: str,
        expiration_minutes: int | None = None,
    ) -> Envelope[PresignedUrl]:
        """Return a download URL valid for 1 to 1440 minutes."""
        request, errors = self._validate_request(
            meta=meta,
            model=FileReferenceRequest,
            payload={"file_metadata_id": file_metadata_id, "client_id": client_id},
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, FileReferenceRequest)

        minutes = _clamp_presign_minutes(
            self._settings.default_presign_minutes
            if expiration_minutes is None
            else expiration_minutes
        )
        try:
            file = self._completed_file(request)
            assert file.storage is not None
            url = self._object_store.presign_get(
                bucket=file.storage.bucket,
                key=file.storage.key,
                expires_in_seconds=minutes * 60,
            )
        except Exception as exc:  # noqa: BLE001
            return self._error_envelope(
                meta=meta, operation="get_presigned_url", exc=exc
            )
        return success(
            meta=meta,
            payload=PresignedUrl(
                file_metadata_id=file.id,
                url=url,
                expiration_minutes=minutes,
                expires_at=self._clock() + timedelta(minutes=minutes),
            ),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=SERVICE_COMPONENT_ID,
    )
    def health(self, *, meta: EnvelopeMeta) -> Envelope[HealthStatus]:
        """Return readiness of the request store and the object store."""
        errors = validate_meta(meta)
        if errors:
            return failure(meta=meta, errors=errors)

        try:
            repository_ready = self._requests.ping()
            store_health = self._object_store.health()
        except Exception as exc:  # noqa: BLE001
            return self._dependency_failure(meta=meta, operation="health", exc=exc)

        details = []
        if not repository_ready:
            details.append("repository unavailable")
        if not store_health.ready:
            details.append(f"object store: {store_health.detail}")
        return success(
            meta=meta,
            payload=HealthStatus(
                service_ready=repository_ready and store_health.ready,
                repository_ready=repository_ready,
                object_store_ready=store_health.ready,
                detail="; ".join(details) or "ok",
            ),
        )

    def _completed_file(self, request: FileReferenceRequest) -> FileMetadata:
        """Return a caller-owned file whose bytes are fully stored."""
        file = self._files.get_by_id(file_metadata_id=request.file_metadata_id)
        if file is None or file.client_id != request.client_id:
            raise UploadNotFoundError(
                "file not found",
                metadata={"file_metadata_id": request.file_metadata_id},
            )
        if file.status != FileStatus.COMPLETED or file.storage is None:
            raise UploadConflictError(
                "file upload has not completed",
                metadata={"file_metadata_id": file.id, "status": file.status.value},
            )
        return file

    def _validate_request(
        self,
        *,
        meta: EnvelopeMeta,
        model: type[BaseModel],
        payload: dict[str, Any] | None,
    ) -> tuple[BaseModel | None, list[ErrorDetail]]:
        """Validate envelope metadata and request payload model."""
        errors = validate_meta(meta)
        if errors:
            return None, errors

        data = payload or {}
        try:
            request = model.model_validate(data)
        except ValidationError as exc:
            return None, [
                validation_error(
                    f"request validation failed: {err['msg']}",
                    code=codes.INVALID_ARGUMENT,
                    metadata={"field": ".".join(str(p) for p in err["loc"])},
                )
                for err in exc.errors()
            ]

        return request, []

    def _error_envelope(
        self, *, meta: EnvelopeMeta, operation: str, exc: Exception
    ) -> Envelope[Any]:
        """Map one raised exception onto failed envelope errors."""
        if isinstance(exc, StateTransitionError):
            _LOGGER.warning("%s hit an invalid state transition: %s", operation, exc)
        if isinstance(exc, UploadAuthorityError):
            return failure(meta=meta, errors=exc.to_error_details())
        if isinstance(exc, ObjectNotFoundError):
            return failure(
                meta=meta,
                errors=[
                    not_found_error(
                        "stored object not found",
                        code=codes.RESOURCE_NOT_FOUND,
                    )
                ],
            )
        if _is_postgres_error(exc):
            return failure(meta=meta, errors=[normalize_postgres_error(exc)])
        if isinstance(exc, ObjectStoreError):
            return self._dependency_failure(meta=meta, operation=operation, exc=exc)
        _LOGGER.error("%s failed unexpectedly", operation, exc_info=exc)
        return failure(meta=meta, errors=[exception_to_error(exc)])

    def _dependency_failure(
        self,
        *,
        meta: EnvelopeMeta,
        operation: str,
        exc: Exception,
    ) -> Envelope[Any]:
        """Map one dependency/runtime exception into structured envelope errors."""
        _LOGGER.warning(
            "%s failed due to dependency error: exception_type=%s",
            operation,
            type(exc).__name__,
            exc_info=exc,
        )
        return failure(
            meta=meta,
            errors=[
                dependency_error(
                    f"{operation} failed",
                    code=codes.DEPENDENCY_FAILURE,
                    metadata={"exception_type": type(exc).__name__},
                )
            ],
        )


def _clamp_presign_minutes(value: int) -> int:
    return max(MIN_PRESIGN_MINUTES, min(MAX_PRESIGN_MINUTES, int(value)))


def _is_postgres_error(exc: Exception) -> bool:
    """Return whether one exception appears to originate from Postgres stack."""
    module = type(exc).__module__
    return module.startswith("sqlalchemy") or module.startswith("psycopg")
