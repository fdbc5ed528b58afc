"""Request validation models and object-key helpers for upload submissions."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from packages.stowage_shared.ids import is_ulid_str
from services.state.upload_authority.errors import UploadValidationError

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_CLIENT_ID_LENGTH = 100
MAX_UPLOAD_ID_LENGTH = 200

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class _ValidationModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def _require_ulid(value: str) -> str:
    if not is_ulid_str(value):
        raise ValueError("must be a canonical ULID string")
    return value


class SubmitUploadRequest(_ValidationModel):
    """Validated shape of one upload submission."""

    client_id: str = Field(min_length=1, max_length=MAX_CLIENT_ID_LENGTH)
    upload_id: str = Field(min_length=1, max_length=MAX_UPLOAD_ID_LENGTH)
    filename: str = Field(min_length=1)
    size_bytes: int = Field(gt=0)
    content_type: str = DEFAULT_CONTENT_TYPE
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("client_id", "upload_id", "filename", mode="before")
    @classmethod
    def _strip_identifiers(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("content_type", mode="before")
    @classmethod
    def _default_content_type(cls, value: object) -> object:
        """Blank or missing content types fall back to ``application/octet-stream``."""
        if value is None:
            return DEFAULT_CONTENT_TYPE
        if isinstance(value, str):
            normalized = value.strip().lower()
            return normalized or DEFAULT_CONTENT_TYPE
        return value


class UploadReferenceRequest(_ValidationModel):
    """Validated request shape for operations keyed by upload request id."""

    upload_request_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1, max_length=MAX_CLIENT_ID_LENGTH)

    @field_validator("upload_request_id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _require_ulid(value)


class FileReferenceRequest(_ValidationModel):
    """Validated request shape for operations keyed by file metadata id."""

    file_metadata_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1, max_length=MAX_CLIENT_ID_LENGTH)

    @field_validator("file_metadata_id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _require_ulid(value)


def validate_submission(
    *,
    client_id: str,
    upload_id: str,
    filename: str,
    size_bytes: int,
    content_type: str | None,
    metadata: dict[str, str] | None,
    max_file_size_bytes: int,
    allowed_content_types: tuple[str, ...] = (),
) -> SubmitUploadRequest:
    """Validate one submission or raise ``UploadValidationError``.

    Field shape comes from ``SubmitUploadRequest``; the size ceiling and the
    optional content-type allow-list come from service settings.
    """
    try:
        request = SubmitUploadRequest.model_validate(
            {
                "client_id": client_id,
                "upload_id": upload_id,
                "filename": filename,
                "size_bytes": size_bytes,
                "content_type": content_type,
                "metadata": {} if metadata is None else metadata,
            }
        )
    except ValidationError as exc:
        raise UploadValidationError(
            "upload request validation failed",
            field_errors={
                ".".join(str(part) for part in err["loc"]): err["msg"]
                for err in exc.errors()
            },
        ) from exc

    if request.size_bytes > max_file_size_bytes:
        raise UploadValidationError(
            "file exceeds max_file_size_bytes",
            field_errors={
                "size_bytes": f"must be at most {max_file_size_bytes} bytes",
            },
        )
    if allowed_content_types and request.content_type not in allowed_content_types:
        raise UploadValidationError(
            "content type is not allowed",
            field_errors={"content_type": f"{request.content_type} is not allowed"},
        )
    return request


def sanitize_filename(filename: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_object_key(
    *, client_id: str, upload_id: str, filename: str, now: datetime
) -> str:
    """Return ``{client}/{yyyy}/{mm}/{dd}/{upload_id}/{epoch_ms}-{filename}``."""
    epoch_ms = int(now.timestamp() * 1000)
    return (
        f"{client_id}/{now:%Y}/{now:%m}/{now:%d}/{upload_id}/"
        f"{epoch_ms}-{sanitize_filename(filename)}"
    )
