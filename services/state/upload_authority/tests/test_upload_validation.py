"""Tests for submission validation, filename sanitizing and key layout."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from services.state.upload_authority.errors import UploadValidationError
from services.state.upload_authority.validation import (
    DEFAULT_CONTENT_TYPE,
    FileReferenceRequest,
    build_object_key,
    sanitize_filename,
    validate_submission,
)


def _validate(**overrides: object):
    values: dict[str, object] = {
        "client_id": "client-a",
        "upload_id": "upload-1",
        "filename": "photo.png",
        "size_bytes": 10,
        "content_type": "image/png",
        "metadata": None,
        "max_file_size_bytes": 100,
    }
    values.update(overrides)
    return validate_submission(**values)  # type: ignore[arg-type]


def test_blank_content_type_falls_back_to_octet_stream() -> None:
    assert _validate(content_type="  ").content_type == DEFAULT_CONTENT_TYPE
    assert _validate(content_type=None).content_type == DEFAULT_CONTENT_TYPE
    assert _validate(content_type="Image/PNG").content_type == "image/png"


def test_identifier_length_limits() -> None:
    assert _validate(client_id="c" * 100).client_id == "c" * 100
    with pytest.raises(UploadValidationError) as exc_info:
        _validate(client_id="c" * 101, upload_id="u" * 201)

    assert set(exc_info.value.field_errors) == {"client_id", "upload_id"}


def test_size_must_fit_the_configured_ceiling() -> None:
    assert _validate(size_bytes=100).size_bytes == 100
    with pytest.raises(UploadValidationError, match="max_file_size_bytes"):
        _validate(size_bytes=101)


def test_allow_list_is_optional() -> None:
    assert _validate(allowed_content_types=()).content_type == "image/png"
    with pytest.raises(UploadValidationError, match="not allowed"):
        _validate(allowed_content_types=("application/pdf",))


def test_validation_errors_map_to_one_detail_per_field() -> None:
    with pytest.raises(UploadValidationError) as exc_info:
        _validate(filename="", size_bytes=0)

    details = exc_info.value.to_error_details()
    assert sorted(detail.metadata["field"] for detail in details) == [
        "filename",
        "size_bytes",
    ]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("report.pdf", "report.pdf"),
        ("my report (1).pdf", "my_report__1_.pdf"),
        ("../../etc/passwd", ".._.._etc_passwd"),
        ("résumé.doc", "r_sum_.doc"),
    ],
)
def test_sanitize_filename(raw: str, expected: str) -> None:
    assert sanitize_filename(raw) == expected


def test_build_object_key_layout() -> None:
    now = datetime(2026, 1, 5, 8, 30, tzinfo=UTC)

    key = build_object_key(
        client_id="client-a", upload_id="upload-1", filename="a b.txt", now=now
    )

    assert key == f"client-a/2026/01/05/upload-1/{int(now.timestamp() * 1000)}-a_b.txt"


def test_file_reference_requires_ulid() -> None:
    with pytest.raises(ValidationError):
        FileReferenceRequest(file_metadata_id="abc", client_id="client-a")
