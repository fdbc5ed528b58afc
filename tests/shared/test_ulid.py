"""Tests for shared ULID generation, conversion and column helpers."""

from __future__ import annotations

import pytest

from packages.stowage_shared.ids import (
    ULID_BYTES_LENGTH,
    generate_ulid_str,
    is_ulid_str,
    ulid_bytes_to_str,
    ulid_primary_key_column,
    ulid_reference_column,
    ulid_str_to_bytes,
)


def test_generated_ulids_round_trip_through_bytes() -> None:
    value = generate_ulid_str()

    raw = ulid_str_to_bytes(value)

    assert len(value) == 26
    assert len(raw) == ULID_BYTES_LENGTH
    assert ulid_bytes_to_str(raw) == value


def test_ulids_sort_by_timestamp() -> None:
    earlier = generate_ulid_str(timestamp_ms=1_700_000_000_000)
    later = generate_ulid_str(timestamp_ms=1_700_000_000_001)

    assert earlier < later
    assert ulid_str_to_bytes(earlier) < ulid_str_to_bytes(later)


def test_lowercase_input_is_accepted() -> None:
    value = generate_ulid_str()

    assert ulid_str_to_bytes(value.lower()) == ulid_str_to_bytes(value)


@pytest.mark.parametrize("value", ["", "short", "U" * 26, "01J0000000000000000000000!"])
def test_invalid_strings_are_rejected(value: str) -> None:
    assert is_ulid_str(value) is False
    with pytest.raises(ValueError):
        ulid_str_to_bytes(value)


def test_timestamp_out_of_range_is_rejected() -> None:
    with pytest.raises(ValueError, match="48-bit"):
        generate_ulid_str(timestamp_ms=1 << 48)


def test_bytes_length_is_enforced() -> None:
    with pytest.raises(ValueError, match="16 bytes"):
        ulid_bytes_to_str(b"\x00" * 15)


def test_column_helpers_attach_length_checks() -> None:
    primary = ulid_primary_key_column()
    reference = ulid_reference_column("upload_request_id", nullable=True)

    assert primary.primary_key is True
    assert reference.nullable is True
    assert reference.foreign_keys == set()
    assert {c.name for c in primary.constraints} == {"ck_id_ulid_16"}
    assert {c.name for c in reference.constraints} == {"ck_upload_request_id_ulid_16"}
