"""Shared ULID primitives."""

from packages.stowage_shared.ids.sqlalchemy import (
    ulid_primary_key_column,
    ulid_reference_column,
)
from packages.stowage_shared.ids.ulid import (
    ULID_BYTES_LENGTH,
    generate_ulid_str,
    is_ulid_str,
    ulid_bytes_to_str,
    ulid_str_to_bytes,
)

__all__ = [
    "ULID_BYTES_LENGTH",
    "generate_ulid_str",
    "is_ulid_str",
    "ulid_bytes_to_str",
    "ulid_primary_key_column",
    "ulid_reference_column",
    "ulid_str_to_bytes",
]
