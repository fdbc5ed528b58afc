"""SQLAlchemy helpers for ULID-backed columns."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column
from sqlalchemy.dialects.postgresql import BYTEA

from .ulid import ULID_BYTES_LENGTH


def ulid_primary_key_column(name: str = "id") -> Column[bytes]:
    """Return a BYTEA primary-key column constrained to 16-byte ULIDs."""
    return Column(
        name,
        BYTEA,
        ulid_length_check(name),
        primary_key=True,
        nullable=False,
    )


def ulid_reference_column(name: str, *, nullable: bool = False) -> Column[bytes]:
    """Return a BYTEA column holding a ULID that points at another row.

    No foreign key is declared; referenced rows may be purged independently.
    """
    return Column(name, BYTEA, ulid_length_check(name), nullable=nullable)


def ulid_length_check(column_name: str) -> CheckConstraint:
    """Return a CHECK constraint enforcing fixed 16-byte ULID storage."""
    return CheckConstraint(
        f"octet_length({column_name}) = {ULID_BYTES_LENGTH}",
        name=f"ck_{column_name}_ulid_16",
    )
