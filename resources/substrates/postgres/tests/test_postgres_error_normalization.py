"""Tests for Postgres exception normalization into the shared error taxonomy."""

from __future__ import annotations

from packages.stowage_shared.errors import ErrorCategory, codes
from resources.substrates.postgres.errors import normalize_postgres_error


def test_unique_violation_maps_to_conflict() -> None:
    class UniqueViolation(Exception):
        """Synthetic unique-violation exception."""

    error = normalize_postgres_error(
        UniqueViolation("duplicate key value violates unique constraint")
    )
    assert error.category == ErrorCategory.CONFLICT
    assert error.code == codes.ALREADY_EXISTS


def test_operational_errors_map_to_retryable_dependency() -> None:
    class OperationalError(Exception):
        """Synthetic operational exception."""

    error = normalize_postgres_error(OperationalError("connection refused"))
    assert error.category == ErrorCategory.DEPENDENCY
    assert error.retryable is True
    assert error.metadata == {"exception_type": "OperationalError"}


def test_programming_errors_map_to_non_retryable_dependency() -> None:
    class ProgrammingError(Exception):
        """Synthetic programming exception."""

    error = normalize_postgres_error(ProgrammingError("bad SQL"))
    assert error.category == ErrorCategory.DEPENDENCY
    assert error.retryable is False


def test_unknown_exception_maps_to_internal() -> None:
    error = normalize_postgres_error(RuntimeError("boom"))
    assert error.category == ErrorCategory.INTERNAL
    assert error.code == codes.UNEXPECTED_EXCEPTION
