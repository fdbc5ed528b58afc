"""Settings resolution for the shared Postgres substrate."""

from __future__ import annotations

from packages.stowage_shared.config import PostgresSettings, StowageSettings


def resolve_postgres_settings(settings: StowageSettings) -> PostgresSettings:
    """Return the root ``postgres`` subtree of runtime settings."""
    return settings.postgres


__all__ = ["PostgresSettings", "resolve_postgres_settings"]
