"""Shared Postgres substrate: one engine, one session factory, one probe."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.stowage_shared.config import PostgresSettings
from resources.substrates.postgres.engine import create_postgres_engine
from resources.substrates.postgres.health import ping
from resources.substrates.postgres.session import create_session_factory


class PostgresHealthStatus(BaseModel):
    """Postgres substrate readiness payload."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ready: bool
    detail: str


class SharedPostgresSubstrate:
    """Own the pooled engine and session factory for one process."""

    def __init__(
        self, *, settings: PostgresSettings, engine: Engine | None = None
    ) -> None:
        self._settings = settings
        self._engine = create_postgres_engine(settings) if engine is None else engine
        self._session_factory = create_session_factory(self._engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    def health(self) -> PostgresHealthStatus:
        """Return readiness from a bounded ping."""
        ready = ping(self._engine, timeout_seconds=self._settings.health_timeout_seconds)
        return PostgresHealthStatus(
            ready=ready,
            detail="ok" if ready else "postgres ping failed",
        )

    def dispose(self) -> None:
        self._engine.dispose()
