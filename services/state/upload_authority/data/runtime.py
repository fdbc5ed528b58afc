"""Upload Authority-owned Postgres runtime wiring."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine, text
from sqlalchemy.orm import Session, sessionmaker

from packages.stowage_shared.config import StowageSettings
from resources.substrates.postgres import (
    ServiceSchemaSessionProvider,
    create_postgres_engine,
    create_session_factory,
    ping,
    resolve_postgres_settings,
)
from services.state.upload_authority.component import SERVICE_SCHEMA
from services.state.upload_authority.data.schema import metadata


@dataclass(frozen=True)
class UploadPostgresRuntime:
    """Concrete handle for schema-scoped Postgres access."""

    engine: Engine
    session_factory: sessionmaker[Session]
    schema_sessions: ServiceSchemaSessionProvider
    health_timeout_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: StowageSettings) -> "UploadPostgresRuntime":
        """Build the service DB runtime from typed application settings."""
        postgres_config = resolve_postgres_settings(settings)
        return cls.from_engine(
            create_postgres_engine(postgres_config),
            health_timeout_seconds=postgres_config.health_timeout_seconds,
        )

    @classmethod
    def from_engine(
        cls, engine: Engine, *, health_timeout_seconds: float = 1.0
    ) -> "UploadPostgresRuntime":
        session_factory = create_session_factory(engine)
        return cls(
            engine=engine,
            session_factory=session_factory,
            schema_sessions=ServiceSchemaSessionProvider(
                session_factory=session_factory,
                schema=SERVICE_SCHEMA,
            ),
            health_timeout_seconds=health_timeout_seconds,
        )

    def ensure_schema(self) -> None:
        """Create the service schema and its tables when they are missing."""
        with self.engine.begin() as conn:
            conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SERVICE_SCHEMA}"))
            metadata.create_all(
                conn.execution_options(schema_translate_map={None: SERVICE_SCHEMA})
            )

    def is_healthy(self) -> bool:
        """Return ``True`` when backing Postgres connection is reachable."""
        return ping(self.engine, timeout_seconds=self.health_timeout_seconds)
