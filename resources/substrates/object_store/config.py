"""Pydantic settings for the object store substrate component."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from packages.stowage_shared.config import StowageSettings, resolve_component_settings
from resources.substrates.object_store.component import RESOURCE_COMPONENT_ID


class ObjectStoreSettings(BaseModel):
    """Backend selection and connection settings for blob persistence.

    ``s3`` talks to any S3-compatible endpoint (AWS, MinIO, R2) using
    path-style addressing; ``filesystem`` keeps objects under ``root_dir``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: Literal["s3", "filesystem"] = "s3"
    endpoint_url: str | None = None
    region_name: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    public_base_url: str | None = None
    ensure_bucket: bool = True
    root_dir: str = "./var/objects"
    temp_prefix: str = "objtmp"
    fsync_writes: bool = True

    @field_validator("root_dir", "temp_prefix")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        normalized = value.strip()
        if normalized == "":
            raise ValueError("value is required")
        return normalized

    @field_validator("endpoint_url", "public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None or value.strip() == "":
            return None
        return value.strip().rstrip("/")

    def root_path(self) -> Path:
        """Return the expanded root path for the filesystem backend."""
        return Path(self.root_dir).expanduser().resolve()


def resolve_object_store_settings(settings: StowageSettings) -> ObjectStoreSettings:
    """Resolve settings from ``components.substrate.object_store``."""
    return resolve_component_settings(
        settings=settings,
        component_id=RESOURCE_COMPONENT_ID,
        model=ObjectStoreSettings,
    )
