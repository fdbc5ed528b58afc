"""Pydantic settings for Upload Authority Service behavior."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.stowage_shared.config import StowageSettings, resolve_component_settings
from services.state.upload_authority.component import SERVICE_COMPONENT_ID

DEFAULT_MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024


class UploadAuthoritySettings(BaseModel):
    """Upload Authority Service runtime behavior settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    bucket: str = "uploads"
    max_file_size_bytes: int = Field(default=DEFAULT_MAX_FILE_SIZE_BYTES, gt=0)
    allowed_content_types: tuple[str, ...] = ()
    retry_limit: int = Field(default=3, gt=0)
    stalled_threshold_seconds: int = Field(default=1800, gt=0)
    retention_days: int = Field(default=30, gt=0)
    sweep_batch_size: int = Field(default=100, gt=0)
    reclaimer_enabled: bool = True
    reclaim_interval_seconds: float = Field(default=30.0, gt=0)
    worker_pool_size: int = Field(default=4, gt=0)
    worker_queue_size: int = Field(default=32, ge=0)
    default_presign_minutes: int = Field(default=60, ge=1, le=1440)

    @field_validator("bucket")
    @classmethod
    def _validate_bucket(cls, value: str) -> str:
        normalized = value.strip()
        if normalized == "":
            raise ValueError("bucket is required")
        return normalized

    @field_validator("allowed_content_types")
    @classmethod
    def _normalize_content_types(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        """Lowercase and de-duplicate the allow-list, keeping order."""
        seen: dict[str, None] = {}
        for item in value:
            normalized = item.strip().lower()
            if normalized:
                seen[normalized] = None
        return tuple(seen)


def resolve_upload_authority_settings(
    settings: StowageSettings,
) -> UploadAuthoritySettings:
    """Resolve settings from ``components.service.upload_authority``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=UploadAuthoritySettings,
    )
