"""Celery entry point for Upload Authority background sweeps."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from packages.stowage_shared.config import StowageSettings, load_settings
from packages.stowage_shared.logging import configure_logging
from services.state.upload_authority.config import resolve_upload_authority_settings
from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import SweepReport
from services.state.upload_authority.reclaimer import StalledRequestReclaimer

RECLAIM_STALLED_TASK = "upload_authority.reclaim_stalled"
PURGE_EXPIRED_TASK = "upload_authority.purge_expired"


def _env(var: str, default: str) -> str:
    return os.environ.get(var, default)


@lru_cache(maxsize=1)
def _settings() -> StowageSettings:
    return load_settings()


celery_app = Celery("stowage.upload_authority")
celery_app.conf.broker_url = _env("STOWAGE_CELERY_BROKER_URL", "redis://redis:6379/1")
celery_app.conf.result_backend = _env(
    "STOWAGE_CELERY_RESULT_BACKEND", "redis://redis:6379/2"
)
celery_app.conf.task_default_queue = _env("STOWAGE_CELERY_QUEUE_NAME", "upload_authority")
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.enable_utc = True
celery_app.conf.timezone = "UTC"

beat_schedule = celery_app.conf.get("beat_schedule")
if beat_schedule is None:
    beat_schedule = {}
beat_schedule[RECLAIM_STALLED_TASK] = {
    "task": RECLAIM_STALLED_TASK,
    "schedule": resolve_upload_authority_settings(_settings()).reclaim_interval_seconds,
}
beat_schedule[PURGE_EXPIRED_TASK] = {
    "task": PURGE_EXPIRED_TASK,
    "schedule": crontab(hour=3, minute=0),
}
celery_app.conf.beat_schedule = beat_schedule


@setup_logging.connect
def _configure_worker_logging(**_: Any) -> None:
    """Replace Celery's logging setup with the shared structured handler."""
    logging_settings = _settings().logging
    configure_logging(
        level=logging_settings.level,
        json_output=logging_settings.json_output,
        service=logging_settings.service,
        environment=logging_settings.environment,
    )


@lru_cache(maxsize=1)
def _reclaimer_factory() -> StalledRequestReclaimer:
    """Build the process-wide reclaimer on first use."""
    from services.state.upload_authority.data import (
        PostgresUploadRequestRepository,
        UploadPostgresRuntime,
    )

    settings = _settings()
    service_settings = resolve_upload_authority_settings(settings)
    runtime = UploadPostgresRuntime.from_settings(settings)
    runtime.ensure_schema()
    repository = PostgresUploadRequestRepository(runtime.schema_sessions)
    return StalledRequestReclaimer(
        coordinator=IdempotencyCoordinator(
            repository=repository, retry_limit=service_settings.retry_limit
        ),
        repository=repository,
        settings=service_settings,
    )


def _report_counts(report: SweepReport) -> dict[str, int]:
    return {
        "examined": report.examined,
        "affected": report.affected,
        "skipped": report.skipped,
        "failed": report.failed,
    }


@celery_app.task(name=RECLAIM_STALLED_TASK)
def reclaim_stalled() -> dict[str, int]:
    """Celery beat job that fails upload requests stuck in PROCESSING."""
    return _report_counts(_reclaimer_factory().reclaim_stalled())


@celery_app.task(name=PURGE_EXPIRED_TASK)
def purge_expired() -> dict[str, int]:
    """Celery beat job that deletes terminal upload requests past retention."""
    return _report_counts(_reclaimer_factory().purge_expired())
