"""Tests for the Celery sweep tasks and beat schedule."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from celery.schedules import crontab

from services.state.upload_authority import tasks
from services.state.upload_authority.domain import SweepReport

_NOW = datetime(2026, 3, 1, tzinfo=UTC)


class _FakeReclaimer:
    def reclaim_stalled(self) -> SweepReport:
        return SweepReport(
            sweep="reclaim_stalled",
            examined=3,
            affected=2,
            skipped=1,
            started_at=_NOW,
            finished_at=_NOW,
        )

    def purge_expired(self) -> SweepReport:
        return SweepReport(
            sweep="purge_expired", failed=1, started_at=_NOW, finished_at=_NOW
        )


def test_beat_schedule_registers_both_sweeps() -> None:
    schedule = tasks.celery_app.conf.beat_schedule

    reclaim = schedule[tasks.RECLAIM_STALLED_TASK]
    purge = schedule[tasks.PURGE_EXPIRED_TASK]
    assert reclaim["task"] == "upload_authority.reclaim_stalled"
    assert reclaim["schedule"] == 30.0
    assert purge["schedule"] == crontab(hour=3, minute=0)


def test_tasks_return_report_counts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tasks, "_reclaimer_factory", lambda: _FakeReclaimer())

    assert tasks.reclaim_stalled.run() == {
        "examined": 3,
        "affected": 2,
        "skipped": 1,
        "failed": 0,
    }
    assert tasks.purge_expired.run()["failed"] == 1
