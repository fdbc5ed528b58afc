"""Tests for stalled-request reclamation and retention purging."""

from __future__ import annotations

from datetime import timedelta

from services.state.upload_authority.config import UploadAuthoritySettings
from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import (
    FailureReason,
    UploadDescriptor,
    UploadStatus,
)
from services.state.upload_authority.reclaimer import StalledRequestReclaimer
from services.state.upload_authority.tests.fakes import (
    FakeUploadRequestRepository,
    TickingClock,
)


def _reclaimer(
    **settings: object,
) -> tuple[StalledRequestReclaimer, IdempotencyCoordinator, FakeUploadRequestRepository, TickingClock]:
    clock = TickingClock()
    repository = FakeUploadRequestRepository(clock=clock)
    coordinator = IdempotencyCoordinator(repository=repository, clock=clock)
    reclaimer = StalledRequestReclaimer(
        coordinator=coordinator,
        repository=repository,
        settings=UploadAuthoritySettings(**settings),
        clock=clock,
    )
    return reclaimer, coordinator, repository, clock


def _processing(coordinator: IdempotencyCoordinator, upload_id: str) -> str:
    record = coordinator.create_or_get(
        client_id="c-1",
        upload_id=upload_id,
        descriptor=UploadDescriptor(
            original_filename="a.bin",
            content_type="application/octet-stream",
            size_bytes=1,
            checksum=upload_id.ljust(64, "0"),
        ),
    )
    coordinator.acquire_for_processing(record.id)
    return record.id


def test_stale_processing_fails_and_fresh_processing_is_untouched() -> None:
    reclaimer, coordinator, repository, clock = _reclaimer()
    stale = _processing(coordinator, "stale")
    clock.advance(timedelta(minutes=31))
    fresh = _processing(coordinator, "fresh")

    report = reclaimer.reclaim_stalled()

    assert report.affected == 1
    assert repository.rows[stale].status == UploadStatus.FAILED
    assert repository.rows[stale].error_code == "PROCESSING_TIMEOUT"
    assert repository.rows[fresh].status == UploadStatus.PROCESSING


def test_reclaimed_request_stays_retryable() -> None:
    reclaimer, coordinator, _, clock = _reclaimer()
    stale = _processing(coordinator, "stale")
    clock.advance(timedelta(hours=1))

    reclaimer.reclaim_stalled()

    assert coordinator.acquire_for_processing(stale) is True


def test_reclaim_walks_every_batch() -> None:
    reclaimer, coordinator, repository, clock = _reclaimer(sweep_batch_size=2)
    ids = [_processing(coordinator, f"u{index}") for index in range(5)]
    clock.advance(timedelta(hours=1))

    report = reclaimer.reclaim_stalled()

    assert report.examined == 5
    assert report.affected == 5
    assert all(repository.rows[i].status == UploadStatus.FAILED for i in ids)


def test_purge_removes_only_old_terminal_records() -> None:
    reclaimer, coordinator, repository, clock = _reclaimer(retention_days=30)
    done = _processing(coordinator, "done")
    coordinator.mark_completed(done, "01J00000000000000000000000")
    failed = _processing(coordinator, "failed")
    coordinator.mark_failed(failed, FailureReason(code="X", message="x"))
    stuck = _processing(coordinator, "stuck")
    clock.advance(timedelta(days=31))
    recent = _processing(coordinator, "recent")
    coordinator.mark_completed(recent, "01J00000000000000000000001")

    report = reclaimer.purge_expired()

    assert report.affected == 2
    assert set(repository.rows) == {stuck, recent}


def test_one_failing_record_does_not_block_the_sweep() -> None:
    """Per-record errors are counted and the rest still get purged."""
    reclaimer, coordinator, repository, clock = _reclaimer()
    first = _processing(coordinator, "first")
    coordinator.mark_failed(first, FailureReason(code="X", message="x"))
    second = _processing(coordinator, "second")
    coordinator.mark_failed(second, FailureReason(code="X", message="x"))
    repository.raise_on_delete_ids.add(first)
    clock.advance(timedelta(days=60))

    report = reclaimer.purge_expired()

    assert report.failed == 1
    assert report.affected == 1
    assert set(repository.rows) == {first}


def test_disabled_reclaimer_returns_empty_report() -> None:
    reclaimer, coordinator, repository, clock = _reclaimer(reclaimer_enabled=False)
    stale = _processing(coordinator, "stale")
    clock.advance(timedelta(hours=2))

    report = reclaimer.reclaim_stalled()

    assert (report.examined, report.affected) == (0, 0)
    assert repository.rows[stale].status == UploadStatus.PROCESSING


def test_failing_record_does_not_hide_later_batches() -> None:
    reclaimer, coordinator, repository, clock = _reclaimer(sweep_batch_size=1)
    first = _processing(coordinator, "first")
    coordinator.mark_failed(first, FailureReason(code="X", message="x"))
    second = _processing(coordinator, "second")
    coordinator.mark_failed(second, FailureReason(code="X", message="x"))
    repository.raise_on_delete_ids.add(first)
    clock.advance(timedelta(days=60))

    report = reclaimer.purge_expired()

    assert (report.examined, report.affected, report.failed) == (2, 1, 1)
    assert second not in repository.rows
    assert first in repository.rows
