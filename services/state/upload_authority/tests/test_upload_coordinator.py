"""Concurrency and state-machine tests for the idempotency coordinator."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import (
    FailureReason,
    UploadDescriptor,
    UploadStatus,
)
from services.state.upload_authority.errors import (
    StateTransitionError,
    UploadConflictError,
)
from services.state.upload_authority.tests.fakes import (
    FakeUploadRequestRepository,
    TickingClock,
)

_DESCRIPTOR = UploadDescriptor(
    original_filename="report.pdf",
    content_type="application/pdf",
    size_bytes=4,
    checksum="a" * 64,
)
_BOOM = FailureReason(code="STORAGE_FAILURE", message="boom")


def _coordinator(
    *, retry_limit: int = 3
) -> tuple[IdempotencyCoordinator, FakeUploadRequestRepository]:
    clock = TickingClock()
    repository = FakeUploadRequestRepository(clock=clock)
    coordinator = IdempotencyCoordinator(
        repository=repository, retry_limit=retry_limit, clock=clock
    )
    return coordinator, repository


def _create(coordinator: IdempotencyCoordinator, upload_id: str = "u-1") -> str:
    return coordinator.create_or_get(
        client_id="c-1", upload_id=upload_id, descriptor=_DESCRIPTOR
    ).id


def test_concurrent_create_or_get_converges_on_one_record() -> None:
    """Every concurrent caller for one key must see the same record id."""
    coordinator, repository = _coordinator()
    callers = 16
    barrier = Barrier(callers)

    def _call() -> str:
        barrier.wait()
        return _create(coordinator)

    with ThreadPoolExecutor(max_workers=callers) as pool:
        ids = list(pool.map(lambda _: _call(), range(callers)))

    assert len(set(ids)) == 1
    assert len(repository.rows) == 1
    assert repository.insert_calls == callers


def test_concurrent_acquire_has_exactly_one_winner() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    callers = 16
    barrier = Barrier(callers)

    def _call() -> bool:
        barrier.wait()
        return coordinator.acquire_for_processing(request_id)

    with ThreadPoolExecutor(max_workers=callers) as pool:
        results = list(pool.map(lambda _: _call(), range(callers)))

    assert results.count(True) == 1
    record = repository.rows[request_id]
    assert record.status == UploadStatus.PROCESSING
    assert record.attempt_count == 1


def test_cancel_and_acquire_race_on_one_predicate() -> None:
    """A PENDING record ends up either PROCESSING or CANCELLED, never both."""
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    barrier = Barrier(2)

    def _acquire() -> bool:
        barrier.wait()
        return coordinator.acquire_for_processing(request_id)

    def _cancel() -> bool:
        barrier.wait()
        return coordinator.cancel(
            request_id, cancellable=(UploadStatus.PENDING,)
        )

    with ThreadPoolExecutor(max_workers=2) as pool:
        acquired = pool.submit(_acquire)
        cancelled = pool.submit(_cancel)

    assert acquired.result() != cancelled.result()
    expected = UploadStatus.PROCESSING if acquired.result() else UploadStatus.CANCELLED
    assert repository.rows[request_id].status == expected


def test_create_or_get_raises_conflict_when_reread_finds_nothing() -> None:
    coordinator, repository = _coordinator()
    repository.insert_if_absent = lambda **_: None  # type: ignore[method-assign]

    with pytest.raises(UploadConflictError):
        _create(coordinator)


def test_failed_record_is_reacquirable_until_retry_limit() -> None:
    coordinator, repository = _coordinator(retry_limit=2)
    request_id = _create(coordinator)

    assert coordinator.acquire_for_processing(request_id) is True
    assert coordinator.mark_failed(request_id, _BOOM) is True
    assert coordinator.acquire_for_processing(request_id) is True
    assert coordinator.mark_failed(request_id, _BOOM) is True

    assert coordinator.acquire_for_processing(request_id) is False
    record = repository.rows[request_id]
    assert record.status == UploadStatus.FAILED
    assert record.attempt_count == 2
    assert coordinator.retries_remaining(record) is False


def test_acquire_clears_previous_error() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    coordinator.acquire_for_processing(request_id)
    coordinator.mark_failed(request_id, _BOOM)
    assert repository.rows[request_id].error_code == "STORAGE_FAILURE"

    coordinator.acquire_for_processing(request_id)

    assert repository.rows[request_id].error_code is None
    assert repository.rows[request_id].error_message is None


def test_mark_completed_requires_processing() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)

    with pytest.raises(StateTransitionError, match="PENDING"):
        coordinator.mark_completed(request_id, "01J00000000000000000000000")

    coordinator.acquire_for_processing(request_id)
    completed = coordinator.mark_completed(request_id, "01J00000000000000000000000")

    assert completed.status == UploadStatus.COMPLETED
    assert completed.file_metadata_id == "01J00000000000000000000000"
    assert completed.completed_at is not None
    assert repository.rows[request_id].attempt_count == 1


def test_mark_failed_is_a_noop_when_record_moved_on() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    coordinator.acquire_for_processing(request_id)
    coordinator.mark_completed(request_id, "01J00000000000000000000000")

    assert coordinator.mark_failed(request_id, _BOOM) is False
    assert repository.rows[request_id].status == UploadStatus.COMPLETED


def test_mark_failed_from_pending_when_allowed() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)

    assert coordinator.mark_failed(request_id, _BOOM) is False
    assert (
        coordinator.mark_failed(
            request_id, _BOOM, expected=(UploadStatus.PENDING,)
        )
        is True
    )
    assert repository.rows[request_id].attempt_count == 0


@pytest.mark.parametrize(
    "terminal",
    [UploadStatus.COMPLETED, UploadStatus.CANCELLED],
)
def test_cancel_rejects_terminal_records(terminal: UploadStatus) -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    repository.put(
        repository.rows[request_id].model_copy(
            update={
                "status": terminal,
                "file_metadata_id": (
                    "01J00000000000000000000000"
                    if terminal == UploadStatus.COMPLETED
                    else None
                ),
            }
        )
    )

    assert coordinator.cancel(request_id) is False
    assert repository.rows[request_id].status == terminal


def test_cancel_accepts_failed_by_default() -> None:
    coordinator, repository = _coordinator()
    request_id = _create(coordinator)
    coordinator.mark_failed(request_id, _BOOM, expected=(UploadStatus.PENDING,))

    assert coordinator.cancel(request_id) is True
    assert repository.rows[request_id].status == UploadStatus.CANCELLED


def test_find_duplicate_by_checksum_returns_oldest_completed_file() -> None:
    coordinator, _ = _coordinator()
    first = _create(coordinator, "u-1")
    second = _create(coordinator, "u-2")
    for request_id, file_id in (
        (first, "01J00000000000000000000001"),
        (second, "01J00000000000000000000002"),
    ):
        coordinator.acquire_for_processing(request_id)
        coordinator.mark_completed(request_id, file_id)

    assert (
        coordinator.find_duplicate_by_checksum("c-1", "a" * 64)
        == "01J00000000000000000000001"
    )
    assert coordinator.find_duplicate_by_checksum("c-2", "a" * 64) is None
    assert coordinator.find("c-1", "u-2").id == second  # type: ignore[union-attr]


def test_retry_limit_must_be_positive() -> None:
    with pytest.raises(ValueError, match="retry_limit"):
        IdempotencyCoordinator(repository=FakeUploadRequestRepository(), retry_limit=0)
