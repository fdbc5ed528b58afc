"""Background sweeps over upload requests that nobody is driving anymore."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable, Sequence

from packages.stowage_shared.logging import fields, get_logger, log_context
from services.state.upload_authority.config import UploadAuthoritySettings
from services.state.upload_authority.coordinator import IdempotencyCoordinator
from services.state.upload_authority.domain import (
    FailureReason,
    SweepReport,
    UploadRequest,
    UploadStatus,
)
from services.state.upload_authority.errors import PROCESSING_TIMEOUT
from services.state.upload_authority.interfaces import UploadRequestRepository

_LOGGER = get_logger(__name__)

RECLAIM_STALLED = "reclaim_stalled"
PURGE_EXPIRED = "purge_expired"

_TERMINAL_STATUSES = (UploadStatus.COMPLETED, UploadStatus.FAILED)


class StalledRequestReclaimer:
    """Fail stalled PROCESSING requests and purge old terminal ones.

    Both sweeps read candidates in batches and apply each change with a
    conditional write that re-checks staleness, so a record that moved on
    between the read and the write is skipped rather than clobbered.
    """

    def __init__(
        self,
        *,
        coordinator: IdempotencyCoordinator,
        repository: UploadRequestRepository,
        settings: UploadAuthoritySettings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._repository = repository
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))

    def reclaim_stalled(self, now: datetime | None = None) -> SweepReport:
        """Mark PROCESSING records idle past the stall threshold as FAILED."""
        now = now or self._clock()
        cutoff = now - timedelta(seconds=self._settings.stalled_threshold_seconds)
        reason = FailureReason(
            code=PROCESSING_TIMEOUT,
            message=(
                "processing exceeded "
                f"{self._settings.stalled_threshold_seconds}s without progress"
            ),
        )

        def _fail(record: UploadRequest) -> bool:
            return self._coordinator.mark_failed(
                record.id,
                reason,
                expected=(UploadStatus.PROCESSING,),
                updated_before=cutoff,
            )

        return self._sweep(
            RECLAIM_STALLED,
            statuses=(UploadStatus.PROCESSING,),
            cutoff=cutoff,
            started_at=now,
            action=_fail,
        )

    def purge_expired(self, now: datetime | None = None) -> SweepReport:
        """Delete COMPLETED and FAILED records older than the retention window.

        Only the upload request row goes; stored objects and file metadata
        stay where they are.
        """
        now = now or self._clock()
        cutoff = now - timedelta(days=self._settings.retention_days)

        def _delete(record: UploadRequest) -> bool:
            return self._repository.delete_if(
                request_id=record.id,
                statuses=_TERMINAL_STATUSES,
                updated_before=cutoff,
            )

        return self._sweep(
            PURGE_EXPIRED,
            statuses=_TERMINAL_STATUSES,
            cutoff=cutoff,
            started_at=now,
            action=_delete,
        )

    def _sweep(
        self,
        name: str,
        *,
        statuses: Sequence[UploadStatus],
        cutoff: datetime,
        started_at: datetime,
        action: Callable[[UploadRequest], bool],
    ) -> SweepReport:
        if not self._settings.reclaimer_enabled:
            return SweepReport(sweep=name, started_at=started_at, finished_at=started_at)

        examined = affected = skipped = failed = 0
        batch_size = self._settings.sweep_batch_size
        cursor: tuple[datetime, str] | None = None
        with log_context({fields.SWEEP: name}):
            while True:
                batch = self._repository.find_by_status_updated_before(
                    statuses=statuses,
                    updated_before=cutoff,
                    limit=batch_size,
                    after=cursor,
                )
                for record in batch:
                    examined += 1
                    try:
                        if action(record):
                            affected += 1
                        else:
                            skipped += 1
                    except Exception:  # noqa: BLE001
                        failed += 1
                        with log_context({fields.UPLOAD_REQUEST_ID: record.id}):
                            _LOGGER.warning("Sweep action failed", exc_info=True)

                if len(batch) < batch_size:
                    break
                # Page past the last key read; failed records stay behind it.
                cursor = (batch[-1].updated_at, batch[-1].id)

            report = SweepReport(
                sweep=name,
                examined=examined,
                affected=affected,
                skipped=skipped,
                failed=failed,
                started_at=started_at,
                finished_at=self._clock(),
            )
            _LOGGER.info(
                "Sweep finished: examined=%s affected=%s skipped=%s failed=%s",
                examined,
                affected,
                skipped,
                failed,
            )
        return report
