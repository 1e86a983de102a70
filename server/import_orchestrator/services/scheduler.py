"""Polling scheduler: claims pending work and runs its jobs."""
from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.batch.context import BatchStatus
from import_orchestrator.batch.job import JobRunner
from import_orchestrator.core.db import session_scope, translate_db_errors, utcnow
from import_orchestrator.core.exceptions import first_line
from import_orchestrator.core.metrics import BatchMetricsService
from import_orchestrator.models.work_status import WorkStatus
from import_orchestrator.schemas.job_parameters import FINAL_WORK, START_DATE, WST_IDEN

from .execution_repository import ExecutionRepository
from .work_registry import WorkRegistry
from .work_repository import WorkRepository

logger = logging.getLogger(__name__)


class Scheduler:
    """Claims one PENDING work status per tick and runs the jobs of its works.

    ``tick`` is safe to call from several places (a loop thread, a Celery beat
    task); overlapping calls in one process are dropped rather than queued.
    Across processes the atomic claim keeps each row with a single runner.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        work_registry: WorkRegistry,
        job_runner: JobRunner,
        *,
        poll_interval_seconds: float = 10.0,
        reaper_threshold_seconds: float = 3600.0,
        shutdown_event: threading.Event | None = None,
        metrics: BatchMetricsService | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._work_registry = work_registry
        self._job_runner = job_runner
        self.poll_interval_seconds = poll_interval_seconds
        self.reaper_threshold_seconds = reaper_threshold_seconds
        self._shutdown = shutdown_event or threading.Event()
        self._metrics = metrics
        self._tick_lock = threading.Lock()

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown

    def tick(self) -> WorkStatus | None:
        """Claim and process at most one work status.

        Returns:
            The claimed WorkStatus, or None if nothing was claimed
        """
        if self._shutdown.is_set():
            return None
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running; skipping")
            return None
        try:
            with translate_db_errors("claim pending work"), session_scope(self._session_factory) as session:
                work_status = WorkRepository(session).claim_next_pending()
            if work_status is None:
                return None

            logger.info(f"Claimed work status {work_status.id} ({work_status.work_iden})")
            try:
                self._process(work_status)
            except Exception as exc:
                logger.error(f"Work status {work_status.id} failed: {exc}", exc_info=True)
                self._fail(work_status, exc)
            self._publish_status_counts()
            return work_status
        finally:
            self._tick_lock.release()

    def _process(self, work_status: WorkStatus) -> None:
        works = self._work_registry.resolve(work_status.work_iden)
        last_index = len(works) - 1
        for index, work in enumerate(works):
            parameters = {
                WST_IDEN: work_status.id,
                START_DATE: int(time.time() * 1000),
                FINAL_WORK: index == last_index,
            }
            logger.info(f"Running pipeline '{work.pipeline_key}' for work status {work_status.id}")
            job_execution = self._job_runner.run(work.pipeline_key, parameters)
            if job_execution.status is not BatchStatus.COMPLETED:
                logger.warning(
                    f"Pipeline '{work.pipeline_key}' ended {job_execution.status.value}; "
                    f"remaining works of {work_status.id} are not run"
                )
                break

    def _fail(self, work_status: WorkStatus, exc: Exception) -> None:
        try:
            with translate_db_errors("record work failure"), session_scope(self._session_factory) as session:
                WorkRepository(session).mark_error(work_status.id, first_line(str(exc)))
        except Exception as record_exc:
            # The reaper moves the row to ERROR on the next start.
            logger.error(f"Could not record failure of work status {work_status.id}: {record_exc}")

    def _publish_status_counts(self) -> None:
        if self._metrics is None:
            return
        try:
            with session_scope(self._session_factory) as session:
                counts = WorkRepository(session).count_by_status()
        except Exception as exc:
            logger.warning(f"Failed to read work status counts: {exc}")
            return
        self._metrics.record_work_status_counts(counts)

    def reap_orphans(self) -> int:
        """Fail work left PROCESSING (and job executions left STARTED) by a dead process."""
        now = utcnow()
        cutoff = now - timedelta(seconds=self.reaper_threshold_seconds)
        with translate_db_errors("reap orphaned work"), session_scope(self._session_factory) as session:
            reaped = WorkRepository(session).reap_orphans(cutoff, now=now)
            stale = ExecutionRepository(session).fail_stale_executions(cutoff, now=now)
        if reaped or stale:
            logger.warning(f"Reaped {reaped} orphaned work statuses and {stale} stale job executions")
        return reaped

    def run(self) -> None:
        """Reap orphans, then tick every ``poll_interval_seconds`` until stopped."""
        logger.info(f"Scheduler started; polling every {self.poll_interval_seconds}s")
        self.reap_orphans()
        self._publish_status_counts()
        while not self._shutdown.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as exc:
                logger.error(f"Scheduler tick failed: {exc}", exc_info=True)
            elapsed = time.monotonic() - started
            self._shutdown.wait(max(0.0, self.poll_interval_seconds - elapsed))
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        """Ask the loop and any running step to stop at the next chunk boundary."""
        self._shutdown.set()
