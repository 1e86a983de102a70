"""Job, step and chunk listeners: skip bookkeeping, work status updates, metrics."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.batch.context import BatchStatus, JobExecution, StepExecution
from import_orchestrator.batch.events import BatchListener
from import_orchestrator.core.db import session_scope, translate_db_errors, utcnow
from import_orchestrator.core.exceptions import truncate
from import_orchestrator.core.metrics import BatchMetricsService
from import_orchestrator.models.work_status import WorkStatusCode

from .work_repository import WorkRepository

logger = logging.getLogger(__name__)

SKIPPED_ITEMS_KEY = "skippedItems"
COMPLETED_WITH_SKIPS_MESSAGE = "completed with skipped items"


class SkipPhase(str, Enum):
    READ = "read"
    PROCESS = "process"
    WRITE = "write"


@dataclass
class SkippedItem:
    item: Any
    phase: SkipPhase
    message: str


class ChunkErrorListener(BatchListener):
    """Collects skipped items and stamps the skip reason on them.

    Items that carry an ``error_text`` attribute get the (truncated) error
    message. At the end of the step the collected list is stored in the step
    context under ``context_key`` so a later step can persist it.
    """

    def __init__(self, context_key: str = SKIPPED_ITEMS_KEY) -> None:
        self.context_key = context_key
        self.skipped_items: list[SkippedItem] = []

    def _record(self, item: Any, phase: SkipPhase, error: BaseException) -> None:
        message = truncate(str(error))
        if item is not None and hasattr(item, "error_text"):
            item.error_text = message
        self.skipped_items.append(SkippedItem(item=item, phase=phase, message=message))

    def on_skip_in_read(self, error: BaseException) -> None:
        logger.warning(f"Skipped item during read: {error}")
        self._record(None, SkipPhase.READ, error)

    def on_skip_in_process(self, item: Any, error: BaseException) -> None:
        logger.warning(f"Skipped item {item!r} during processing: {error}")
        self._record(item, SkipPhase.PROCESS, error)

    def on_skip_in_write(self, item: Any, error: BaseException) -> None:
        logger.warning(f"Skipped item {item!r} during write: {error}")
        self._record(item, SkipPhase.WRITE, error)

    def after_step(self, step_execution: StepExecution) -> None:
        step_execution.execution_context.put(self.context_key, list(self.skipped_items))


class JobCompletionListener(BatchListener):
    """Moves the work status row of a job through its lifecycle.

    A job with ``finalWork`` false is one of several works of the same request:
    on success it only accumulates its skip count and leaves the row
    PROCESSING for the next work.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def before_job(self, job_execution: JobExecution) -> None:
        wst_iden = job_execution.parameters.wst_iden
        with translate_db_errors("mark work status processing"), session_scope(self._session_factory) as session:
            updated = WorkRepository(session).mark_processing(wst_iden, job_execution.start_time or utcnow())
        if updated:
            logger.info(f"Job [{job_execution.job_name}] started for work status {wst_iden}")
        else:
            logger.warning(f"Work status {wst_iden} is missing or already finished")

    def after_job(self, job_execution: JobExecution) -> None:
        parameters = job_execution.parameters
        wst_iden = parameters.wst_iden
        skip_count = job_execution.skip_count
        status = job_execution.status

        with translate_db_errors("finish work status"), session_scope(self._session_factory) as session:
            repository = WorkRepository(session)
            if status is BatchStatus.STOPPED or (status is BatchStatus.COMPLETED and not parameters.final_work):
                repository.accumulate_skips(wst_iden, skip_count)
                logger.info(
                    f"Job [{job_execution.job_name}] {status.value} for work status {wst_iden}; "
                    f"row stays PROCESSING"
                )
                return

            work_status = repository.get_by_id(wst_iden)
            if work_status is None:
                logger.warning(f"Work status {wst_iden} no longer exists")
                return
            total_skips = work_status.count_lines_errors + skip_count

            if status is BatchStatus.COMPLETED:
                final_status = WorkStatusCode.SUCCESS_WITH_ERRORS if total_skips else WorkStatusCode.SUCCESS
                error_text = COMPLETED_WITH_SKIPS_MESSAGE if total_skips else ""
            else:
                failures = job_execution.all_failure_exceptions()
                final_status = WorkStatusCode.ERROR
                error_text = str(failures[0]) if failures else f"Job finished with status {status.value}"

            updated = repository.finish(
                wst_iden,
                final_status,
                error_text=error_text,
                count_lines_errors=total_skips,
                end_date=job_execution.end_time,
            )

        if updated:
            logger.info(f"Work status {wst_iden} set to {final_status.name} ({total_skips} skipped lines)")
        else:
            logger.warning(f"Work status {wst_iden} was not PROCESSING; left unchanged")


class MetricsJobListener(BatchListener):
    def __init__(self, metrics: BatchMetricsService) -> None:
        self._metrics = metrics
        self._samples = threading.local()

    def before_job(self, job_execution: JobExecution) -> None:
        self._metrics.increment_job_count(job_execution.job_name)
        self._samples.job = self._metrics.start_job_timer()

    def after_job(self, job_execution: JobExecution) -> None:
        sample = getattr(self._samples, "job", None)
        if sample is not None:
            self._metrics.stop_job_timer(sample, job_execution.job_name, job_execution.status.value)
            self._samples.job = None


class MetricsStepListener(BatchListener):
    def __init__(self, metrics: BatchMetricsService) -> None:
        self._metrics = metrics
        self._samples = threading.local()

    def before_step(self, step_execution: StepExecution) -> None:
        self._metrics.increment_step_count(step_execution.step_name)
        self._samples.step = self._metrics.start_step_timer()

    def after_step(self, step_execution: StepExecution) -> None:
        name = step_execution.step_name
        sample = getattr(self._samples, "step", None)
        if sample is not None:
            self._metrics.stop_step_timer(sample, name, step_execution.status.value)
            self._samples.step = None

        self._metrics.increment_items_read(step_execution.read_count, name)
        self._metrics.increment_items_written(step_execution.write_count, name)
        self._metrics.increment_items_processed(step_execution.write_count, name)
        for phase, count in (
            (SkipPhase.READ, step_execution.read_skip_count),
            (SkipPhase.PROCESS, step_execution.process_skip_count),
            (SkipPhase.WRITE, step_execution.write_skip_count),
        ):
            if count:
                self._metrics.increment_skip_count(name, phase.value, count)
        if step_execution.status is BatchStatus.FAILED:
            error = step_execution.failure_exceptions[0] if step_execution.failure_exceptions else None
            self._metrics.increment_error_count(name, type(error).__name__ if error else "Unknown")


class MetricsChunkListener(BatchListener):
    def __init__(self, metrics: BatchMetricsService, chunk_size: int) -> None:
        self._metrics = metrics
        self._chunk_size = chunk_size
        self._samples = threading.local()

    def before_chunk(self, step_execution: StepExecution) -> None:
        self._samples.chunk = self._metrics.start_chunk_timer()

    def _stop(self, step_execution: StepExecution) -> None:
        sample = getattr(self._samples, "chunk", None)
        if sample is not None:
            self._metrics.stop_chunk_timer(sample, step_execution.step_name, self._chunk_size)
            self._samples.chunk = None

    def after_chunk(self, step_execution: StepExecution) -> None:
        self._stop(step_execution)

    def on_chunk_error(self, step_execution: StepExecution, error: BaseException) -> None:
        self._stop(step_execution)
        self._metrics.increment_error_count(step_execution.step_name, type(error).__name__)
