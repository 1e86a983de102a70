"""Jobs, the pipeline registry and the job runner."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.core.db import session_scope, translate_db_errors, utcnow
from import_orchestrator.core.exceptions import DuplicatePipelineKeyError, JobNotFoundError, first_line
from import_orchestrator.schemas.job_parameters import JobParameters
from import_orchestrator.services.execution_repository import ExecutionRepository

from .context import BatchStatus, JobExecution, StepContext, StepExecution
from .events import EventBus
from .step import ChunkOrientedStep

logger = logging.getLogger(__name__)

JobFactory = Callable[[StepContext], "Job"]


class Job:
    """An ordered list of steps plus job-level listeners."""

    def __init__(self, name: str, steps: Iterable[ChunkOrientedStep], listeners: Iterable[Any] = ()) -> None:
        self.name = name
        self.steps = list(steps)
        self.listeners = list(listeners)
        if not self.steps:
            raise ValueError(f"Job {name!r} needs at least one step")


class JobRegistry:
    """Maps pipeline keys to job factories."""

    def __init__(self) -> None:
        self._factories: dict[str, JobFactory] = {}

    def register(self, pipeline_key: str, factory: JobFactory) -> None:
        if pipeline_key in self._factories:
            raise DuplicatePipelineKeyError(pipeline_key)
        self._factories[pipeline_key] = factory

    def __contains__(self, pipeline_key: object) -> bool:
        return pipeline_key in self._factories

    def keys(self) -> list[str]:
        return sorted(self._factories)

    def create(self, pipeline_key: str, context: StepContext) -> Job:
        factory = self._factories.get(pipeline_key)
        if factory is None:
            raise JobNotFoundError(pipeline_key)
        return factory(context)


class JobRunner:
    """Runs registered jobs synchronously and records their history."""

    def __init__(
        self,
        registry: JobRegistry,
        session_factory: sessionmaker[Session],
        *,
        shutdown_event: threading.Event | None = None,
    ) -> None:
        self._registry = registry
        self._session_factory = session_factory
        self._shutdown_event = shutdown_event or threading.Event()

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def run(self, pipeline_key: str, parameters: Mapping[str, Any]) -> JobExecution:
        """Run the job registered under ``pipeline_key`` to completion.

        Raises ``JobNotFoundError``, ``JobParametersInvalidError`` or
        ``JobInstanceAlreadyCompleteError`` before anything is executed. Once
        the job has started, step failures are reported through the returned
        execution's status instead of being raised.
        """
        if pipeline_key not in self._registry:
            raise JobNotFoundError(pipeline_key)
        job_parameters = JobParameters.from_mapping(parameters)
        job = self._registry.create(
            pipeline_key,
            StepContext(
                parameters=job_parameters,
                session_factory=self._session_factory,
                shutdown_event=self._shutdown_event,
            ),
        )

        job_execution = JobExecution(job_name=pipeline_key, parameters=job_parameters)
        job_execution.start_time = utcnow()
        with translate_db_errors("start job execution"), session_scope(self._session_factory) as session:
            record = ExecutionRepository(session).create_job_execution(
                pipeline_key,
                job_parameters.identity_key(),
                job_parameters.as_dict(),
                job_execution.start_time,
            )
            job_execution.id = record.id
        job_execution.status = BatchStatus.STARTED

        logger.info(f"Job [{pipeline_key}] launched with parameters {job_parameters.as_dict()}")
        bus = EventBus(job.listeners)
        bus.dispatch("before_job", job_execution)

        try:
            job_execution.status = BatchStatus.COMPLETED
            for step in job.steps:
                step_execution = step.execute(job_execution)
                self._save_step(job_execution, step_execution)
                if step_execution.status in (BatchStatus.FAILED, BatchStatus.STOPPED):
                    job_execution.status = step_execution.status
                    break
        except Exception as exc:
            logger.error(f"Job [{pipeline_key}] aborted: {exc}", exc_info=True)
            job_execution.status = BatchStatus.FAILED
            job_execution.failure_exceptions.append(exc)

        failures = job_execution.all_failure_exceptions()
        job_execution.exit_message = first_line(str(failures[0])) if failures else ""
        job_execution.end_time = utcnow()
        bus.dispatch("after_job", job_execution)
        self._save_job(job_execution)

        logger.info(
            f"Job [{pipeline_key}] finished with status {job_execution.status.value} "
            f"(skipped={job_execution.skip_count})"
        )
        return job_execution

    def _save_step(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        with translate_db_errors("save step execution"), session_scope(self._session_factory) as session:
            ExecutionRepository(session).add_step_execution(job_execution.id, step_execution)

    def _save_job(self, job_execution: JobExecution) -> None:
        with translate_db_errors("finish job execution"), session_scope(self._session_factory) as session:
            ExecutionRepository(session).finish_job_execution(
                job_execution.id,
                status=job_execution.status.value,
                exit_message=job_execution.exit_message,
                end_time=job_execution.end_time,
            )
