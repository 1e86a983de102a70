"""Persistence of job and step execution history."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from import_orchestrator.core.db import utcnow
from import_orchestrator.core.exceptions import JobInstanceAlreadyCompleteError, truncate
from import_orchestrator.models.batch_execution import JobExecutionRecord, StepExecutionRecord

if TYPE_CHECKING:
    from import_orchestrator.batch.context import StepExecution

STARTED = "STARTED"
FAILED = "FAILED"
STALE_EXECUTION_MESSAGE = "abandoned by restart"


class ExecutionRepository:
    """Reads and writes ``batch_job_execution`` and ``batch_step_execution`` rows."""

    def __init__(self, session: Session) -> None:
        """Initialize repository with a SQLAlchemy session.

        Args:
            session: Active database session for executing queries
        """
        self._session = session

    def create_job_execution(
        self,
        job_name: str,
        job_key: str,
        parameters: dict[str, Any],
        start_time: datetime,
    ) -> JobExecutionRecord:
        """Record a new execution, refusing re-runs of a non-failed instance.

        A job instance is identified by ``(job_name, job_key)``. Only an
        instance whose executions all FAILED may be run again.

        Raises:
            JobInstanceAlreadyCompleteError: if a previous execution of the same
                instance did not fail
        """
        previous = self._session.execute(
            select(JobExecutionRecord.id, JobExecutionRecord.status).where(
                JobExecutionRecord.job_name == job_name,
                JobExecutionRecord.job_key == job_key,
                JobExecutionRecord.status != FAILED,
            )
        ).first()
        if previous is not None:
            raise JobInstanceAlreadyCompleteError(
                f"job '{job_name}' with parameters {parameters} already has execution "
                f"{previous.id} in status {previous.status}"
            )

        record = JobExecutionRecord(
            job_name=job_name,
            job_key=job_key,
            parameters=parameters,
            status=STARTED,
            start_time=start_time,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def finish_job_execution(
        self,
        execution_id: int,
        *,
        status: str,
        exit_message: str | None,
        end_time: datetime | None,
    ) -> bool:
        stmt = (
            update(JobExecutionRecord)
            .where(JobExecutionRecord.id == execution_id)
            .values(
                status=status,
                exit_code=status,
                exit_message=truncate(exit_message, 2500),
                end_time=end_time or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0

    def add_step_execution(self, execution_id: int, step_execution: "StepExecution") -> StepExecutionRecord:
        record = StepExecutionRecord(
            job_execution_id=execution_id,
            step_name=step_execution.step_name,
            status=step_execution.status.value,
            start_time=step_execution.start_time,
            end_time=step_execution.end_time,
            read_count=step_execution.read_count,
            write_count=step_execution.write_count,
            filter_count=step_execution.filter_count,
            read_skip_count=step_execution.read_skip_count,
            process_skip_count=step_execution.process_skip_count,
            write_skip_count=step_execution.write_skip_count,
            commit_count=step_execution.commit_count,
            rollback_count=step_execution.rollback_count,
            exit_message=step_execution.exit_message or None,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get_job_execution(self, execution_id: int) -> JobExecutionRecord | None:
        return self._session.get(JobExecutionRecord, execution_id)

    def find_job_executions(self, job_name: str, job_key: str | None = None) -> list[JobExecutionRecord]:
        stmt = select(JobExecutionRecord).where(JobExecutionRecord.job_name == job_name)
        if job_key is not None:
            stmt = stmt.where(JobExecutionRecord.job_key == job_key)
        return list(self._session.execute(stmt.order_by(JobExecutionRecord.id)).scalars().all())

    def fail_stale_executions(self, cutoff: datetime, *, now: datetime | None = None) -> int:
        """Mark STARTED executions older than ``cutoff`` as FAILED.

        Returns:
            Number of executions updated
        """
        stmt = (
            update(JobExecutionRecord)
            .where(JobExecutionRecord.status == STARTED, JobExecutionRecord.start_time < cutoff)
            .values(
                status=FAILED,
                exit_code=FAILED,
                exit_message=STALE_EXECUTION_MESSAGE,
                end_time=now or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount

    # Metrics queries -----------------------------------------------------------------

    def count_job_executions_by_status(self) -> dict[str, int]:
        rows = self._session.execute(
            select(JobExecutionRecord.status, func.count()).group_by(JobExecutionRecord.status)
        ).all()
        return {status: count for status, count in rows}

    def count_job_executions(self, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(JobExecutionRecord)
        if status is not None:
            stmt = stmt.where(JobExecutionRecord.status == status)
        return self._session.execute(stmt).scalar_one()

    def recent_job_executions(self, limit: int = 50) -> list[JobExecutionRecord]:
        stmt = select(JobExecutionRecord).order_by(JobExecutionRecord.id.desc()).limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def step_duration_stats(self, limit: int = 1000) -> list[dict[str, Any]]:
        """Average duration per step name over the most recent finished steps.

        Durations are computed in Python so the query stays portable across
        PostgreSQL and SQLite.
        """
        rows = self._session.execute(
            select(StepExecutionRecord.step_name, StepExecutionRecord.start_time, StepExecutionRecord.end_time)
            .where(StepExecutionRecord.start_time.is_not(None), StepExecutionRecord.end_time.is_not(None))
            .order_by(StepExecutionRecord.id.desc())
            .limit(limit)
        ).all()

        totals: dict[str, list[float]] = {}
        for step_name, start_time, end_time in rows:
            totals.setdefault(step_name, []).append((end_time - start_time).total_seconds())

        return [
            {
                "step_name": step_name,
                "executions": len(durations),
                "avg_duration_seconds": sum(durations) / len(durations),
            }
            for step_name, durations in sorted(totals.items())
        ]
