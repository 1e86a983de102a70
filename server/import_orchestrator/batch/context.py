"""Runtime state of job and step executions."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.schemas.job_parameters import JobParameters


class BatchStatus(str, Enum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class ExecutionContext:
    """String-keyed values shared between listeners, steps and jobs."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._values!r})"


@dataclass
class StepExecution:
    step_name: str
    job_execution: "JobExecution" = field(repr=False)
    status: BatchStatus = BatchStatus.CREATED
    start_time: datetime | None = None
    end_time: datetime | None = None
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    read_skip_count: int = 0
    process_skip_count: int = 0
    write_skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0
    exit_message: str = ""
    failure_exceptions: list[BaseException] = field(default_factory=list)
    execution_context: ExecutionContext = field(default_factory=ExecutionContext)

    @property
    def skip_count(self) -> int:
        return self.read_skip_count + self.process_skip_count + self.write_skip_count


@dataclass
class JobExecution:
    job_name: str
    parameters: JobParameters
    id: int | None = None
    status: BatchStatus = BatchStatus.CREATED
    start_time: datetime | None = None
    end_time: datetime | None = None
    exit_message: str = ""
    step_executions: list[StepExecution] = field(default_factory=list)
    failure_exceptions: list[BaseException] = field(default_factory=list)
    execution_context: ExecutionContext = field(default_factory=ExecutionContext)

    def create_step_execution(self, step_name: str) -> StepExecution:
        step_execution = StepExecution(step_name=step_name, job_execution=self)
        self.step_executions.append(step_execution)
        return step_execution

    def all_failure_exceptions(self) -> list[BaseException]:
        """Job-level failures followed by step failures in step order."""
        failures = list(self.failure_exceptions)
        for step_execution in self.step_executions:
            failures.extend(step_execution.failure_exceptions)
        return failures

    @property
    def skip_count(self) -> int:
        return sum(step.skip_count for step in self.step_executions)


@dataclass(frozen=True)
class StepContext:
    """What pipeline factories receive when a job is built for one run."""

    parameters: JobParameters
    session_factory: sessionmaker[Session]
    shutdown_event: threading.Event = field(default_factory=threading.Event)
