"""Chunk-oriented step: read, process and write items in transactional chunks."""
from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.core.db import session_scope, utcnow
from import_orchestrator.core.exceptions import JobCancelledError, first_line

from .context import BatchStatus, JobExecution, StepExecution
from .events import EventBus
from .skip import NEVER_SKIP, SkipPolicy

logger = logging.getLogger(__name__)

TransactionFactory = Callable[[], AbstractContextManager[Session]]


class ItemReader(Protocol):
    def read(self) -> Any | None:
        """Return the next item or None at end of input."""


class ItemProcessor(Protocol):
    def process(self, item: Any) -> Any | None:
        """Return the output item, or None to filter ``item`` out."""


class ItemWriter(Protocol):
    def write(self, items: list[Any], session: Session) -> None:
        """Write a whole chunk of items inside ``session``."""


@dataclass
class _ChunkContribution:
    """What one chunk adds to the step counters once it commits."""

    inputs: list[Any] = field(default_factory=list)
    read_count: int = 0
    filter_count: int = 0
    write_count: int = 0
    read_skips: int = 0
    process_skips: int = 0
    write_skips: int = 0
    end_of_input: bool = False
    skip_events: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    @property
    def skip_count(self) -> int:
        return self.read_skips + self.process_skips + self.write_skips

    def defer(self, hook: str, *args: Any) -> None:
        self.skip_events.append((hook, args))

    def apply(self, step_execution: StepExecution) -> None:
        step_execution.read_count += self.read_count
        step_execution.filter_count += self.filter_count
        step_execution.write_count += self.write_count
        step_execution.read_skip_count += self.read_skips
        step_execution.process_skip_count += self.process_skips
        step_execution.write_skip_count += self.write_skips
        step_execution.commit_count += 1


class ChunkOrientedStep:
    """Runs reader, processor and writer in chunks of ``chunk_size`` items.

    Each chunk is one transaction. Item errors matching ``skip`` and not
    ``no_skip`` are skipped while the step stays under ``skip_limit``; any
    other error, or a skip over the budget, rolls the chunk back and fails the
    step. Counters only move for committed chunks.
    """

    def __init__(
        self,
        name: str,
        *,
        reader: ItemReader,
        writer: ItemWriter,
        processor: ItemProcessor | None = None,
        chunk_size: int = 100,
        fault_tolerant: bool = False,
        skip: Iterable[type[BaseException]] = (),
        no_skip: Iterable[type[BaseException]] = (),
        skip_limit: int = 0,
        listeners: Iterable[Any] = (),
        promotion_keys: Iterable[str] = (),
        session_factory: sessionmaker[Session] | None = None,
        transaction_factory: TransactionFactory | None = None,
        shutdown_event: threading.Event | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.name = name
        self.reader = reader
        self.processor = processor
        self.writer = writer
        self.chunk_size = chunk_size
        if fault_tolerant:
            self.skip_policy = SkipPolicy(skip_limit, tuple(skip), NEVER_SKIP.non_skippable + tuple(no_skip))
        else:
            self.skip_policy = NEVER_SKIP
        self.listeners = list(listeners)
        self.promotion_keys = tuple(promotion_keys)
        self._transaction_factory = transaction_factory or (lambda: session_scope(session_factory))
        self._shutdown_event = shutdown_event

    def execute(self, job_execution: JobExecution) -> StepExecution:
        step_execution = job_execution.create_step_execution(self.name)
        bus = EventBus(self.listeners)

        step_execution.status = BatchStatus.STARTED
        step_execution.start_time = utcnow()
        logger.info(f"Executing step [{self.name}] of job execution {job_execution.id}")
        bus.dispatch("before_step", step_execution)

        try:
            self._open(step_execution)
            while True:
                if self._shutdown_event is not None and self._shutdown_event.is_set():
                    cancelled = JobCancelledError(f"step [{self.name}] stopped before its next chunk")
                    step_execution.status = BatchStatus.STOPPED
                    step_execution.failure_exceptions.append(cancelled)
                    step_execution.exit_message = str(cancelled)
                    logger.info(f"Step [{self.name}] stopped before its next chunk")
                    break
                if self._execute_chunk(step_execution, bus):
                    step_execution.status = BatchStatus.COMPLETED
                    break
        except Exception as exc:
            step_execution.status = BatchStatus.FAILED
            step_execution.failure_exceptions.append(exc)
            step_execution.exit_message = first_line(str(exc))
            logger.error(f"Step [{self.name}] failed: {exc}", exc_info=True)
        finally:
            self._close()

        step_execution.end_time = utcnow()
        bus.dispatch("after_step", step_execution)

        if step_execution.status is BatchStatus.COMPLETED:
            for key in self.promotion_keys:
                if key in step_execution.execution_context:
                    job_execution.execution_context.put(key, step_execution.execution_context.get(key))

        logger.info(
            f"Step [{self.name}] {step_execution.status.value}: read={step_execution.read_count} "
            f"written={step_execution.write_count} filtered={step_execution.filter_count} "
            f"skipped={step_execution.skip_count} commits={step_execution.commit_count} "
            f"rollbacks={step_execution.rollback_count}"
        )
        return step_execution

    def _open(self, step_execution: StepExecution) -> None:
        open_reader = getattr(self.reader, "open", None)
        if open_reader is not None:
            open_reader(step_execution)

    def _close(self) -> None:
        close_reader = getattr(self.reader, "close", None)
        if close_reader is None:
            return
        try:
            close_reader()
        except Exception:
            logger.exception(f"Failed to close reader of step [{self.name}]")

    def _execute_chunk(self, step_execution: StepExecution, bus: EventBus) -> bool:
        """Run one chunk; return True once the reader is exhausted."""
        chunk = _ChunkContribution()
        bus.dispatch("before_chunk", step_execution)
        try:
            with self._transaction_factory() as session:
                self._read_chunk(step_execution, chunk)
                outputs = self._process_chunk(step_execution, chunk)
                if outputs:
                    self._write_chunk(step_execution, chunk, outputs, session)
                # Skip callbacks see only chunks whose write went through.
                for hook, args in chunk.skip_events:
                    bus.dispatch(hook, *args)
        except Exception as exc:
            step_execution.rollback_count += 1
            bus.dispatch("on_chunk_error", step_execution, exc)
            raise

        chunk.apply(step_execution)
        bus.dispatch("after_chunk", step_execution)
        return chunk.end_of_input

    def _budget_used(self, step_execution: StepExecution, chunk: _ChunkContribution) -> int:
        return step_execution.skip_count + chunk.skip_count

    def _read_chunk(self, step_execution: StepExecution, chunk: _ChunkContribution) -> None:
        while len(chunk.inputs) < self.chunk_size:
            try:
                item = self.reader.read()
            except Exception as exc:
                if self.skip_policy.should_skip(exc, self._budget_used(step_execution, chunk)):
                    logger.warning(f"Skipping unreadable item in step [{self.name}]: {exc}")
                    chunk.read_skips += 1
                    chunk.defer("on_skip_in_read", exc)
                    continue
                raise
            if item is None:
                chunk.end_of_input = True
                return
            chunk.inputs.append(item)
            chunk.read_count += 1

    def _process_chunk(self, step_execution: StepExecution, chunk: _ChunkContribution) -> list[Any]:
        if self.processor is None:
            return list(chunk.inputs)

        outputs = []
        for item in chunk.inputs:
            try:
                result = self.processor.process(item)
            except Exception as exc:
                if self.skip_policy.should_skip(exc, self._budget_used(step_execution, chunk)):
                    logger.warning(f"Skipping item {item!r} in step [{self.name}]: {exc}")
                    chunk.process_skips += 1
                    chunk.defer("on_skip_in_process", item, exc)
                    continue
                raise
            if result is None:
                chunk.filter_count += 1
                continue
            outputs.append(result)
        return outputs

    def _write_chunk(
        self,
        step_execution: StepExecution,
        chunk: _ChunkContribution,
        outputs: list[Any],
        session: Session,
    ) -> None:
        try:
            with session.begin_nested():
                self.writer.write(outputs, session)
        except Exception as exc:
            if not self.skip_policy.is_skippable(exc):
                raise
            # The whole batch is dropped; every item counts against the budget.
            for item in outputs:
                self.skip_policy.should_skip(exc, self._budget_used(step_execution, chunk))
                chunk.write_skips += 1
                chunk.defer("on_skip_in_write", item, exc)
            logger.warning(f"Skipped {len(outputs)} items of step [{self.name}] after a write error: {exc}")
            return
        chunk.write_count += len(outputs)
