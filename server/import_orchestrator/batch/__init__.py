"""Chunk-oriented batch engine: steps, jobs, listeners and skip handling."""
from __future__ import annotations

from .context import BatchStatus, ExecutionContext, JobExecution, StepContext, StepExecution
from .events import BatchListener, EventBus
from .items import ListItemReader, OrmItemWriter, SkippedItemsReader
from .job import Job, JobRegistry, JobRunner
from .skip import NEVER_SKIP, SkipPolicy
from .step import ChunkOrientedStep

__all__ = [
    "BatchStatus",
    "ExecutionContext",
    "JobExecution",
    "StepContext",
    "StepExecution",
    "BatchListener",
    "EventBus",
    "ListItemReader",
    "OrmItemWriter",
    "SkippedItemsReader",
    "Job",
    "JobRegistry",
    "JobRunner",
    "NEVER_SKIP",
    "SkipPolicy",
    "ChunkOrientedStep",
]
