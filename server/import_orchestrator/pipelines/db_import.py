"""The ``dbImport`` pipeline: map import lines into records, then log the skipped ones."""
from __future__ import annotations

from import_orchestrator.batch.context import StepContext
from import_orchestrator.batch.items import OrmItemWriter, SkippedItemsReader
from import_orchestrator.batch.job import Job
from import_orchestrator.batch.step import ChunkOrientedStep
from import_orchestrator.core.exceptions import ItemError
from import_orchestrator.core.metrics import BatchMetricsService
from import_orchestrator.models.import_line import ImportLine
from import_orchestrator.models.import_record import ImportRecord
from import_orchestrator.services.import_lines import (
    ImportLineErrorWriter,
    ImportLineProcessor,
    ImportLineReader,
    mapping_loader,
)
from import_orchestrator.services.listeners import (
    SKIPPED_ITEMS_KEY,
    ChunkErrorListener,
    JobCompletionListener,
    MetricsChunkListener,
    MetricsJobListener,
    MetricsStepListener,
)
from import_orchestrator.services.mapping_engine import MappingCache, mapping_cache

DB_IMPORT_KEY = "dbImport"
PROCESS_STEP = "processDbStep"
LOG_SKIPPED_STEP = "logSkippedItemsStep"


def build_db_import_job(
    context: StepContext,
    *,
    mapping_id: str,
    chunk_size: int = 100,
    skip_limit: int = 10,
    metrics: BatchMetricsService | None = None,
    cache: MappingCache | None = None,
) -> Job:
    """Build the two-step import job for one run.

    ``processDbStep`` maps each line of the work status into an
    ``ImportRecord``; item errors are skipped up to ``skip_limit``.
    ``logSkippedItemsStep`` then writes the skip reasons back onto the lines.
    """
    compiled = (cache or mapping_cache).get_or_compile(
        mapping_id, ImportRecord, mapping_loader(context.session_factory)
    )

    def step_listeners(*listeners):
        if metrics is None:
            return list(listeners)
        return [*listeners, MetricsStepListener(metrics), MetricsChunkListener(metrics, chunk_size)]

    process_step = ChunkOrientedStep(
        PROCESS_STEP,
        reader=ImportLineReader(context.session_factory, context.parameters.wst_iden, page_size=chunk_size),
        processor=ImportLineProcessor(compiled),
        writer=OrmItemWriter(),
        chunk_size=chunk_size,
        fault_tolerant=True,
        skip=(ItemError,),
        skip_limit=skip_limit,
        listeners=step_listeners(ChunkErrorListener(SKIPPED_ITEMS_KEY)),
        promotion_keys=(SKIPPED_ITEMS_KEY,),
        session_factory=context.session_factory,
        shutdown_event=context.shutdown_event,
    )
    log_skipped_step = ChunkOrientedStep(
        LOG_SKIPPED_STEP,
        reader=SkippedItemsReader(SKIPPED_ITEMS_KEY, item_type=ImportLine),
        writer=ImportLineErrorWriter(),
        chunk_size=chunk_size,
        listeners=step_listeners(),
        session_factory=context.session_factory,
        shutdown_event=context.shutdown_event,
    )

    job_listeners = [JobCompletionListener(context.session_factory)]
    if metrics is not None:
        job_listeners.append(MetricsJobListener(metrics))
    return Job(DB_IMPORT_KEY, [process_step, log_skipped_step], listeners=job_listeners)
