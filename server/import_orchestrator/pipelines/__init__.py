"""Registered pipelines, keyed by the ``pipeline_key`` of a work."""
from __future__ import annotations

from functools import partial

from import_orchestrator.batch.job import JobRegistry
from import_orchestrator.core.config import Settings, get_settings
from import_orchestrator.core.metrics import BatchMetricsService
from import_orchestrator.services.mapping_engine import MappingCache

from .db_import import DB_IMPORT_KEY, build_db_import_job

__all__ = ["DB_IMPORT_KEY", "build_db_import_job", "build_job_registry"]


def build_job_registry(
    settings: Settings | None = None,
    *,
    metrics: BatchMetricsService | None = None,
    cache: MappingCache | None = None,
) -> JobRegistry:
    """Return a registry holding every pipeline of the application."""
    settings = settings or get_settings()
    registry = JobRegistry()
    registry.register(
        DB_IMPORT_KEY,
        partial(
            build_db_import_job,
            mapping_id=settings.import_mapping_id,
            chunk_size=settings.default_chunk_size,
            skip_limit=settings.default_skip_limit,
            metrics=metrics,
            cache=cache,
        ),
    )
    return registry
