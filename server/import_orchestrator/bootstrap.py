"""Wiring of the scheduler, job runner and metrics for one process."""
from __future__ import annotations

import threading
from functools import lru_cache

from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.batch.job import JobRunner
from import_orchestrator.core.config import Settings, get_settings
from import_orchestrator.core.db import get_session_factory
from import_orchestrator.core.metrics import BatchMetricsService, MetricsRegistry
from import_orchestrator.core.redis_manager import get_redis_client
from import_orchestrator.pipelines import build_job_registry
from import_orchestrator.services.scheduler import Scheduler
from import_orchestrator.services.work_registry import WorkRegistry


def create_metrics(redis: Redis, settings: Settings | None = None) -> BatchMetricsService:
    settings = settings or get_settings()
    return BatchMetricsService(MetricsRegistry(redis, namespace=settings.metrics_namespace))


def create_scheduler(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    metrics: BatchMetricsService | None = None,
    shutdown_event: threading.Event | None = None,
) -> Scheduler:
    """Build a scheduler whose job runner shares its shutdown signal."""
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    shutdown_event = shutdown_event or threading.Event()

    runner = JobRunner(
        build_job_registry(settings, metrics=metrics),
        session_factory,
        shutdown_event=shutdown_event,
    )
    return Scheduler(
        session_factory,
        WorkRegistry(session_factory),
        runner,
        poll_interval_seconds=settings.poll_interval_seconds,
        reaper_threshold_seconds=settings.reaper_threshold_seconds,
        shutdown_event=shutdown_event,
        metrics=metrics,
    )


@lru_cache
def get_scheduler() -> Scheduler:
    """Process-wide scheduler used by the Celery worker and the embedded thread."""
    settings = get_settings()
    return create_scheduler(settings, metrics=create_metrics(get_redis_client(), settings))
