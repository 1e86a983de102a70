"""Celery tasks and worker signals driving the polling scheduler."""
from __future__ import annotations

import logging

from celery.signals import worker_ready, worker_shutting_down

from import_orchestrator.bootstrap import get_scheduler
from import_orchestrator.core.config import get_settings
from import_orchestrator.core.log import configure_logging
from import_orchestrator.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="import_orchestrator.tasks.scheduler_tasks.poll_pending_work", ignore_result=True)
def poll_pending_work() -> int | None:
    """Run one scheduler tick.

    Returns:
        The claimed WorkStatus id, or None when nothing was pending
    """
    work_status = get_scheduler().tick()
    return work_status.id if work_status is not None else None


@worker_ready.connect
def reap_on_worker_ready(sender=None, **kwargs) -> None:
    """Fail work orphaned by a previous worker before the first tick runs."""
    configure_logging(get_settings().log_level)
    try:
        get_scheduler().reap_orphans()
    except Exception as exc:
        logger.error(f"Startup reaper failed: {exc}", exc_info=True)


@worker_shutting_down.connect
def stop_on_worker_shutdown(sender=None, **kwargs) -> None:
    """Let the running step stop at its next chunk boundary."""
    logger.info("Worker shutting down; signalling the scheduler")
    get_scheduler().stop()
