"""Celery application driving the scheduler tick through Celery Beat."""

from celery import Celery

from import_orchestrator.core.config import get_settings

settings = get_settings()

# Create Celery app instance
celery_app = Celery(
    "import_orchestrator",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Load configuration from celery_config module
celery_app.config_from_object("import_orchestrator.tasks.celery_config")

# The beat interval follows the scheduler's polling interval
celery_app.conf.beat_schedule = {
    "poll-pending-work": {
        "task": "import_orchestrator.tasks.scheduler_tasks.poll_pending_work",
        "schedule": settings.poll_interval_seconds,
        "options": {"queue": "scheduler_queue", "expires": settings.poll_interval_seconds},
    },
}

celery_app.autodiscover_tasks(["import_orchestrator.tasks"], related_name="scheduler_tasks")

# Configure broker connection with retry and health check settings
celery_app.conf.update(
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
)


def get_celery_app() -> Celery:
    """Return the configured Celery application instance.

    Useful for dependency injection in tests and for explicit imports.
    """
    return celery_app
