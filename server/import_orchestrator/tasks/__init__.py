"""Tasks module for background job processing."""
from __future__ import annotations

from .celery_app import celery_app, get_celery_app
from .scheduler_tasks import poll_pending_work

__all__ = [
    "celery_app",
    "get_celery_app",
    "poll_pending_work",
]
