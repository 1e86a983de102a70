"""Entrypoint for the FastAPI application."""
from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from import_orchestrator import __version__
from import_orchestrator.api import health, metrics
from import_orchestrator.core.config import get_settings
from import_orchestrator.core.log import configure_logging

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging; optionally run the scheduler in a background thread."""
    configure_logging(settings.log_level)
    scheduler = None
    thread = None
    if settings.embedded_scheduler:
        from import_orchestrator.bootstrap import get_scheduler

        scheduler = get_scheduler()
        # run() reaps orphans before its first tick
        thread = threading.Thread(target=scheduler.run, name="scheduler", daemon=True)
        thread.start()
    yield
    if scheduler is not None:
        logger.info("Stopping embedded scheduler")
        scheduler.stop()
        thread.join()


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Batch import orchestrator: health and batch metrics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(metrics.router)
