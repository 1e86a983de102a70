"""Health check endpoints for monitoring service and dependency status."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from redis import Redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from import_orchestrator.api.deps import get_redis
from import_orchestrator.core.db import get_session
from import_orchestrator.schemas.metrics import ComponentHealth, DetailedHealth
from import_orchestrator.services.execution_repository import FAILED, ExecutionRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

MAX_FAILED_JOBS = 10


@router.get("/health")
def health_check() -> dict[str, str]:
    """Basic health check endpoint.

    Returns:
        Simple status response for load balancers
    """
    return {"status": "ok"}


@router.get("/health/detailed", response_model=DetailedHealth)
def detailed_health_check(
    response: Response,
    session: Session = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> DetailedHealth:
    """Detailed health check for all service dependencies.

    Checks:
    - Database connectivity
    - Redis connectivity
    - Batch history: unhealthy once more than ``MAX_FAILED_JOBS`` job executions failed

    Returns:
        Detailed health status for each component
    """
    components: dict[str, ComponentHealth] = {}

    try:
        session.execute(text("SELECT 1"))
        components["database"] = ComponentHealth(status="healthy", message="Database connection successful")
    except Exception as e:
        components["database"] = ComponentHealth(
            status="unhealthy", message=f"Database connection failed: {str(e)}"
        )

    try:
        redis.ping()
        components["redis"] = ComponentHealth(status="healthy", message="Redis connection successful")
    except Exception as e:
        components["redis"] = ComponentHealth(status="unhealthy", message=f"Redis connection failed: {str(e)}")

    if components["database"].status == "healthy":
        try:
            repository = ExecutionRepository(session)
            failed = repository.count_job_executions(FAILED)
            total = repository.count_job_executions()
            details = {"failedJobs": failed, "totalJobs": total, "maxFailedJobs": MAX_FAILED_JOBS}
            if failed > MAX_FAILED_JOBS:
                components["batch"] = ComponentHealth(
                    status="unhealthy", message=f"Too many failed jobs: {failed}", details=details
                )
            else:
                components["batch"] = ComponentHealth(
                    status="healthy", message="Batch job history within limits", details=details
                )
        except Exception as e:
            components["batch"] = ComponentHealth(
                status="unhealthy", message=f"Failed to read job history: {str(e)}"
            )

    healthy = all(component.status == "healthy" for component in components.values())
    if not healthy:
        failing = sorted(name for name, component in components.items() if component.status != "healthy")
        logger.warning(f"Detailed health check failed: {failing}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return DetailedHealth(status="healthy" if healthy else "unhealthy", components=components)
