"""Read-only batch metrics endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from import_orchestrator.api.deps import get_metrics_registry
from import_orchestrator.core.db import get_session
from import_orchestrator.core.metrics import MetricsRegistry
from import_orchestrator.schemas.metrics import BatchMetricsSummary, JobExecutionSummary, StepDurationStat
from import_orchestrator.services.execution_repository import ExecutionRepository
from import_orchestrator.services.work_repository import WorkRepository

router = APIRouter(prefix="/metrics", tags=["metrics"])

RECENT_EXECUTIONS = 50


@router.get("/batch/summary", response_model=BatchMetricsSummary)
def batch_summary(session: Session = Depends(get_session)) -> BatchMetricsSummary:
    """Job status counts, average step durations, recent executions and work status counts."""
    executions = ExecutionRepository(session)
    return BatchMetricsSummary(
        job_status_counts=executions.count_job_executions_by_status(),
        step_durations=[StepDurationStat(**stat) for stat in executions.step_duration_stats()],
        recent_executions=[
            JobExecutionSummary.model_validate(record)
            for record in executions.recent_job_executions(RECENT_EXECUTIONS)
        ],
        work_status_counts=WorkRepository(session).count_by_status(),
    )


@router.get("/custom")
def custom_metrics(registry: MetricsRegistry = Depends(get_metrics_registry)) -> dict[str, Any]:
    """Snapshot of the counters, gauges and timers recorded by the worker."""
    return registry.snapshot()
