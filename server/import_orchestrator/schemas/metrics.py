"""Pydantic schemas for the health and metrics endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class JobExecutionSummary(BaseModel):
    """One row of the job execution history."""

    id: int
    job_name: str
    status: str
    exit_message: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class StepDurationStat(BaseModel):
    step_name: str
    executions: int = Field(ge=0)
    avg_duration_seconds: float = Field(ge=0)


class BatchMetricsSummary(BaseModel):
    """Aggregates read from the execution history and the work status table."""

    job_status_counts: dict[str, int] = Field(description="Job executions per status")
    step_durations: list[StepDurationStat]
    recent_executions: list[JobExecutionSummary] = Field(description="Last 50 job executions")
    work_status_counts: dict[str, int] = Field(description="WorkStatus rows per status name")


class ComponentHealth(BaseModel):
    status: Literal["healthy", "unhealthy", "degraded"]
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class DetailedHealth(BaseModel):
    status: Literal["healthy", "unhealthy", "degraded"]
    components: dict[str, ComponentHealth]
