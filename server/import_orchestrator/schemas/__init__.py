"""Public schema exports."""

from .job_parameters import FINAL_WORK, START_DATE, WST_IDEN, JobParameters
from .metrics import BatchMetricsSummary, ComponentHealth, DetailedHealth, JobExecutionSummary, StepDurationStat

__all__ = [
    "FINAL_WORK",
    "START_DATE",
    "WST_IDEN",
    "JobParameters",
    "BatchMetricsSummary",
    "ComponentHealth",
    "DetailedHealth",
    "JobExecutionSummary",
    "StepDurationStat",
]
