"""ORM models exposed for external modules."""
from .base import Base
from .batch_execution import JobExecutionRecord, StepExecutionRecord
from .import_line import ImportLine
from .import_record import ImportRecord
from .mapping import NO, YES, Mapping, MappingField
from .work import Work
from .work_status import TERMINAL_STATUSES, WorkStatus, WorkStatusCode

__all__ = [
    "Base",
    "WorkStatus",
    "WorkStatusCode",
    "TERMINAL_STATUSES",
    "ImportLine",
    "Work",
    "Mapping",
    "MappingField",
    "YES",
    "NO",
    "JobExecutionRecord",
    "StepExecutionRecord",
    "ImportRecord",
]
