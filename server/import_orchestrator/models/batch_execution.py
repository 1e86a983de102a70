"""Job and step execution history."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .work_status import IdType


class JobExecutionRecord(Base):
    """One run of a job for a set of parameters."""

    __tablename__ = "batch_job_execution"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String(255), nullable=False)
    job_key: Mapped[str] = mapped_column(String(64), nullable=False)
    parameters: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    exit_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    exit_message: Mapped[str | None] = mapped_column(String(2500), nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    steps: Mapped[list["StepExecutionRecord"]] = relationship(
        back_populates="job_execution",
        order_by="StepExecutionRecord.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_batch_job_execution_key", "job_name", "job_key"),)


class StepExecutionRecord(Base):
    """Counters and outcome of one step within a job execution."""

    __tablename__ = "batch_step_execution"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_execution_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("batch_job_execution.id", ondelete="CASCADE"), nullable=False
    )
    step_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    read_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    write_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    filter_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    read_skip_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    process_skip_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    write_skip_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rollback_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exit_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    job_execution: Mapped[JobExecutionRecord] = relationship(back_populates="steps")

    @property
    def skip_count(self) -> int:
        return self.read_skip_count + self.process_skip_count + self.write_skip_count
