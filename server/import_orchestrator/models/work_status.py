"""Work status model: the claim ticket for one import request."""
from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer(), "sqlite")


class WorkStatusCode(IntEnum):
    """Status codes as stored in ``wst_stat_code``."""

    PENDING = 10
    PROCESSING = 20
    SUCCESS_WITH_ERRORS = 30
    SUCCESS = 35
    ERROR = 40

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {WorkStatusCode.SUCCESS, WorkStatusCode.SUCCESS_WITH_ERRORS, WorkStatusCode.ERROR}
)


class WorkStatus(Base):
    """Tracks one import request from PENDING to a terminal status."""

    __tablename__ = "work_status"

    id: Mapped[int] = mapped_column("wst_iden", IdType, primary_key=True, autoincrement=True)
    work_iden: Mapped[str] = mapped_column("wst_work_iden", String(255), nullable=False)
    file_iden: Mapped[str | None] = mapped_column("wst_file_iden", String(255), nullable=True)
    status_code: Mapped[int] = mapped_column(
        "wst_stat_code",
        Integer,
        nullable=False,
        default=WorkStatusCode.PENDING,
        server_default=str(int(WorkStatusCode.PENDING)),
    )
    creation_date: Mapped[datetime] = mapped_column(
        "wst_crea_date", DateTime, nullable=False, server_default=func.now()
    )
    begin_date: Mapped[datetime | None] = mapped_column("wst_begi_date", DateTime, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column("wst_endx_date", DateTime, nullable=True)
    error_text: Mapped[str | None] = mapped_column("wst_error_text", String(1000), nullable=True)
    count_lines_errors: Mapped[int] = mapped_column(
        "count_lines_errors", Integer, nullable=False, default=0, server_default="0"
    )

    __table_args__ = (Index("ix_work_status_stat_code", "wst_stat_code", "wst_iden"),)

    @property
    def status(self) -> WorkStatusCode:
        return WorkStatusCode(self.status_code)
