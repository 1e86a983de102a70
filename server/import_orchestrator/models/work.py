"""Registered pipeline binding for a file identifier."""
from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Work(Base):
    """Binds a file identifier to a pipeline key; several rows run in ``sort_order``."""

    __tablename__ = "work"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    file_iden: Mapped[str] = mapped_column(String(255), nullable=False)
    pipeline_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (Index("ix_work_file_iden", "file_iden", "sort_order"),)
