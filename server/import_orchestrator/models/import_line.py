"""Raw fixed-width line attached to a work status."""
from __future__ import annotations

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .work_status import IdType


class ImportLine(Base):
    """One row of an import payload; ``error_text`` is set only when the row was skipped."""

    __tablename__ = "import_line"

    id: Mapped[int] = mapped_column("iml_iden", IdType, primary_key=True, autoincrement=True)
    wst_iden: Mapped[int] = mapped_column(
        "wst_iden", IdType, ForeignKey("work_status.wst_iden", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str | None] = mapped_column("iml_text", Text, nullable=True)
    error_text: Mapped[str | None] = mapped_column("iml_erro_text", String(1000), nullable=True)

    __table_args__ = (Index("ix_import_line_wst_iden", "wst_iden", "iml_iden"),)

    def __repr__(self) -> str:
        return f"ImportLine(id={self.id!r}, wst_iden={self.wst_iden!r})"
