"""Target rows produced by the database import pipeline."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import BigInteger, Date, Float, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .work_status import IdType


class ImportRecord(Base):
    """Structured record parsed from an import line; mapped columns are all optional."""

    __tablename__ = "import_record"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    wst_iden: Mapped[int | None] = mapped_column(IdType, nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    reference: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    record_date: Mapped[date | None] = mapped_column(Date, nullable=True)
