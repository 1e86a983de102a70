"""Fixed-width mapping definitions."""
from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

YES = "Y"
NO = "N"


class Mapping(Base):
    """Schema describing one fixed-width layout."""

    __tablename__ = "mapping"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    mapping_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    fields: Mapped[list["MappingField"]] = relationship(
        back_populates="mapping",
        order_by="MappingField.iden",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class MappingField(Base):
    """One column range of a mapping bound to a target property."""

    __tablename__ = "mapping_field"

    mapping_fk: Mapped[str] = mapped_column(
        String(100), ForeignKey("mapping.id", ondelete="CASCADE"), primary_key=True
    )
    iden: Mapped[int] = mapped_column(Integer, primary_key=True)
    property: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    offset: Mapped[int] = mapped_column("field_offset", Integer, nullable=False)
    length: Mapped[int] = mapped_column("field_length", Integer, nullable=False)
    pattern: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mandatory: Mapped[str] = mapped_column(String(1), nullable=False, default=NO, server_default=NO)
    enable: Mapped[str] = mapped_column(String(1), nullable=False, default=YES, server_default=YES)
    transformer: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    mapping: Mapped[Mapping] = relationship(back_populates="fields")
