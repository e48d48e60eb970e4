"""Class and subclass models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CharacterClass(SQLModel, table=True):
    """A class a character can take levels in."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_classes_source_key"),
        Index("ix_classes_name", "name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))

    hit_die: int = Field(default=8, sa_column=Column(Integer, nullable=False))
    spellcasting_ability: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    subclass_level: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            default=_utc_now,
            onupdate=_utc_now,
            nullable=False,
        )
    )


class Subclass(SQLModel, table=True):
    """A subclass granted by exactly one class."""

    __tablename__ = "subclasses"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_subclasses_source_key"),
        Index("ix_subclasses_class_id", "class_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="classes.id")
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))
    desc: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
