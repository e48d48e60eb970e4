"""Spell model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Spell(SQLModel, table=True):
    """Spell data needed to validate spell choices."""

    __tablename__ = "spells"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_spells_source_key"),
        Index("ix_spells_name", "name"),
        Index("ix_spells_level", "level"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))

    level: int = Field(sa_column=Column(Integer, nullable=False))
    school: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    ritual: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    concentration: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    spell_desc: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

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
