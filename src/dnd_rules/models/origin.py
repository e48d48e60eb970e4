"""Race, background and feat models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Race(SQLModel, table=True):
    """A race or subrace; subraces inherit their parent's choice groups."""

    __tablename__ = "races"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_races_source_key"),
        Index("ix_races_parent_race_id", "parent_race_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))
    parent_race_id: Optional[int] = Field(default=None, foreign_key="races.id")

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class Background(SQLModel, table=True):
    """A character background."""

    __tablename__ = "backgrounds"
    __table_args__ = (UniqueConstraint("source_key", name="uq_backgrounds_source_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class Feat(SQLModel, table=True):
    """A feat."""

    __tablename__ = "feats"
    __table_args__ = (UniqueConstraint("source_key", name="uq_feats_source_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))
    feat_desc: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
