"""Relationship join table models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubclassFeatureLink(SQLModel, table=True):
    """Join subclass -> feature at the class level that unlocks it."""

    __tablename__ = "subclass_features"
    __table_args__ = (
        UniqueConstraint(
            "subclass_id",
            "feature_id",
            name="uq_subclass_features_subclass_feature",
        ),
        Index("ix_subclass_features_subclass_id", "subclass_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    subclass_id: int = Field(foreign_key="subclasses.id")
    feature_id: int = Field(foreign_key="features.id")
    level: int = Field(sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class SpellClassLink(SQLModel, table=True):
    """Join spell -> class spell list."""

    __tablename__ = "spell_classes"
    __table_args__ = (
        UniqueConstraint("spell_id", "class_id", name="uq_spell_classes_spell_class"),
        Index("ix_spell_classes_class_id", "class_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    spell_id: int = Field(foreign_key="spells.id")
    class_id: int = Field(foreign_key="classes.id")
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
