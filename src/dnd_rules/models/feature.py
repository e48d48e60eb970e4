"""Feature model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Feature(SQLModel, table=True):
    """A subclass feature or a selectable optional feature.

    ``feature_type`` groups selectable features (``fighting_style``,
    ``invocation``, ``maneuver``); it is null for plain subclass features.
    """

    __tablename__ = "features"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_features_source_key"),
        Index("ix_features_name", "name"),
        Index("ix_features_feature_type", "feature_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))

    level: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    feature_type: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    feature_desc: Optional[str] = Field(
        default=None, sa_column=Column(Text, nullable=True)
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
