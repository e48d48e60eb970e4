"""Proficiency and language lookup models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Proficiency(SQLModel, table=True):
    """A skill, tool, weapon or armor proficiency.

    ``category`` is the broad type (``skill``, ``tool``, ``weapon``, ``armor``);
    ``subcategory`` narrows it (``artisan``, ``musical_instrument``, ``gaming_set``).
    """

    __tablename__ = "proficiencies"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_proficiencies_source_key"),
        Index("ix_proficiencies_category", "category", "subcategory"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))
    category: str = Field(sa_column=Column(String, nullable=False))
    subcategory: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class Language(SQLModel, table=True):
    """A language; ``subcategory`` is ``standard``, ``exotic`` or ``secret``."""

    __tablename__ = "languages"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_languages_source_key"),
        Index("ix_languages_subcategory", "subcategory"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))
    subcategory: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
