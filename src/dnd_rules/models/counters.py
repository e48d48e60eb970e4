"""Resource pool definitions and per-character counters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CounterDefinition(SQLModel, table=True):
    """Catalog row: a pool granted by an owner from ``level`` onward.

    Several rows with the same pool name and owner form a level table; the
    highest row at or below the owner's level wins. Either ``max_uses`` is
    fixed (-1 for unlimited) or ``uses_ability`` derives it from that
    ability's modifier (minimum 1).
    """

    __tablename__ = "counter_definitions"
    __table_args__ = (
        UniqueConstraint(
            "owner_type",
            "owner_id",
            "pool_name",
            "level",
            name="uq_counter_definitions_owner_pool_level",
        ),
        Index("ix_counter_definitions_owner", "owner_type", "owner_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_type: str = Field(sa_column=Column(String, nullable=False))
    owner_id: int = Field(sa_column=Column(Integer, nullable=False))
    pool_name: str = Field(sa_column=Column(String, nullable=False))
    level: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    max_uses: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    uses_ability: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    reset_timing: str = Field(sa_column=Column(String, nullable=False))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class CharacterCounter(SQLModel, table=True):
    """One resource pool for one character and one granting source.

    ``current`` is null while the pool is full and untouched; ``maximum`` is
    -1 for unlimited pools.
    """

    __tablename__ = "character_counters"
    __table_args__ = (
        UniqueConstraint(
            "character_id",
            "source_type",
            "source_id",
            "pool_name",
            name="uq_character_counters_source_pool",
        ),
        Index("ix_character_counters_character", "character_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    character_id: int = Field(foreign_key="characters.id")
    source_type: str = Field(sa_column=Column(String, nullable=False))
    source_id: int = Field(sa_column=Column(Integer, nullable=False))
    source_name: str = Field(sa_column=Column(String, nullable=False))
    pool_name: str = Field(sa_column=Column(String, nullable=False))
    current: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    maximum: int = Field(sa_column=Column(Integer, nullable=False))
    reset_timing: str = Field(sa_column=Column(String, nullable=False))

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
