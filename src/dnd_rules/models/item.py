"""Item/equipment model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Float, Index, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Item(SQLModel, table=True):
    """Equipment that starting-equipment bundles can hand out."""

    __tablename__ = "items"
    __table_args__ = (
        UniqueConstraint("source_key", name="uq_items_source_key"),
        Index("ix_items_equipment_category", "equipment_category"),
        Index("ix_items_weapon_category", "weapon_category"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_key: str = Field(sa_column=Column(String, nullable=False))
    name: str = Field(sa_column=Column(String, nullable=False))

    equipment_category: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    weapon_category: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    armor_category: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    weight: Optional[float] = Field(
        default=None, sa_column=Column(Float, nullable=True)
    )

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
