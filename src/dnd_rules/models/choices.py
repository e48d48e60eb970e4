"""Choice catalog and prerequisite models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChoiceGroup(SQLModel, table=True):
    """One "choose N of kind K" declaration owned by an entity at a level.

    ``level`` is null for groups that apply immediately (race, background).
    ``group_key`` is stable across imports; (owner, level, group_key) identifies
    the group and is the key re-imports upsert on.
    """

    __tablename__ = "choice_groups"
    __table_args__ = (
        UniqueConstraint(
            "owner_type",
            "owner_id",
            "level",
            "group_key",
            name="uq_choice_groups_owner_level_key",
        ),
        Index("ix_choice_groups_owner", "owner_type", "owner_id"),
        Index("ix_choice_groups_choice_type", "choice_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_type: str = Field(sa_column=Column(String, nullable=False))
    owner_id: int = Field(sa_column=Column(Integer, nullable=False))
    level: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    group_key: str = Field(sa_column=Column(String, nullable=False))
    choice_type: str = Field(sa_column=Column(String, nullable=False))
    choose_n: int = Field(sa_column=Column(Integer, nullable=False))
    label: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    optional: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    permanent: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    bonus_value: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    distinct_values: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False)
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


class ChoiceOption(SQLModel, table=True):
    """A candidate within a choice group.

    Concrete options name a target through ``option_source_key``. Unrestricted
    options (``is_unrestricted``) instead carry filters: ``category`` and
    ``subcategory`` for proficiencies, languages, items and features,
    ``max_level``/``class_id``/``school``/``ritual_only`` for spells.
    ``option_letter`` groups equipment options into exclusive bundles.
    """

    __tablename__ = "choice_options"
    __table_args__ = (
        UniqueConstraint(
            "choice_group_id",
            "option_letter",
            "option_source_key",
            name="uq_choice_options_group_option",
        ),
        Index("ix_choice_options_group", "choice_group_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    choice_group_id: int = Field(foreign_key="choice_groups.id")
    option_type: str = Field(sa_column=Column(String, nullable=False))
    option_source_key: str = Field(sa_column=Column(String, nullable=False))
    option_ref_id: Optional[int] = Field(default=None, sa_column=Column(Integer))
    label: str = Field(sa_column=Column(String, nullable=False))
    position: int = Field(default=0, sa_column=Column(Integer, nullable=False))

    is_unrestricted: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False)
    )
    option_letter: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False))

    category: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    subcategory: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    max_level: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    class_id: Optional[int] = Field(default=None, foreign_key="classes.id")
    school: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    ritual_only: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class Prerequisite(SQLModel, table=True):
    """A prerequisite that gates taking a class or a choice group."""

    __tablename__ = "prerequisites"
    __table_args__ = (
        Index("ix_prerequisites_applies_to", "applies_to_type", "applies_to_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    applies_to_type: str = Field(sa_column=Column(String, nullable=False))
    applies_to_id: int = Field(sa_column=Column(Integer, nullable=False))
    prereq_type: str = Field(sa_column=Column(String, nullable=False))
    key: str = Field(sa_column=Column(String, nullable=False))
    operator: str = Field(sa_column=Column(String, nullable=False))
    value: str = Field(sa_column=Column(String, nullable=False))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
