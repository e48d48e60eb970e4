"""Character state models: the only rows the engine writes per character."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Character(SQLModel, table=True):
    """A character with base ability scores and hit points.

    Ability scores here are base values; resolved ability-score choices are
    added on top (see ``dnd_rules.abilities.effective_ability_scores``).
    """

    __tablename__ = "characters"
    __table_args__ = (Index("ix_characters_name", "name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String, nullable=False))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    race_id: Optional[int] = Field(default=None, foreign_key="races.id")
    background_id: Optional[int] = Field(default=None, foreign_key="backgrounds.id")

    strength: int = Field(default=10, sa_column=Column(Integer, nullable=False))
    dexterity: int = Field(default=10, sa_column=Column(Integer, nullable=False))
    constitution: int = Field(default=10, sa_column=Column(Integer, nullable=False))
    intelligence: int = Field(default=10, sa_column=Column(Integer, nullable=False))
    wisdom: int = Field(default=10, sa_column=Column(Integer, nullable=False))
    charisma: int = Field(default=10, sa_column=Column(Integer, nullable=False))

    max_hp: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    current_hp: int = Field(default=0, sa_column=Column(Integer, nullable=False))

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


class CharacterLevel(SQLModel, table=True):
    """Which class a character took at a given character level."""

    __tablename__ = "character_levels"
    __table_args__ = (
        UniqueConstraint(
            "character_id", "level", name="uq_character_levels_character_level"
        ),
        Index("ix_character_levels_character", "character_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    character_id: int = Field(foreign_key="characters.id")
    class_id: int = Field(foreign_key="classes.id")
    subclass_id: Optional[int] = Field(default=None, foreign_key="subclasses.id")
    level: int = Field(sa_column=Column(Integer, nullable=False))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class CharacterFeat(SQLModel, table=True):
    """A feat the character holds."""

    __tablename__ = "character_feats"
    __table_args__ = (
        UniqueConstraint("character_id", "feat_id", name="uq_character_feats"),
        Index("ix_character_feats_character", "character_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    character_id: int = Field(foreign_key="characters.id")
    feat_id: int = Field(foreign_key="feats.id")

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class CharacterChoice(SQLModel, table=True):
    """Resolution record: one selected value for one choice group.

    ``magnitude`` is set for kinds whose effect is a quantity (ability score
    bonuses). ``option_letter`` is set for equipment bundle picks.
    """

    __tablename__ = "character_choices"
    __table_args__ = (
        Index("ix_character_choices_character", "character_id"),
        Index("ix_character_choices_group", "character_id", "choice_group_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    character_id: int = Field(foreign_key="characters.id")
    choice_group_id: int = Field(foreign_key="choice_groups.id")
    choice_option_id: Optional[int] = Field(
        default=None, foreign_key="choice_options.id"
    )
    choice_type: str = Field(sa_column=Column(String, nullable=False))
    value: str = Field(sa_column=Column(String, nullable=False))
    option_label: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    option_letter: Optional[str] = Field(
        default=None, sa_column=Column(String, nullable=True)
    )
    magnitude: Optional[int] = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )


class CharacterHitPointGain(SQLModel, table=True):
    """Hit points settled for one character level.

    ``method`` is ``starting`` for level 1, otherwise ``average`` or ``rolled``.
    """

    __tablename__ = "character_hit_point_gains"
    __table_args__ = (
        UniqueConstraint(
            "character_id", "level", name="uq_character_hit_point_gains_level"
        ),
        Index("ix_character_hit_point_gains_character", "character_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    character_id: int = Field(foreign_key="characters.id")
    class_id: int = Field(foreign_key="classes.id")
    level: int = Field(sa_column=Column(Integer, nullable=False))
    method: str = Field(sa_column=Column(String, nullable=False))
    roll: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    amount: int = Field(sa_column=Column(Integer, nullable=False))

    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    )
