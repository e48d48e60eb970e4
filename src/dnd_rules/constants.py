"""Closed vocabularies shared by the catalog, resolvers and counters."""

from __future__ import annotations

from enum import Enum


class ChoiceKind(str, Enum):
    """Kinds of choices, one resolver per kind."""

    PROFICIENCY = "proficiency"
    LANGUAGE = "language"
    ABILITY_SCORE = "ability_score"
    EQUIPMENT = "equipment"
    SPELL = "spell"
    OPTIONAL_FEATURE = "optional_feature"
    HIT_POINTS = "hit_points"


class OwnerType(str, Enum):
    """Entity kinds that can own choice groups and counter definitions."""

    RACE = "race"
    BACKGROUND = "background"
    CLASS = "class"
    SUBCLASS = "subclass"
    SUBCLASS_FEATURE = "subclass_feature"
    FEAT = "feat"


class ResetTiming(str, Enum):
    """When a counter refills."""

    SHORT_REST = "short_rest"
    LONG_REST = "long_rest"
    DAWN = "dawn"
    MANUAL = "manual"


# Stable ordering used when sorting sources of the same level.
OWNER_TYPE_ORDER = {
    OwnerType.RACE: 0,
    OwnerType.BACKGROUND: 1,
    OwnerType.CLASS: 2,
    OwnerType.SUBCLASS: 3,
    OwnerType.SUBCLASS_FEATURE: 4,
    OwnerType.FEAT: 5,
}

ABILITIES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

ABILITY_ALIASES = {
    "str": "strength",
    "dex": "dexterity",
    "con": "constitution",
    "int": "intelligence",
    "wis": "wisdom",
    "cha": "charisma",
}

UNLIMITED = -1


def normalize_ability(value: str) -> str | None:
    """Return the canonical ability name for a name or abbreviation."""
    candidate = value.strip().lower()
    if candidate in ABILITIES:
        return candidate
    return ABILITY_ALIASES.get(candidate)


def parse_owner_type(value: str | OwnerType) -> OwnerType:
    """Return the owner type enum, raising ConfigurationError when unknown."""
    from dnd_rules.errors import ConfigurationError

    try:
        return OwnerType(value)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown owner type: {value}") from exc


def parse_reset_timing(value: str | ResetTiming) -> ResetTiming:
    """Return the reset timing enum, accepting dashed spellings."""
    if isinstance(value, ResetTiming):
        return value
    return ResetTiming(str(value).strip().lower().replace("-", "_"))
