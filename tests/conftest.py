from __future__ import annotations

from pathlib import Path
import sys
from typing import Any, Callable

import pytest
from sqlmodel import Session, select

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.choices import PendingChoice, build_default_dispatcher
from dnd_rules.db.engine import create_db_and_tables, get_engine
from dnd_rules.ingest.load_catalog import load_catalog
from dnd_rules.models.character import Character


def _skill(key: str, name: str) -> dict[str, Any]:
    return {"key": key, "name": name, "category": "skill"}


CATALOG: dict[str, Any] = {
    "classes": [
        {"key": "fighter", "name": "Fighter", "hit_die": 10, "subclass_level": 3},
        {"key": "rogue", "name": "Rogue", "hit_die": 8, "subclass_level": 3},
        {
            "key": "wizard",
            "name": "Wizard",
            "hit_die": 6,
            "subclass_level": 2,
            "spellcasting_ability": "intelligence",
        },
    ],
    "subclasses": [
        {"key": "psi-warrior", "name": "Psi Warrior", "class": "fighter"},
        {"key": "soulknife", "name": "Soulknife", "class": "rogue"},
        {"key": "evoker", "name": "School of Evocation", "class": "wizard"},
    ],
    "races": [
        {"key": "high-elf", "name": "High Elf", "parent": "elf"},
        {"key": "elf", "name": "Elf"},
        {"key": "half-elf", "name": "Half-Elf"},
        {"key": "dwarf", "name": "Dwarf"},
    ],
    "backgrounds": [{"key": "acolyte", "name": "Acolyte"}],
    "feats": [
        {"key": "lucky", "name": "Lucky"},
        {"key": "inspiring-leader", "name": "Inspiring Leader"},
    ],
    "proficiencies": [
        _skill("athletics", "Athletics"),
        _skill("acrobatics", "Acrobatics"),
        _skill("intimidation", "Intimidation"),
        _skill("perception", "Perception"),
        _skill("insight", "Insight"),
        {"key": "smiths-tools", "name": "Smith's Tools", "category": "tool", "subcategory": "artisan"},
        {"key": "brewers-supplies", "name": "Brewer's Supplies", "category": "tool", "subcategory": "artisan"},
        {"key": "thieves-tools", "name": "Thieves' Tools", "category": "tool", "subcategory": "other"},
    ],
    "languages": [
        {"key": "common", "name": "Common", "subcategory": "standard"},
        {"key": "elvish", "name": "Elvish", "subcategory": "standard"},
        {"key": "dwarvish", "name": "Dwarvish", "subcategory": "standard"},
        {"key": "abyssal", "name": "Abyssal", "subcategory": "exotic"},
    ],
    "items": [
        {"key": "chain-mail", "name": "Chain Mail", "equipment_category": "armor", "armor_category": "heavy"},
        {"key": "leather-armor", "name": "Leather Armor", "equipment_category": "armor", "armor_category": "light"},
        {"key": "shield", "name": "Shield", "equipment_category": "armor", "armor_category": "shield"},
        {"key": "longbow", "name": "Longbow", "equipment_category": "weapon", "weapon_category": "martial"},
        {"key": "longsword", "name": "Longsword", "equipment_category": "weapon", "weapon_category": "martial"},
        {"key": "handaxe", "name": "Handaxe", "equipment_category": "weapon", "weapon_category": "simple"},
    ],
    "features": [
        {"key": "archery", "name": "Archery", "feature_type": "fighting_style"},
        {"key": "defense", "name": "Defense", "feature_type": "fighting_style"},
        {"key": "superior-defense", "name": "Superior Defense", "feature_type": "fighting_style", "level": 3},
        {"key": "precision-attack", "name": "Precision Attack", "feature_type": "maneuver"},
        {
            "key": "psionic-power",
            "name": "Psionic Power",
            "subclass": "psi-warrior",
            "unlock_level": 3,
        },
    ],
    "spells": [
        {"key": "fire-bolt", "name": "Fire Bolt", "level": 0, "school": "Evocation", "classes": ["wizard"]},
        {"key": "light", "name": "Light", "level": 0, "school": "Evocation", "classes": ["wizard"]},
        {"key": "guidance", "name": "Guidance", "level": 0, "school": "Divination"},
        {"key": "magic-missile", "name": "Magic Missile", "level": 1, "school": "Evocation", "classes": ["wizard"]},
        {
            "key": "detect-magic",
            "name": "Detect Magic",
            "level": 1,
            "school": "Divination",
            "ritual": True,
            "classes": ["wizard"],
        },
    ],
    "prerequisites": [
        {"class": "fighter", "type": "ability", "key": "strength", "operator": ">=", "value": 13},
        {"class": "wizard", "type": "ability", "key": "intelligence", "operator": ">=", "value": 13},
    ],
    "choice_groups": [
        {
            "owner_type": "race",
            "owner": "elf",
            "key": "keen-senses",
            "kind": "proficiency",
            "choose": 1,
            "label": "Keen Senses",
            "permanent": True,
            "options": [{"key": "perception", "label": "Perception"}],
        },
        {
            "owner_type": "race",
            "owner": "high-elf",
            "key": "cantrip",
            "kind": "spell",
            "choose": 1,
            "label": "High Elf Cantrip",
            "options": [
                {"unrestricted": True, "label": "Any wizard cantrip", "class": "wizard", "max_level": 0}
            ],
        },
        {
            "owner_type": "race",
            "owner": "high-elf",
            "key": "extra-language",
            "kind": "language",
            "choose": 1,
            "label": "Extra Language",
            "options": [
                {"unrestricted": True, "label": "Any standard language", "subcategory": "standard"}
            ],
        },
        {
            "owner_type": "race",
            "owner": "half-elf",
            "key": "ability-bonus",
            "kind": "ability_score",
            "choose": 2,
            "bonus_value": 1,
            "label": "Ability Score Increase",
            "options": [{"unrestricted": True, "label": "Any ability", "type": "ability"}],
        },
        {
            "owner_type": "background",
            "owner": "acolyte",
            "key": "languages",
            "kind": "language",
            "choose": 2,
            "label": "Languages",
            "options": [{"unrestricted": True, "label": "Any language"}],
        },
        {
            "owner_type": "background",
            "owner": "acolyte",
            "key": "tools",
            "kind": "proficiency",
            "choose": 1,
            "label": "Artisan's Tools",
            "optional": True,
            "options": [
                {"unrestricted": True, "label": "Any artisan's tools", "category": "tool", "subcategory": "artisan"}
            ],
        },
        {
            "owner_type": "class",
            "owner": "fighter",
            "level": 1,
            "key": "skills",
            "kind": "proficiency",
            "choose": 2,
            "label": "Fighter Skills",
            "options": [
                {"key": "athletics", "label": "Athletics"},
                {"key": "acrobatics", "label": "Acrobatics"},
                {"key": "intimidation", "label": "Intimidation"},
                {"key": "perception", "label": "Perception"},
            ],
        },
        {
            "owner_type": "class",
            "owner": "fighter",
            "level": 1,
            "key": "fighting-style",
            "kind": "optional_feature",
            "choose": 1,
            "label": "Fighting Style",
            "options": [
                {"unrestricted": True, "label": "Any fighting style", "subcategory": "fighting_style"}
            ],
        },
        {
            "owner_type": "class",
            "owner": "fighter",
            "level": 1,
            "key": "armor",
            "kind": "equipment",
            "choose": 1,
            "label": "Armor",
            "options": [
                {"letter": "a", "key": "chain-mail", "label": "Chain Mail"},
                {"letter": "b", "key": "leather-armor", "label": "Leather Armor"},
                {"letter": "b", "key": "longbow", "label": "Longbow"},
            ],
        },
        {
            "owner_type": "class",
            "owner": "fighter",
            "level": 1,
            "key": "weapons",
            "kind": "equipment",
            "choose": 1,
            "label": "Weapons",
            "options": [
                {
                    "letter": "a",
                    "unrestricted": True,
                    "label": "Any martial weapon",
                    "category": "weapon",
                    "subcategory": "martial",
                },
                {"letter": "a", "key": "shield", "label": "Shield"},
                {"letter": "b", "key": "handaxe", "label": "Handaxe", "quantity": 2},
            ],
        },
        {
            "owner_type": "class",
            "owner": "fighter",
            "level": 4,
            "key": "asi",
            "kind": "ability_score",
            "choose": 2,
            "bonus_value": 1,
            "distinct": False,
            "label": "Ability Score Improvement",
            "options": [{"unrestricted": True, "label": "Any ability", "type": "ability"}],
        },
        {
            "owner_type": "subclass_feature",
            "owner": "psionic-power",
            "key": "psionic-skill",
            "kind": "proficiency",
            "choose": 1,
            "label": "Psionic Skill",
            "options": [
                {"key": "insight", "label": "Insight"},
                {"key": "perception", "label": "Perception"},
            ],
        },
        {
            "owner_type": "class",
            "owner": "wizard",
            "level": 1,
            "key": "cantrips",
            "kind": "spell",
            "choose": 2,
            "label": "Wizard Cantrips",
            "options": [
                {"key": "guidance", "label": "Guidance"},
                {"unrestricted": True, "label": "Any wizard cantrip", "class": "wizard", "max_level": 0},
            ],
        },
        {
            "owner_type": "class",
            "owner": "wizard",
            "level": 1,
            "key": "ritual",
            "kind": "spell",
            "choose": 1,
            "label": "Ritual Spell",
            "options": [
                {
                    "unrestricted": True,
                    "label": "Any wizard ritual",
                    "class": "wizard",
                    "max_level": 1,
                    "ritual_only": True,
                }
            ],
        },
        {
            "owner_type": "subclass",
            "owner": "evoker",
            "key": "evocation-spell",
            "kind": "spell",
            "choose": 1,
            "level": 2,
            "label": "Evocation Spell",
            "options": [
                {
                    "unrestricted": True,
                    "label": "Any wizard evocation spell",
                    "class": "wizard",
                    "max_level": 1,
                    "school": "evocation",
                }
            ],
        },
    ],
    "counters": [
        {"owner_type": "class", "owner": "fighter", "pool": "Second Wind", "level": 1, "max_uses": 1, "reset": "short-rest"},
        {"owner_type": "class", "owner": "fighter", "pool": "Action Surge", "level": 2, "max_uses": 1, "reset": "short-rest"},
        {"owner_type": "subclass", "owner": "psi-warrior", "pool": "Psionic Energy", "level": 3, "max_uses": 4, "reset": "long-rest"},
        {"owner_type": "subclass", "owner": "psi-warrior", "pool": "Psionic Energy", "level": 5, "max_uses": 6, "reset": "long-rest"},
        {"owner_type": "subclass", "owner": "soulknife", "pool": "Psionic Energy", "level": 3, "max_uses": 4, "reset": "long-rest"},
        {"owner_type": "race", "owner": "elf", "pool": "Trance", "max_uses": -1, "reset": "manual"},
        {"owner_type": "feat", "owner": "lucky", "pool": "Luck Points", "max_uses": 3, "reset": "long-rest"},
        {
            "owner_type": "feat",
            "owner": "inspiring-leader",
            "pool": "Inspiration",
            "uses_ability": "charisma",
            "reset": "long-rest",
        },
    ],
}


@pytest.fixture
def engine(tmp_path: Path):
    engine = get_engine(str(tmp_path / "rules.db"))
    create_db_and_tables(engine)
    load_catalog(engine=engine, payload=CATALOG, source_name="test-catalog")
    return engine


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def dispatcher():
    return build_default_dispatcher()


@pytest.fixture
def row_id(session: Session) -> Callable[[type, str], int]:
    """Return the id of a catalog row by its source key."""

    def lookup(model: type, key: str) -> int:
        row = session.exec(select(model).where(model.source_key == key)).one()
        return int(row.id)

    return lookup


@pytest.fixture
def make_character(session: Session) -> Callable[..., Character]:
    def create(name: str = "Tamsin", **values: Any) -> Character:
        character = Character(name=name, **values)
        session.add(character)
        session.commit()
        session.refresh(character)
        return character

    return create


@pytest.fixture
def find_choice() -> Callable[..., PendingChoice]:
    """Pick one pending choice by group key (and level when keys repeat)."""

    def find(
        pending: list[PendingChoice], group_key: str, level: int | None = None
    ) -> PendingChoice:
        matches = [
            choice
            for choice in pending
            if choice.choice_id.group_key == group_key
            and (level is None or choice.choice_id.level == level)
        ]
        assert len(matches) == 1, [choice.id for choice in pending]
        return matches[0]

    return find
