from __future__ import annotations

from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.catalog import find_group, groups_for, groups_for_sources
from dnd_rules.constants import OwnerType
from dnd_rules.errors import CharacterNotFoundError, ConfigurationError
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.origin import Race
from dnd_rules.progression import apply_level_up
from dnd_rules.sheet import load_character_sheet


def test_groups_for_is_gated_by_level(session, row_id) -> None:
    fighter_id = row_id(CharacterClass, "fighter")

    level_one = groups_for(session, "class", fighter_id, 1)
    level_four = groups_for(session, OwnerType.CLASS, fighter_id, 4)

    assert [entry.group.group_key for entry in level_one] == [
        "armor",
        "fighting-style",
        "skills",
        "weapons",
    ]
    assert [entry.group.group_key for entry in level_four][-1] == "asi"


def test_groups_for_filters_by_kind_and_orders_options(session, row_id) -> None:
    fighter_id = row_id(CharacterClass, "fighter")

    (weapons, armor) = sorted(
        groups_for(session, "class", fighter_id, 1, choice_type="equipment"),
        key=lambda entry: entry.group.group_key,
        reverse=True,
    )

    assert armor.group.group_key == "armor"
    assert [(option.option_letter, option.option_source_key) for option in weapons.options] == [
        ("a", "any-martial-weapon"),
        ("a", "shield"),
        ("b", "handaxe"),
    ]
    assert [option.option_source_key for option in weapons.unrestricted_options] == [
        "any-martial-weapon"
    ]


def test_unknown_owner_type_is_a_configuration_error(session) -> None:
    with pytest.raises(ConfigurationError):
        groups_for(session, "deity", 1, 20)


def test_find_group_distinguishes_null_level(session, row_id) -> None:
    elf_id = row_id(Race, "elf")
    fighter_id = row_id(CharacterClass, "fighter")

    assert find_group(session, "race", elf_id, None, "keen-senses") is not None
    assert find_group(session, "race", elf_id, 1, "keen-senses") is None
    assert find_group(session, "class", fighter_id, 1, "skills", choice_type="spell") is None


def test_subrace_inherits_parent_race_groups(session, row_id, make_character) -> None:
    character = make_character(race_id=row_id(Race, "high-elf"))

    sheet = load_character_sheet(session, character.id)
    entries = groups_for_sources(session, sheet.sources)

    assert [source.name for source in sheet.sources] == ["Elf", "High Elf"]
    assert sorted(entry.group.group_key for entry in entries) == [
        "cantrip",
        "extra-language",
        "keen-senses",
    ]
    assert all(entry.source is not None for entry in entries)


def test_sheet_reaches_subclass_features_at_unlock_level(session, row_id, make_character) -> None:
    character = make_character(strength=15)
    fighter_id = row_id(CharacterClass, "fighter")
    psi_id = row_id(Subclass, "psi-warrior")

    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    apply_level_up(session, character_id=character.id, class_id=fighter_id, subclass_id=psi_id)
    sheet = load_character_sheet(session, character.id)
    assert sheet.features == []
    assert sheet.class_entry(fighter_id).subclass.id == psi_id

    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    sheet = load_character_sheet(session, character.id)

    assert [reached.feature.source_key for reached in sheet.features] == ["psionic-power"]
    feature_source = sheet.sources[-1]
    assert feature_source.owner_type == OwnerType.SUBCLASS_FEATURE
    assert feature_source.level == 3


def test_missing_character_raises(session) -> None:
    with pytest.raises(CharacterNotFoundError):
        load_character_sheet(session, 999)
