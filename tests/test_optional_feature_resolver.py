from __future__ import annotations

from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.errors import SelectionError
from dnd_rules.models.character_class import CharacterClass
from dnd_rules.progression import apply_level_up


@pytest.fixture
def fighter(session, row_id, make_character):
    character = make_character(strength=15, constitution=14)
    apply_level_up(session, character_id=character.id, class_id=row_id(CharacterClass, "fighter"))
    return character


def test_fighting_style_is_chosen_from_features(session, dispatcher, fighter, find_choice) -> None:
    style = find_choice(dispatcher.all_pending_choices(session, fighter.id), "fighting-style")

    assert style.kind == "optional_feature"
    assert style.metadata["feature_types"] == ["fighting_style"]

    resolved = dispatcher.resolve(session, fighter.id, style.id, ["archery"])
    assert resolved.selected == ["archery"]

    resolved = dispatcher.resolve(session, fighter.id, style.id, ["defense"])
    assert resolved.selected == ["defense"]


@pytest.mark.parametrize(
    ("value", "constraint"),
    [
        ("precision-attack", "subcategory"),
        ("superior-defense", "level"),
        ("great-weapon-fighting", "option"),
    ],
)
def test_fighting_style_violations(
    session, dispatcher, fighter, find_choice, value, constraint
) -> None:
    style = find_choice(dispatcher.all_pending_choices(session, fighter.id), "fighting-style")

    with pytest.raises(SelectionError) as excinfo:
        dispatcher.resolve(session, fighter.id, style.id, [value])

    assert excinfo.value.constraint == constraint
    assert excinfo.value.value == value
