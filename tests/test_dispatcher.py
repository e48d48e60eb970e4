from __future__ import annotations

from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.choices import ChoiceDispatcher, ChoiceId, LanguageResolver, ProficiencyResolver
from dnd_rules.constants import ChoiceKind, OwnerType
from dnd_rules.errors import ChoiceNotFoundError, ConfigurationError, SelectionError
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.origin import Background, Race
from dnd_rules.progression import apply_level_up, change_race


def test_pending_choices_are_ordered_by_level_then_source(
    session, dispatcher, row_id, make_character
) -> None:
    character = make_character(
        strength=15,
        race_id=row_id(Race, "high-elf"),
        background_id=row_id(Background, "acolyte"),
    )
    apply_level_up(session, character_id=character.id, class_id=row_id(CharacterClass, "fighter"))

    pending = dispatcher.all_pending_choices(session, character.id)

    assert [choice.choice_id.group_key for choice in pending] == [
        "keen-senses",
        "cantrip",
        "extra-language",
        "languages",
        "tools",
        "armor",
        "fighting-style",
        "skills",
        "weapons",
    ]
    assert [choice.sort_key() for choice in pending] == sorted(
        choice.sort_key() for choice in pending
    )


def test_pending_choice_ids_are_stable(session, dispatcher, row_id, make_character) -> None:
    character = make_character(race_id=row_id(Race, "high-elf"))

    first = [choice.id for choice in dispatcher.all_pending_choices(session, character.id)]
    second = [choice.id for choice in dispatcher.all_pending_choices(session, character.id)]

    assert first == second
    assert f"v1:language:race:{row_id(Race, 'high-elf')}:-:extra-language" in first


def test_level_gated_and_subclass_feature_choices(
    session, dispatcher, row_id, make_character, find_choice
) -> None:
    character = make_character(strength=15, constitution=14)
    fighter_id = row_id(CharacterClass, "fighter")
    apply_level_up(session, character_id=character.id, class_id=fighter_id)

    asi_id = ChoiceId(ChoiceKind.ABILITY_SCORE, OwnerType.CLASS, fighter_id, 4, "asi")
    with pytest.raises(ChoiceNotFoundError):
        dispatcher.resolve(session, character.id, asi_id.encode(), ["str", "str"])

    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    apply_level_up(
        session,
        character_id=character.id,
        class_id=fighter_id,
        subclass_id=row_id(Subclass, "psi-warrior"),
    )
    pending = dispatcher.all_pending_choices(session, character.id)

    psionic = find_choice(pending, "psionic-skill")
    assert psionic.source_type == "subclass_feature"
    assert psionic.source_name == "Psionic Power"
    assert [choice.level for choice in pending if choice.kind == "hit_points"] == [2, 3]

    dispatcher.resolve(session, character.id, psionic.id, ["insight"])
    assert find_choice(
        dispatcher.all_pending_choices(session, character.id), "psionic-skill"
    ).selected == ["insight"]


def test_removed_source_makes_choice_unavailable(
    session, dispatcher, row_id, make_character, find_choice
) -> None:
    character = make_character(race_id=row_id(Race, "high-elf"))
    extra = find_choice(dispatcher.all_pending_choices(session, character.id), "extra-language")
    dispatcher.resolve(session, character.id, extra.id, ["dwarvish"])

    change_race(session, character_id=character.id, race_id=row_id(Race, "dwarf"))

    assert dispatcher.all_pending_choices(session, character.id) == []
    with pytest.raises(ChoiceNotFoundError):
        dispatcher.resolve(session, character.id, extra.id, ["elvish"])


def test_malformed_and_mismatched_ids(session, dispatcher, row_id, make_character) -> None:
    character = make_character(race_id=row_id(Race, "high-elf"))
    high_elf_id = row_id(Race, "high-elf")

    with pytest.raises(ChoiceNotFoundError):
        dispatcher.resolve(session, character.id, "not-an-id", ["elvish"])
    with pytest.raises(ChoiceNotFoundError):
        dispatcher.resolve(
            session,
            character.id,
            f"v1:proficiency:race:{high_elf_id}:-:extra-language",
            ["elvish"],
        )


def test_unregistered_kind_is_a_configuration_error(session, row_id, make_character) -> None:
    dispatcher = ChoiceDispatcher([ProficiencyResolver()])
    character = make_character(race_id=row_id(Race, "high-elf"))
    high_elf_id = row_id(Race, "high-elf")

    assert dispatcher.kinds == [ChoiceKind.PROFICIENCY]
    with pytest.raises(ConfigurationError):
        dispatcher.resolve(
            session,
            character.id,
            f"v1:language:race:{high_elf_id}:-:extra-language",
            ["elvish"],
        )


def test_duplicate_resolvers_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ChoiceDispatcher([LanguageResolver(), LanguageResolver()])


def test_session_is_usable_after_a_rejected_selection(
    session, dispatcher, row_id, make_character, find_choice
) -> None:
    character = make_character(background_id=row_id(Background, "acolyte"))
    languages = find_choice(dispatcher.all_pending_choices(session, character.id), "languages")

    with pytest.raises(SelectionError):
        dispatcher.resolve(session, character.id, languages.id, ["elvish"])

    dispatcher.resolve(session, character.id, languages.id, ["elvish", "common"])
    summary = dispatcher.summary(session, character.id)
    assert summary["total"] == 2
    assert summary["outstanding"] == 1
    done = [choice for choice in summary["choices"] if choice["remaining"] == 0]
    assert done[0]["selected"] == ["elvish", "common"]
    assert done[0]["kind"] == "language"
