from __future__ import annotations

from pathlib import Path
import sys

import pytest
from sqlmodel import Session, select

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.choices import ChoiceDispatcher, LanguageResolver, ProficiencyResolver
from dnd_rules.errors import ConfigurationError
from dnd_rules.models.character_class import CharacterClass
from dnd_rules.models.choices import ChoiceGroup, ChoiceOption
from dnd_rules.models.counters import CounterDefinition
from dnd_rules.models.origin import Race
from dnd_rules.verify.choices import validate_catalog, verify_choices


def test_verify_choices_passes(session: Session, dispatcher) -> None:
    report = verify_choices(session, dispatcher)

    assert report == {"errors": [], "warnings": []}
    assert validate_catalog(session, dispatcher) == report


def test_verify_choices_empty_and_unknown_groups(session: Session, row_id) -> None:
    elf_id = row_id(Race, "elf")
    session.add(
        ChoiceGroup(
            owner_type="race",
            owner_id=elf_id,
            group_key="empty",
            choice_type="language",
            choose_n=1,
        )
    )
    odd = ChoiceGroup(
        owner_type="race",
        owner_id=elf_id,
        group_key="blessing",
        choice_type="blessing",
        choose_n=1,
    )
    session.add(odd)
    session.commit()
    session.refresh(odd)
    session.add(
        ChoiceOption(
            choice_group_id=odd.id,
            option_type="string",
            option_source_key="moonlight",
            label="Moonlight",
        )
    )
    session.commit()

    report = verify_choices(session)

    assert any(
        "Choice group has no options" in error and "group_key=empty" in error
        for error in report["errors"]
    )
    assert any(
        "Choice group has unknown kind" in error and "choice_type=blessing" in error
        for error in report["errors"]
    )
    with pytest.raises(ConfigurationError):
        validate_catalog(session)


def test_verify_choices_missing_owner_and_class(session: Session, row_id) -> None:
    group = ChoiceGroup(
        owner_type="class",
        owner_id=9999,
        group_key="skills",
        choice_type="spell",
        choose_n=1,
        level=1,
    )
    session.add(group)
    session.commit()
    session.refresh(group)
    session.add(
        ChoiceOption(
            choice_group_id=group.id,
            option_type="spell",
            option_source_key="any-spell",
            label="Any spell",
            is_unrestricted=True,
            class_id=row_id(CharacterClass, "wizard"),
        )
    )
    session.commit()

    report = verify_choices(session)

    assert report["errors"] == [
        f"Choice group missing class owner: id={group.id} owner_id=9999"
    ]


def test_verify_choices_missing_resolver(session: Session) -> None:
    dispatcher = ChoiceDispatcher([ProficiencyResolver(), LanguageResolver()])

    report = verify_choices(session, dispatcher)

    unresolved = sorted(
        error.split("choice_type=")[1]
        for error in report["errors"]
        if "has no resolver" in error
    )
    assert set(unresolved) == {"ability_score", "equipment", "optional_feature", "spell"}


def test_verify_choices_unresolved_target_is_a_warning(session: Session) -> None:
    group = session.exec(select(ChoiceGroup).where(ChoiceGroup.group_key == "skills")).one()
    session.add(
        ChoiceOption(
            choice_group_id=group.id,
            option_type="proficiency",
            option_source_key="sleight-of-hand",
            label="Sleight of Hand",
            position=9,
        )
    )
    session.commit()

    report = verify_choices(session)

    assert report["errors"] == []
    assert len(report["warnings"]) == 1
    assert "key=sleight-of-hand" in report["warnings"][0]
    assert validate_catalog(session) == report


def test_verify_choices_counter_without_maximum(session: Session, row_id) -> None:
    session.add(
        CounterDefinition(
            owner_type="race",
            owner_id=row_id(Race, "dwarf"),
            pool_name="Stonecunning",
            level=1,
            reset_timing="long_rest",
        )
    )
    session.commit()

    report = verify_choices(session)

    assert any("Counter definition has no maximum" in error for error in report["errors"])
