from __future__ import annotations

from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules.constants import ResetTiming
from dnd_rules.counters import (
    counters_for,
    reset_by_timing,
    reset_counter,
    restore_counter,
    sync_counters_for_character,
    use_counter,
)
from dnd_rules.errors import CounterNotFoundError, SelectionError
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.origin import Feat, Race
from dnd_rules.progression import apply_level_up, grant_feat, remove_feat


def _pool(counters, pool_name: str, source_name: str | None = None):
    matches = [
        counter
        for counter in counters
        if counter["pool_name"] == pool_name
        and (source_name is None or counter["source_name"] == source_name)
    ]
    assert len(matches) == 1, counters
    return matches[0]


@pytest.fixture
def psionic(session, row_id, make_character):
    """Psi Warrior 3 / Soulknife 3."""
    character = make_character(strength=15, dexterity=14, constitution=14)
    fighter_id = row_id(CharacterClass, "fighter")
    rogue_id = row_id(CharacterClass, "rogue")
    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    apply_level_up(
        session,
        character_id=character.id,
        class_id=fighter_id,
        subclass_id=row_id(Subclass, "psi-warrior"),
    )
    apply_level_up(session, character_id=character.id, class_id=rogue_id)
    apply_level_up(session, character_id=character.id, class_id=rogue_id)
    apply_level_up(
        session,
        character_id=character.id,
        class_id=rogue_id,
        subclass_id=row_id(Subclass, "soulknife"),
    )
    return character


def test_class_counters_follow_level(session, row_id, make_character) -> None:
    character = make_character(strength=15)
    fighter_id = row_id(CharacterClass, "fighter")
    apply_level_up(session, character_id=character.id, class_id=fighter_id)

    counters = counters_for(session, character.id)
    assert [counter["pool_name"] for counter in counters] == ["Second Wind"]
    assert counters[0]["current"] == 1
    assert counters[0]["reset_timing"] == ResetTiming.SHORT_REST.value

    apply_level_up(session, character_id=character.id, class_id=fighter_id)
    assert [counter["pool_name"] for counter in counters_for(session, character.id)] == [
        "Action Surge",
        "Second Wind",
    ]


def test_same_pool_from_two_sources_stays_separate(session, psionic) -> None:
    counters = counters_for(session, psionic.id)

    energy = [counter for counter in counters if counter["pool_name"] == "Psionic Energy"]
    assert [(counter["source_name"], counter["max"]) for counter in energy] == [
        ("Psi Warrior", 4),
        ("Soulknife", 4),
    ]

    assert use_counter(session, psionic.id, energy[0]["id"], 3) is True
    counters = counters_for(session, psionic.id)
    assert _pool(counters, "Psionic Energy", "Psi Warrior")["current"] == 1
    assert _pool(counters, "Psionic Energy", "Soulknife")["current"] == 4


def test_higher_level_table_raises_maximum_and_keeps_current(
    session, row_id, psionic
) -> None:
    energy = _pool(counters_for(session, psionic.id), "Psionic Energy", "Psi Warrior")
    use_counter(session, psionic.id, energy["id"], 3)

    fighter_id = row_id(CharacterClass, "fighter")
    apply_level_up(session, character_id=psionic.id, class_id=fighter_id)
    apply_level_up(session, character_id=psionic.id, class_id=fighter_id)

    energy = _pool(counters_for(session, psionic.id), "Psionic Energy", "Psi Warrior")
    assert (energy["current"], energy["max"]) == (1, 6)


def test_exhausted_pool_is_left_unchanged(session, row_id, make_character) -> None:
    character = make_character(strength=15)
    apply_level_up(session, character_id=character.id, class_id=row_id(CharacterClass, "fighter"))
    (second_wind,) = counters_for(session, character.id)

    assert use_counter(session, character.id, second_wind["id"]) is True
    assert use_counter(session, character.id, second_wind["id"]) is False
    assert counters_for(session, character.id)[0]["current"] == 0

    restored = restore_counter(session, character.id, second_wind["id"], 5)
    assert restored.current == 1


def test_unlimited_pool_is_never_spent(session, row_id, make_character) -> None:
    character = make_character(race_id=row_id(Race, "high-elf"))
    trance = _pool(counters_for(session, character.id), "Trance")

    assert trance["unlimited"] is True
    assert trance["source_name"] == "Elf"
    for _ in range(3):
        assert use_counter(session, character.id, trance["id"], 10) is True
    assert _pool(counters_for(session, character.id), "Trance")["current"] == -1


def test_rests_reset_matching_pools(session, psionic) -> None:
    counters = counters_for(session, psionic.id)
    for counter in counters:
        use_counter(session, psionic.id, counter["id"])

    reset = reset_by_timing(session, psionic.id, ["short-rest"])
    assert sorted(counter["pool_name"] for counter in reset) == ["Action Surge", "Second Wind"]
    counters = counters_for(session, psionic.id)
    assert _pool(counters, "Second Wind")["current"] == 1
    assert _pool(counters, "Psionic Energy", "Soulknife")["current"] == 3

    reset = reset_by_timing(
        session, psionic.id, [ResetTiming.SHORT_REST, ResetTiming.LONG_REST]
    )
    assert len(reset) == 4
    assert all(
        counter["current"] == counter["max"] for counter in counters_for(session, psionic.id)
    )


def test_reset_single_counter(session, psionic) -> None:
    energy = _pool(counters_for(session, psionic.id), "Psionic Energy", "Soulknife")
    use_counter(session, psionic.id, energy["id"], 4)

    counter = reset_counter(session, psionic.id, energy["id"])

    assert counter.current is None
    assert _pool(counters_for(session, psionic.id), "Psionic Energy", "Soulknife")["current"] == 4


def test_feat_counters_follow_feats(session, row_id, make_character) -> None:
    character = make_character(charisma=8)
    lucky_id = row_id(Feat, "lucky")
    grant_feat(session, character_id=character.id, feat_id=lucky_id)
    grant_feat(session, character_id=character.id, feat_id=row_id(Feat, "inspiring-leader"))

    counters = counters_for(session, character.id)
    assert _pool(counters, "Luck Points")["max"] == 3
    assert _pool(counters, "Inspiration")["max"] == 1

    remove_feat(session, character_id=character.id, feat_id=lucky_id)
    assert [counter["pool_name"] for counter in counters_for(session, character.id)] == [
        "Inspiration"
    ]


def test_counter_of_another_character_is_not_found(
    session, row_id, make_character, psionic
) -> None:
    other = make_character(name="Orrin")
    counter_id = counters_for(session, psionic.id)[0]["id"]

    with pytest.raises(CounterNotFoundError):
        use_counter(session, other.id, counter_id)
    with pytest.raises(CounterNotFoundError):
        reset_counter(session, psionic.id, 9999)


def test_sync_is_idempotent(session, psionic) -> None:
    assert sync_counters_for_character(session, psionic.id) == {
        "created": 0,
        "updated": 0,
        "removed": 0,
    }


@pytest.mark.parametrize("amount", [0, -5])
def test_use_and_restore_reject_non_positive_amounts(
    session, row_id, make_character, amount
) -> None:
    character = make_character(strength=15)
    apply_level_up(session, character_id=character.id, class_id=row_id(CharacterClass, "fighter"))
    second_wind = _pool(counters_for(session, character.id), "Second Wind")

    with pytest.raises(SelectionError) as excinfo:
        use_counter(session, character.id, second_wind["id"], amount=amount)
    assert excinfo.value.constraint == "amount"

    assert use_counter(session, character.id, second_wind["id"]) is True
    with pytest.raises(SelectionError) as excinfo:
        restore_counter(session, character.id, second_wind["id"], amount=amount)
    assert excinfo.value.constraint == "amount"

    pool = _pool(counters_for(session, character.id), "Second Wind")
    assert (pool["current"], pool["max"]) == (0, 1)
