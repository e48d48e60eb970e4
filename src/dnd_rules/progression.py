"""Character progression: level-ups, hit points and source changes."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import delete
from sqlmodel import Session, select

from dnd_rules.abilities import effective_ability_scores, effective_modifier
from dnd_rules.constants import ABILITIES, normalize_ability
from dnd_rules.counters import sync_counters_for_character
from dnd_rules.errors import (
    AlreadyResolvedError,
    CharacterNotFoundError,
    ConfigurationError,
    PrerequisiteError,
    SelectionError,
    StateError,
)
from dnd_rules.locks import character_lock
from dnd_rules.models.character import (
    Character,
    CharacterChoice,
    CharacterFeat,
    CharacterHitPointGain,
    CharacterLevel,
)
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.choices import ChoiceGroup, Prerequisite
from dnd_rules.models.origin import Background, Feat, Race
from dnd_rules.sheet import CharacterSheet, load_character_sheet

logger = logging.getLogger(__name__)

HP_STARTING = "starting"
HP_AVERAGE = "average"
HP_ROLLED = "rolled"


def _compare_int(operator: str, left: int, right: int) -> bool:
    if operator == ">=":
        return left >= right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    if operator == "<":
        return left < right
    if operator == "==":
        return left == right
    raise ConfigurationError(f"Unsupported prerequisite operator: {operator}")


def _validate_class_prereqs(
    session: Session,
    class_ids: Iterable[int],
    ability_scores: dict[str, int],
    total_level: int,
) -> None:
    prereqs = session.exec(
        select(Prerequisite).where(
            Prerequisite.applies_to_type == "class",
            Prerequisite.applies_to_id.in_(list(class_ids)),
        )
    ).all()
    for prereq in prereqs:
        if prereq.prereq_type == "ability":
            ability = normalize_ability(prereq.key)
            if ability is None:
                raise ConfigurationError(f"Unknown prerequisite ability: {prereq.key}")
            if not _compare_int(prereq.operator, ability_scores[ability], int(prereq.value)):
                raise PrerequisiteError(
                    f"Prerequisite failed: {ability} {prereq.operator} {prereq.value}"
                )
        elif prereq.prereq_type == "level":
            if not _compare_int(prereq.operator, total_level, int(prereq.value)):
                raise PrerequisiteError(
                    f"Prerequisite failed: level {prereq.operator} {prereq.value}"
                )
        else:
            raise ConfigurationError(f"Unsupported prerequisite type: {prereq.prereq_type}")


def starting_hit_points(hit_die: int, constitution_modifier: int) -> int:
    return max(1, hit_die + constitution_modifier)


def average_hit_point_gain(hit_die: int, constitution_modifier: int) -> int:
    return max(1, hit_die // 2 + 1 + constitution_modifier)


def rolled_hit_point_gain(hit_die: int, roll: int, constitution_modifier: int) -> int:
    """Return the gain for a rolled hit die; rolls outside 1..hit_die are rejected."""
    if roll < 1 or roll > hit_die:
        raise SelectionError(
            f"Roll {roll} is outside 1-{hit_die}.",
            value=str(roll),
            constraint="roll_range",
        )
    return max(1, roll + constitution_modifier)


def apply_constitution_change(
    character: Character,
    old_modifier: int,
    new_modifier: int,
    levels: int,
) -> int:
    """Shift hit points for a changed constitution modifier.

    ``levels`` is the number of levels whose hit points are already settled;
    levels still awaiting their hit point choice pick up the new modifier
    when resolved. Maximum HP moves by ``delta``. Current HP rises with a positive delta and
    is otherwise only clamped to the new maximum (never below 1).
    """
    delta = (new_modifier - old_modifier) * levels
    if delta == 0:
        return 0
    character.max_hp += delta
    if delta > 0:
        character.current_hp += delta
    else:
        character.current_hp = max(1, min(character.current_hp, character.max_hp))
    logger.info(
        "Constitution modifier %s -> %s changed max HP of character %s by %s",
        old_modifier,
        new_modifier,
        character.id,
        delta,
    )
    return delta


def settled_hit_point_levels(session: Session, character_id: int) -> int:
    return len(
        session.exec(
            select(CharacterHitPointGain.id).where(
                CharacterHitPointGain.character_id == character_id
            )
        ).all()
    )


def record_hit_point_gain(
    session: Session,
    character: Character,
    level_row: CharacterLevel,
    hit_die: int,
    *,
    method: str,
    roll: int | None = None,
) -> CharacterHitPointGain:
    """Settle hit points for one character level (no commit)."""
    existing = session.exec(
        select(CharacterHitPointGain).where(
            CharacterHitPointGain.character_id == character.id,
            CharacterHitPointGain.level == level_row.level,
        )
    ).one_or_none()
    if existing is not None:
        raise AlreadyResolvedError(
            f"Hit points for level {level_row.level} are already settled."
        )

    modifier = effective_modifier(session, character, "constitution")
    if method == HP_STARTING:
        amount = starting_hit_points(hit_die, modifier)
        character.max_hp = amount
        character.current_hp = amount
    else:
        if method == HP_AVERAGE:
            amount = average_hit_point_gain(hit_die, modifier)
        elif method == HP_ROLLED:
            if roll is None:
                raise SelectionError(
                    "A rolled gain needs a roll.", value=None, constraint="roll_range"
                )
            amount = rolled_hit_point_gain(hit_die, roll, modifier)
        else:
            raise SelectionError(
                f"Unknown hit point method: {method}", value=method, constraint="option"
            )
        character.max_hp += amount
        character.current_hp += amount

    gain = CharacterHitPointGain(
        character_id=character.id,
        class_id=level_row.class_id,
        level=level_row.level,
        method=method,
        roll=roll,
        amount=amount,
    )
    session.add(character)
    session.add(gain)
    session.flush()
    logger.info(
        "Character %s gained %s HP at level %s (%s)",
        character.id,
        amount,
        level_row.level,
        method,
    )
    return gain


def prune_orphaned_choices(session: Session, sheet: CharacterSheet) -> int:
    """Delete resolution records whose group no longer applies to the character."""
    levels = {source.key: source.level for source in sheet.sources}
    rows = session.exec(
        select(CharacterChoice, ChoiceGroup)
        .join(ChoiceGroup, ChoiceGroup.id == CharacterChoice.choice_group_id)
        .where(CharacterChoice.character_id == sheet.character_id)
    ).all()
    stale_ids = []
    for record, group in rows:
        level = levels.get((group.owner_type, group.owner_id))
        if level is None or (group.level is not None and group.level > level):
            stale_ids.append(record.id)
    if stale_ids:
        session.exec(delete(CharacterChoice).where(CharacterChoice.id.in_(stale_ids)))
        session.flush()
        logger.info(
            "Removed %s stale choice record(s) for character %s",
            len(stale_ids),
            sheet.character_id,
        )
    return len(stale_ids)


def _refresh_after_source_change(
    session: Session, character_id: int, old_constitution_modifier: int
) -> None:
    sheet = load_character_sheet(session, character_id)
    prune_orphaned_choices(session, sheet)
    new_modifier = effective_modifier(session, sheet.character, "constitution")
    apply_constitution_change(
        sheet.character,
        old_constitution_modifier,
        new_modifier,
        settled_hit_point_levels(session, character_id),
    )
    session.add(sheet.character)
    sync_counters_for_character(session, character_id, commit=False)
    session.commit()


def apply_level_up(
    session: Session,
    *,
    character_id: int,
    class_id: int,
    subclass_id: int | None = None,
) -> CharacterLevel:
    """Record the next character level in ``class_id``.

    The first level sets starting hit points; later levels leave a hit point
    choice pending. Taking a new class checks the prerequisites of the new
    class and every class already held.
    """
    with character_lock(character_id):
        sheet = load_character_sheet(session, character_id)
        class_row = session.get(CharacterClass, class_id)
        if class_row is None:
            raise StateError(f"Unknown class: {class_id}")

        current = sheet.class_entry(class_id)
        if current is None and sheet.total_level > 0:
            held = [int(entry.character_class.id) for entry in sheet.classes]
            _validate_class_prereqs(
                session,
                [class_id, *held],
                effective_ability_scores(session, sheet.character),
                sheet.total_level,
            )

        if subclass_id is not None:
            _subclass_or_raise(session, class_id, subclass_id)
        elif current is not None and current.subclass is not None:
            subclass_id = current.subclass.id

        level_row = CharacterLevel(
            character_id=character_id,
            class_id=class_id,
            subclass_id=subclass_id,
            level=sheet.total_level + 1,
        )
        session.add(level_row)
        session.flush()

        if level_row.level == 1:
            record_hit_point_gain(
                session, sheet.character, level_row, class_row.hit_die, method=HP_STARTING
            )

        sync_counters_for_character(session, character_id, commit=False)
        session.commit()
        session.refresh(level_row)
    logger.info(
        "Character %s reached level %s in %s", character_id, level_row.level, class_row.name
    )
    return level_row


def _subclass_or_raise(session: Session, class_id: int, subclass_id: int) -> Subclass:
    subclass = session.get(Subclass, subclass_id)
    if subclass is None or subclass.class_id != class_id:
        raise StateError(f"Subclass {subclass_id} does not belong to class {class_id}")
    return subclass


def assign_subclass(
    session: Session, *, character_id: int, class_id: int, subclass_id: int
) -> None:
    """Set the subclass for every level the character has in ``class_id``."""
    with character_lock(character_id):
        sheet = load_character_sheet(session, character_id)
        entry = sheet.class_entry(class_id)
        if entry is None:
            raise StateError(f"Character {character_id} has no levels in class {class_id}")
        _subclass_or_raise(session, class_id, subclass_id)
        required_level = entry.character_class.subclass_level
        if required_level is not None and entry.level < required_level:
            raise PrerequisiteError(
                f"{entry.character_class.name} subclass requires level {required_level}"
            )
        old_modifier = effective_modifier(session, sheet.character, "constitution")
        for row in sheet.levels:
            if row.class_id == class_id:
                row.subclass_id = subclass_id
                session.add(row)
        session.flush()
        _refresh_after_source_change(session, character_id, old_modifier)


def grant_feat(session: Session, *, character_id: int, feat_id: int) -> None:
    with character_lock(character_id):
        character = _character_or_raise(session, character_id)
        if session.get(Feat, feat_id) is None:
            raise StateError(f"Unknown feat: {feat_id}")
        existing = session.exec(
            select(CharacterFeat).where(
                CharacterFeat.character_id == character_id,
                CharacterFeat.feat_id == feat_id,
            )
        ).one_or_none()
        if existing is None:
            session.add(CharacterFeat(character_id=character.id, feat_id=feat_id))
            session.flush()
        sync_counters_for_character(session, character_id, commit=False)
        session.commit()


def remove_feat(session: Session, *, character_id: int, feat_id: int) -> None:
    with character_lock(character_id):
        character = _character_or_raise(session, character_id)
        old_modifier = effective_modifier(session, character, "constitution")
        session.exec(
            delete(CharacterFeat).where(
                CharacterFeat.character_id == character_id,
                CharacterFeat.feat_id == feat_id,
            )
        )
        session.flush()
        _refresh_after_source_change(session, character_id, old_modifier)


def change_race(session: Session, *, character_id: int, race_id: int | None) -> None:
    """Replace the character's race; choices made through the old race are dropped."""
    with character_lock(character_id):
        character = _character_or_raise(session, character_id)
        if race_id is not None and session.get(Race, race_id) is None:
            raise StateError(f"Unknown race: {race_id}")
        old_modifier = effective_modifier(session, character, "constitution")
        character.race_id = race_id
        session.add(character)
        session.flush()
        _refresh_after_source_change(session, character_id, old_modifier)


def change_background(
    session: Session, *, character_id: int, background_id: int | None
) -> None:
    with character_lock(character_id):
        character = _character_or_raise(session, character_id)
        if background_id is not None and session.get(Background, background_id) is None:
            raise StateError(f"Unknown background: {background_id}")
        old_modifier = effective_modifier(session, character, "constitution")
        character.background_id = background_id
        session.add(character)
        session.flush()
        _refresh_after_source_change(session, character_id, old_modifier)


def set_ability_score(
    session: Session, *, character_id: int, ability: str, score: int
) -> Character:
    """Change a base ability score, recomputing HP when constitution moves."""
    canonical = normalize_ability(ability)
    if canonical is None or canonical not in ABILITIES:
        raise SelectionError(
            f"Unknown ability: {ability}", value=ability, constraint="ability"
        )
    with character_lock(character_id):
        sheet = load_character_sheet(session, character_id)
        character = sheet.character
        old_modifier = effective_modifier(session, character, "constitution")
        setattr(character, canonical, score)
        session.add(character)
        session.flush()
        new_modifier = effective_modifier(session, character, "constitution")
        apply_constitution_change(
            character,
            old_modifier,
            new_modifier,
            settled_hit_point_levels(session, character_id),
        )
        session.add(character)
        sync_counters_for_character(session, character_id, commit=False)
        session.commit()
        session.refresh(character)
        return character


def _character_or_raise(session: Session, character_id: int) -> Character:
    character = session.get(Character, character_id)
    if character is None:
        raise CharacterNotFoundError(f"Character not found: {character_id}")
    return character


__all__ = [
    "HP_AVERAGE",
    "HP_ROLLED",
    "HP_STARTING",
    "apply_constitution_change",
    "apply_level_up",
    "assign_subclass",
    "average_hit_point_gain",
    "change_background",
    "change_race",
    "grant_feat",
    "prune_orphaned_choices",
    "record_hit_point_gain",
    "remove_feat",
    "rolled_hit_point_gain",
    "set_ability_score",
    "settled_hit_point_levels",
    "starting_hit_points",
]
