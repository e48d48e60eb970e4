"""Ability score helpers."""

from __future__ import annotations

from sqlmodel import Session, select

from dnd_rules.constants import ABILITIES, ChoiceKind
from dnd_rules.models.character import Character, CharacterChoice


def ability_modifier(score: int) -> int:
    """Return the standard modifier for an ability score."""
    return (score - 10) // 2


def base_ability_scores(character: Character) -> dict[str, int]:
    return {ability: int(getattr(character, ability)) for ability in ABILITIES}


def effective_ability_scores(session: Session, character: Character) -> dict[str, int]:
    """Return base scores plus every resolved ability-score bonus."""
    scores = base_ability_scores(character)
    bonuses = session.exec(
        select(CharacterChoice).where(
            CharacterChoice.character_id == character.id,
            CharacterChoice.choice_type == ChoiceKind.ABILITY_SCORE.value,
        )
    ).all()
    for bonus in bonuses:
        if bonus.value in scores:
            scores[bonus.value] += bonus.magnitude or 0
    return scores


def effective_modifier(session: Session, character: Character, ability: str) -> int:
    return ability_modifier(effective_ability_scores(session, character)[ability])
