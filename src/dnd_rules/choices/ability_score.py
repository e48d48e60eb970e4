"""Ability score increase choices."""

from __future__ import annotations

from typing import Any

from sqlmodel import Session

from dnd_rules.abilities import effective_modifier
from dnd_rules.catalog import CatalogGroup
from dnd_rules.choices.base import CatalogResolver
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.constants import ChoiceKind, normalize_ability
from dnd_rules.counters import sync_counters_for_character
from dnd_rules.errors import SelectionError
from dnd_rules.models.character import CharacterChoice
from dnd_rules.progression import apply_constitution_change, settled_hit_point_levels
from dnd_rules.sheet import CharacterSheet

DEFAULT_BONUS = 1


class AbilityScoreResolver(CatalogResolver):
    """Each selected ability receives the group's ``bonus_value``.

    Concrete options name abilities; an unrestricted option allows any. With
    ``distinct_values`` set the same ability may not be picked twice.
    """

    kind = ChoiceKind.ABILITY_SCORE

    def validate(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        abilities: list[str] = []
        for value in values:
            ability = normalize_ability(value)
            if ability is None:
                raise SelectionError(
                    f"'{value}' is not an ability.",
                    value=value,
                    constraint="ability",
                    choice_id=choice_id.encode(),
                )
            abilities.append(ability)
        self._check_distinct(entry, abilities, choice_id)

        magnitude = entry.group.bonus_value or DEFAULT_BONUS
        records: list[CharacterChoice] = []
        for value, ability in zip(values, abilities):
            option = self._option_for(entry, ability)
            if option is None:
                raise SelectionError(
                    f"{ability} is not offered by {entry.group.label or entry.group.group_key}.",
                    value=value,
                    constraint="option",
                    choice_id=choice_id.encode(),
                )
            records.append(
                CharacterChoice(
                    choice_option_id=option.id,
                    value=ability,
                    option_label=ability.capitalize(),
                    magnitude=magnitude,
                )
            )
        return records

    def _option_for(self, entry: CatalogGroup, ability: str):
        for option in entry.concrete_options:
            if normalize_ability(option.option_source_key) == ability:
                return option
        unrestricted = entry.unrestricted_options
        return unrestricted[0] if unrestricted else None

    def _write(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        records: list[CharacterChoice],
    ) -> None:
        character = sheet.character
        old_modifier = effective_modifier(session, character, "constitution")
        super()._write(session, sheet, entry, records)
        new_modifier = effective_modifier(session, character, "constitution")
        if new_modifier != old_modifier:
            apply_constitution_change(
                character,
                old_modifier,
                new_modifier,
                settled_hit_point_levels(session, sheet.character_id),
            )
            session.add(character)
        sync_counters_for_character(session, sheet.character_id, commit=False)

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {"bonus_value": entry.group.bonus_value or DEFAULT_BONUS}
