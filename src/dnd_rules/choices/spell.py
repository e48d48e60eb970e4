"""Spell choices (cantrips, spells known, bonus spells from feats and races)."""

from __future__ import annotations

from typing import Any

from sqlmodel import Session, select

from dnd_rules.catalog import CatalogGroup
from dnd_rules.choices.base import CatalogResolver
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.constants import ChoiceKind
from dnd_rules.errors import SelectionError
from dnd_rules.models.character import CharacterChoice
from dnd_rules.models.choices import ChoiceOption
from dnd_rules.models.relationships import SpellClassLink
from dnd_rules.models.spell import Spell
from dnd_rules.sheet import CharacterSheet


def _spell_failure(
    option: ChoiceOption, spell: Spell, class_lists: dict[int, set[int]]
) -> str | None:
    """Return the first filter ``spell`` fails on ``option``, or None when it passes."""
    if option.max_level is not None and spell.level > option.max_level:
        return "max_level"
    if option.class_id is not None and option.class_id not in class_lists.get(spell.id, set()):
        return "class_list"
    if option.school and (spell.school or "").lower() != option.school.lower():
        return "school"
    if option.ritual_only and not spell.ritual:
        return "ritual"
    return None


class SpellResolver(CatalogResolver):
    """Values are spell source keys.

    A spell listed as a concrete option is always accepted. Otherwise it must
    pass every non-null filter on at least one unrestricted option; when none
    accepts it the error names the first filter of the first option it failed.
    """

    kind = ChoiceKind.SPELL

    def validate(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        self._check_distinct(entry, values, choice_id)
        spells = self._spells_by_key(session, values)
        class_lists = self._class_lists(session, [spell.id for spell in spells.values()])

        records: list[CharacterChoice] = []
        for value in values:
            spell = spells.get(value.lower())
            if spell is None:
                raise SelectionError(
                    f"Unknown spell '{value}'.",
                    value=value,
                    constraint="option",
                    choice_id=choice_id.encode(),
                )
            option = self._concrete_option(entry, spell.source_key)
            if option is None:
                option = self._unrestricted_match(entry, spell, value, class_lists, choice_id)
            records.append(
                CharacterChoice(
                    choice_option_id=option.id,
                    value=spell.source_key,
                    option_label=spell.name,
                )
            )
        return records

    def _unrestricted_match(
        self,
        entry: CatalogGroup,
        spell: Spell,
        value: str,
        class_lists: dict[int, set[int]],
        choice_id: ChoiceId,
    ) -> ChoiceOption:
        first_failure: str | None = None
        for option in entry.unrestricted_options:
            failure = _spell_failure(option, spell, class_lists)
            if failure is None:
                return option
            first_failure = first_failure or failure
        raise SelectionError(
            f"{spell.name} is not allowed for {entry.group.label or entry.group.group_key}.",
            value=value,
            constraint=first_failure or "option",
            choice_id=choice_id.encode(),
        )

    def _spells_by_key(self, session: Session, values: list[str]) -> dict[str, Spell]:
        if not values:
            return {}
        keys = sorted({value for value in values} | {value.lower() for value in values})
        rows = session.exec(select(Spell).where(Spell.source_key.in_(keys))).all()
        return {spell.source_key.lower(): spell for spell in rows}

    def _class_lists(self, session: Session, spell_ids: list[int]) -> dict[int, set[int]]:
        lists: dict[int, set[int]] = {}
        if not spell_ids:
            return lists
        for link in session.exec(
            select(SpellClassLink).where(SpellClassLink.spell_id.in_(spell_ids))
        ).all():
            lists.setdefault(link.spell_id, set()).add(link.class_id)
        return lists

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {
            "filters": [
                self._pending_option(option).filters for option in entry.unrestricted_options
            ]
        }
