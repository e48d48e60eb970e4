"""Proficiency choices (skills, tools, weapons, armor)."""

from __future__ import annotations

from typing import Any

from sqlmodel import Session

from dnd_rules.catalog import CatalogGroup
from dnd_rules.choices.base import CatalogResolver
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.choices.lookup import DatabaseOptionLookup, LookupCandidate, OptionLookup
from dnd_rules.constants import ChoiceKind
from dnd_rules.errors import SelectionError
from dnd_rules.models.character import CharacterChoice
from dnd_rules.models.choices import ChoiceOption
from dnd_rules.sheet import CharacterSheet


class LookupResolver(CatalogResolver):
    """Resolver whose unrestricted options defer enumeration to an ``OptionLookup``.

    The lookup only lists candidates; membership is still checked here.
    """

    target_type: str

    def __init__(self, lookup: OptionLookup | None = None) -> None:
        self.lookup = lookup or DatabaseOptionLookup()

    def validate(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        self._check_distinct(entry, values, choice_id)
        candidates: dict[int, dict[str, LookupCandidate]] = {}
        records: list[CharacterChoice] = []
        for value in values:
            option = self._concrete_option(entry, value)
            if option is not None:
                records.append(
                    CharacterChoice(
                        choice_option_id=option.id,
                        value=option.option_source_key,
                        option_label=option.label,
                    )
                )
                continue
            matched = self._match_unrestricted(session, entry, value, candidates)
            if matched is None:
                constraint = "subcategory" if entry.unrestricted_options else "option"
                raise SelectionError(
                    f"'{value}' is not an allowed {self.target_type} for {entry.group.label or entry.group.group_key}.",
                    value=value,
                    constraint=constraint,
                    choice_id=choice_id.encode(),
                )
            option, candidate = matched
            records.append(
                CharacterChoice(
                    choice_option_id=option.id,
                    value=candidate.key,
                    option_label=candidate.label,
                )
            )
        return records

    def _match_unrestricted(
        self,
        session: Session,
        entry: CatalogGroup,
        value: str,
        cache: dict[int, dict[str, LookupCandidate]],
    ) -> tuple[ChoiceOption, LookupCandidate] | None:
        folded = value.lower()
        for option in entry.unrestricted_options:
            if option.id not in cache:
                cache[option.id] = {
                    candidate.key.lower(): candidate
                    for candidate in self.lookup.candidates(
                        session, self.target_type, option.category, option.subcategory
                    )
                }
            candidate = cache[option.id].get(folded)
            if candidate is not None:
                return option, candidate
        return None

    def _options_endpoint_hint(self, entry: CatalogGroup) -> str | None:
        unrestricted = entry.unrestricted_options
        if not unrestricted:
            return None
        option = unrestricted[0]
        return self.lookup.hint(self.target_type, option.category, option.subcategory)

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {"target_type": self.target_type}


class ProficiencyResolver(LookupResolver):
    kind = ChoiceKind.PROFICIENCY
    target_type = "proficiency"
