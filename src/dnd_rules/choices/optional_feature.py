"""Optional feature choices: fighting styles, invocations, maneuvers, metamagic."""

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
from dnd_rules.models.feature import Feature
from dnd_rules.sheet import CharacterSheet


def _feature_failure(option: ChoiceOption, feature: Feature) -> str | None:
    if option.subcategory and (feature.feature_type or "").lower() != option.subcategory.lower():
        return "subcategory"
    if option.max_level is not None and (feature.level or 0) > option.max_level:
        return "max_level"
    return None


class OptionalFeatureResolver(CatalogResolver):
    kind = ChoiceKind.OPTIONAL_FEATURE

    def validate(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        self._check_distinct(entry, values, choice_id)
        keys = sorted({value for value in values} | {value.lower() for value in values})
        features = {
            feature.source_key.lower(): feature
            for feature in session.exec(select(Feature).where(Feature.source_key.in_(keys))).all()
        }
        source_level = entry.source.level if entry.source else sheet.total_level

        records: list[CharacterChoice] = []
        for value in values:
            feature = features.get(value.lower())
            if feature is None:
                raise SelectionError(
                    f"Unknown feature '{value}'.",
                    value=value,
                    constraint="option",
                    choice_id=choice_id.encode(),
                )
            if feature.level is not None and feature.level > source_level:
                raise SelectionError(
                    f"{feature.name} requires level {feature.level}.",
                    value=value,
                    constraint="level",
                    choice_id=choice_id.encode(),
                )
            option = self._concrete_option(entry, feature.source_key)
            if option is None:
                option = self._unrestricted_match(entry, feature, value, choice_id)
            records.append(
                CharacterChoice(
                    choice_option_id=option.id,
                    value=feature.source_key,
                    option_label=feature.name,
                )
            )
        return records

    def _unrestricted_match(
        self, entry: CatalogGroup, feature: Feature, value: str, choice_id: ChoiceId
    ) -> ChoiceOption:
        first_failure: str | None = None
        for option in entry.unrestricted_options:
            failure = _feature_failure(option, feature)
            if failure is None:
                return option
            first_failure = first_failure or failure
        raise SelectionError(
            f"{feature.name} is not offered by {entry.group.label or entry.group.group_key}.",
            value=value,
            constraint=first_failure or "option",
            choice_id=choice_id.encode(),
        )

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {
            "feature_types": sorted(
                {option.subcategory for option in entry.unrestricted_options if option.subcategory}
            )
        }
