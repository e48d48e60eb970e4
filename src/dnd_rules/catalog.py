"""Read-only queries over the choice catalog."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import and_, or_
from sqlmodel import Session, select

from dnd_rules.constants import OwnerType, parse_owner_type
from dnd_rules.models.choices import ChoiceGroup, ChoiceOption
from dnd_rules.sheet import ChoiceSource


@dataclass
class CatalogGroup:
    """A choice group with its ordered options and the source it applies through."""

    group: ChoiceGroup
    options: list[ChoiceOption]
    source: ChoiceSource | None = None

    @property
    def concrete_options(self) -> list[ChoiceOption]:
        return [option for option in self.options if not option.is_unrestricted]

    @property
    def unrestricted_options(self) -> list[ChoiceOption]:
        return [option for option in self.options if option.is_unrestricted]


def _option_sort_key(option: ChoiceOption) -> tuple[str, int, str, int]:
    return (
        option.option_letter or "",
        option.position,
        option.label,
        option.id or 0,
    )


def _level_applies(group: ChoiceGroup, max_level: int) -> bool:
    return group.level is None or group.level <= max_level


def options_for_groups(
    session: Session, group_ids: Iterable[int]
) -> dict[int, list[ChoiceOption]]:
    """Return ordered options keyed by choice group id, in one query."""
    ids = [group_id for group_id in group_ids if group_id is not None]
    options_by_group: dict[int, list[ChoiceOption]] = defaultdict(list)
    if not ids:
        return options_by_group
    for option in session.exec(
        select(ChoiceOption).where(ChoiceOption.choice_group_id.in_(ids))
    ).all():
        options_by_group[option.choice_group_id].append(option)
    for options in options_by_group.values():
        options.sort(key=_option_sort_key)
    return options_by_group


def groups_for(
    session: Session,
    owner_type: OwnerType | str,
    owner_id: int,
    max_level: int,
    *,
    choice_type: str | None = None,
) -> list[CatalogGroup]:
    """Return groups an owner offers up to ``max_level``.

    Groups without a level gate are always returned. An unknown owner type
    raises ``ConfigurationError``.
    """
    owner = parse_owner_type(owner_type)
    statement = select(ChoiceGroup).where(
        ChoiceGroup.owner_type == owner.value,
        ChoiceGroup.owner_id == owner_id,
    )
    if choice_type is not None:
        statement = statement.where(ChoiceGroup.choice_type == choice_type)
    groups = [
        group for group in session.exec(statement).all() if _level_applies(group, max_level)
    ]
    options = options_for_groups(session, [group.id for group in groups])
    results = [CatalogGroup(group, options.get(group.id, [])) for group in groups]
    results.sort(key=lambda entry: (entry.group.level or 0, entry.group.group_key))
    return results


def groups_for_sources(
    session: Session,
    sources: Iterable[ChoiceSource],
    *,
    choice_type: str | None = None,
) -> list[CatalogGroup]:
    """Return every applicable group for a set of sources in one pass."""
    source_list = list(sources)
    if not source_list:
        return []
    by_key = {source.key: source for source in source_list}
    conditions = [
        and_(
            ChoiceGroup.owner_type == source.owner_type.value,
            ChoiceGroup.owner_id == source.owner_id,
        )
        for source in source_list
    ]
    statement = select(ChoiceGroup).where(or_(*conditions))
    if choice_type is not None:
        statement = statement.where(ChoiceGroup.choice_type == choice_type)

    applicable: list[tuple[ChoiceGroup, ChoiceSource]] = []
    for group in session.exec(statement).all():
        source = by_key.get((group.owner_type, group.owner_id))
        if source is not None and _level_applies(group, source.level):
            applicable.append((group, source))

    options = options_for_groups(session, [group.id for group, _ in applicable])
    return [
        CatalogGroup(group, options.get(group.id, []), source)
        for group, source in applicable
    ]


def find_group(
    session: Session,
    owner_type: OwnerType | str,
    owner_id: int,
    level: int | None,
    group_key: str,
    *,
    choice_type: str | None = None,
) -> ChoiceGroup | None:
    """Look up a group by its catalog identity."""
    owner = parse_owner_type(owner_type)
    level_clause = (
        ChoiceGroup.level.is_(None) if level is None else ChoiceGroup.level == level
    )
    statement = select(ChoiceGroup).where(
        ChoiceGroup.owner_type == owner.value,
        ChoiceGroup.owner_id == owner_id,
        level_clause,
        ChoiceGroup.group_key == group_key,
    )
    if choice_type is not None:
        statement = statement.where(ChoiceGroup.choice_type == choice_type)
    return session.exec(statement).one_or_none()
