"""Resolver protocol and the shared catalog-backed implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Sequence

from sqlalchemy import delete
from sqlmodel import Session, select

from dnd_rules.catalog import CatalogGroup, find_group, groups_for_sources, options_for_groups
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.choices.pending import PendingChoice, PendingOption
from dnd_rules.constants import ChoiceKind, OwnerType
from dnd_rules.errors import (
    ChoiceNotFoundError,
    ConfigurationError,
    NotUndoableError,
    SelectionError,
)
from dnd_rules.models.character import CharacterChoice
from dnd_rules.models.choices import ChoiceOption
from dnd_rules.sheet import CharacterSheet

logger = logging.getLogger(__name__)


class ChoiceResolver(ABC):
    """Contract every choice kind satisfies.

    Mutating methods are called with the character lock held and own the
    commit of their session.
    """

    kind: ChoiceKind

    @abstractmethod
    def pending_choices(self, session: Session, sheet: CharacterSheet) -> list[PendingChoice]:
        """Return every choice of this kind that applies to the character."""

    @abstractmethod
    def resolve(
        self,
        session: Session,
        sheet: CharacterSheet,
        choice_id: ChoiceId,
        selection: Sequence[str],
    ) -> PendingChoice:
        """Validate and store a complete selection, replacing any earlier one."""

    @abstractmethod
    def can_undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> bool:
        """Return whether the stored selection may be removed."""

    @abstractmethod
    def undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> None:
        """Remove the stored selection; a no-op when none exists."""


class CatalogResolver(ChoiceResolver):
    """Resolver for kinds declared in the choice catalog."""

    def pending_choices(self, session: Session, sheet: CharacterSheet) -> list[PendingChoice]:
        entries = groups_for_sources(session, sheet.sources, choice_type=self.kind.value)
        records = _records_by_group(
            session, sheet.character_id, [entry.group.id for entry in entries]
        )
        return [
            self._build_pending(session, entry, records.get(entry.group.id, []))
            for entry in entries
        ]

    def resolve(
        self,
        session: Session,
        sheet: CharacterSheet,
        choice_id: ChoiceId,
        selection: Sequence[str],
    ) -> PendingChoice:
        entry = self._entry_for(session, sheet, choice_id)
        values = [str(value).strip() for value in selection]
        if len(values) != entry.group.choose_n:
            raise SelectionError(
                f"Expected {entry.group.choose_n} selection(s), got {len(values)}.",
                value=str(len(values)),
                constraint="count",
                choice_id=choice_id.encode(),
            )
        records = self.validate(session, sheet, entry, values, choice_id)
        for record in records:
            record.character_id = sheet.character_id
            record.choice_group_id = entry.group.id
            record.choice_type = self.kind.value
        self._write(session, sheet, entry, records)
        session.commit()
        logger.info(
            "Resolved %s for character %s: %s",
            choice_id.encode(),
            sheet.character_id,
            [record.value for record in records],
        )
        return self._build_pending(
            session, entry, _records_by_group(session, sheet.character_id, [entry.group.id])[entry.group.id]
        )

    def can_undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> bool:
        entry = self._entry_for(session, sheet, choice_id)
        return _is_undoable(entry)

    def undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> None:
        entry = self._entry_for(session, sheet, choice_id)
        if not _is_undoable(entry):
            raise NotUndoableError(f"Choice cannot be undone: {choice_id.encode()}")
        self._write(session, sheet, entry, [])
        session.commit()
        logger.info("Undid %s for character %s", choice_id.encode(), sheet.character_id)

    @abstractmethod
    def validate(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        """Check each value against the group's constraints.

        Returns unsaved resolution records; raises ``SelectionError`` naming
        the first offending value.
        """

    def _write(
        self,
        session: Session,
        sheet: CharacterSheet,
        entry: CatalogGroup,
        records: list[CharacterChoice],
    ) -> None:
        session.exec(
            delete(CharacterChoice).where(
                CharacterChoice.character_id == sheet.character_id,
                CharacterChoice.choice_group_id == entry.group.id,
            )
        )
        for record in records:
            session.add(record)
        session.flush()

    def _entry_for(
        self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId
    ) -> CatalogGroup:
        if choice_id.kind != self.kind:
            raise ChoiceNotFoundError(f"Choice {choice_id.encode()} is not a {self.kind.value} choice.")
        source = sheet.source_for(choice_id.owner_type, choice_id.owner_id)
        if source is None:
            raise ChoiceNotFoundError(
                f"Character {sheet.character_id} no longer has the source of {choice_id.encode()}."
            )
        group = find_group(
            session,
            choice_id.owner_type,
            choice_id.owner_id,
            choice_id.level,
            choice_id.group_key,
            choice_type=self.kind.value,
        )
        if group is None:
            raise ChoiceNotFoundError(f"Unknown choice: {choice_id.encode()}")
        if group.level is not None and group.level > source.level:
            raise ChoiceNotFoundError(
                f"Choice {choice_id.encode()} unlocks at level {group.level}; "
                f"{source.name} is level {source.level}."
            )
        options = options_for_groups(session, [group.id]).get(group.id, [])
        if not options:
            raise ConfigurationError(f"Choice {choice_id.encode()} has no options in the catalog.")
        return CatalogGroup(group, options, source)

    def _choice_id(self, entry: CatalogGroup) -> ChoiceId:
        return ChoiceId(
            kind=self.kind,
            owner_type=OwnerType(entry.group.owner_type),
            owner_id=entry.group.owner_id,
            level=entry.group.level,
            group_key=entry.group.group_key,
        )

    def _build_pending(
        self, session: Session, entry: CatalogGroup, records: list[CharacterChoice]
    ) -> PendingChoice:
        group = entry.group
        metadata: dict[str, Any] = {
            "group_id": group.id,
            "distinct": group.distinct_values,
        }
        metadata.update(self._metadata(entry))
        return PendingChoice(
            choice_id=self._choice_id(entry),
            source_name=entry.source.name if entry.source else group.owner_type,
            name=group.label or group.group_key,
            required=group.choose_n,
            selected=self._selected_values(entry, records),
            options=[self._pending_option(option) for option in entry.options],
            options_endpoint_hint=self._options_endpoint_hint(entry),
            optional=group.optional,
            undoable=_is_undoable(entry),
            metadata=metadata,
        )

    def _selected_values(self, entry: CatalogGroup, records: list[CharacterChoice]) -> list[str]:
        return [record.value for record in records]

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {}

    def _options_endpoint_hint(self, entry: CatalogGroup) -> str | None:
        return None

    def _pending_option(self, option: ChoiceOption) -> PendingOption:
        filters = {
            name: getattr(option, name)
            for name in ("category", "subcategory", "max_level", "class_id", "school")
            if getattr(option, name) is not None
        }
        if option.ritual_only:
            filters["ritual_only"] = True
        return PendingOption(
            key=option.option_source_key,
            label=option.label,
            option_type=option.option_type,
            option_id=option.id,
            unrestricted=option.is_unrestricted,
            letter=option.option_letter,
            quantity=option.quantity,
            filters=filters if option.is_unrestricted else {},
        )

    # Helpers shared by the per-kind validators.

    def _check_distinct(
        self, entry: CatalogGroup, values: list[str], choice_id: ChoiceId
    ) -> None:
        if not entry.group.distinct_values:
            return
        seen: set[str] = set()
        for value in values:
            folded = value.lower()
            if folded in seen:
                raise SelectionError(
                    f"'{value}' was selected more than once.",
                    value=value,
                    constraint="distinct",
                    choice_id=choice_id.encode(),
                )
            seen.add(folded)

    def _concrete_option(self, entry: CatalogGroup, value: str) -> ChoiceOption | None:
        folded = value.lower()
        for option in entry.concrete_options:
            if option.option_source_key.lower() == folded:
                return option
        return None


def _is_undoable(entry: CatalogGroup) -> bool:
    return not (entry.group.permanent and not entry.group.optional)


def _records_by_group(
    session: Session, character_id: int, group_ids: list[int]
) -> dict[int, list[CharacterChoice]]:
    records: dict[int, list[CharacterChoice]] = defaultdict(list)
    ids = [group_id for group_id in group_ids if group_id is not None]
    if not ids:
        return records
    for record in session.exec(
        select(CharacterChoice)
        .where(
            CharacterChoice.character_id == character_id,
            CharacterChoice.choice_group_id.in_(ids),
        )
        .order_by(CharacterChoice.id)
    ).all():
        records[record.choice_group_id].append(record)
    return records
