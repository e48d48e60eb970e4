"""Level-up hit point choice: take the average or roll the hit die."""

from __future__ import annotations

import logging
from typing import Sequence

from sqlmodel import Session, select

from dnd_rules.abilities import effective_modifier
from dnd_rules.choices.base import ChoiceResolver
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.choices.pending import PendingChoice, PendingOption
from dnd_rules.constants import ChoiceKind, OwnerType
from dnd_rules.errors import ChoiceNotFoundError, NotUndoableError, SelectionError
from dnd_rules.models.character import CharacterHitPointGain, CharacterLevel
from dnd_rules.models.character_class import CharacterClass
from dnd_rules.progression import (
    HP_AVERAGE,
    HP_ROLLED,
    average_hit_point_gain,
    record_hit_point_gain,
)
from dnd_rules.sheet import CharacterSheet

logger = logging.getLogger(__name__)

GROUP_KEY = "hit-points"


class HitPointResolver(ChoiceResolver):
    """One choice per character level after the first.

    The selection is ``["average"]`` or a single roll such as ``["7"]``.
    Each level is settled once and cannot be undone.
    """

    kind = ChoiceKind.HIT_POINTS

    def pending_choices(self, session: Session, sheet: CharacterSheet) -> list[PendingChoice]:
        gains = {
            gain.level: gain
            for gain in session.exec(
                select(CharacterHitPointGain).where(
                    CharacterHitPointGain.character_id == sheet.character_id
                )
            ).all()
        }
        modifier = effective_modifier(session, sheet.character, "constitution")
        classes = {
            entry.character_class.id: entry.character_class for entry in sheet.classes
        }
        return [
            self._build_pending(row, classes[row.class_id], gains.get(row.level), modifier)
            for row in sheet.levels
            if row.level > 1
        ]

    def resolve(
        self,
        session: Session,
        sheet: CharacterSheet,
        choice_id: ChoiceId,
        selection: Sequence[str],
    ) -> PendingChoice:
        row, class_row = self._level_for(session, sheet, choice_id)
        values = [str(value).strip().lower() for value in selection]
        if len(values) != 1:
            raise SelectionError(
                f"Expected 1 selection(s), got {len(values)}.",
                value=str(len(values)),
                constraint="count",
                choice_id=choice_id.encode(),
            )
        value = values[0]
        try:
            if value == HP_AVERAGE:
                gain = record_hit_point_gain(
                    session, sheet.character, row, class_row.hit_die, method=HP_AVERAGE
                )
            else:
                gain = record_hit_point_gain(
                    session,
                    sheet.character,
                    row,
                    class_row.hit_die,
                    method=HP_ROLLED,
                    roll=self._parse_roll(value, choice_id),
                )
        except SelectionError as exc:
            # Formula helpers do not know which choice they serve.
            exc.choice_id = exc.choice_id or choice_id.encode()
            raise
        session.commit()
        logger.info(
            "Resolved %s for character %s: %s",
            choice_id.encode(),
            sheet.character_id,
            value,
        )
        modifier = effective_modifier(session, sheet.character, "constitution")
        return self._build_pending(row, class_row, gain, modifier)

    def can_undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> bool:
        self._level_for(session, sheet, choice_id)
        return False

    def undo(self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId) -> None:
        self._level_for(session, sheet, choice_id)
        raise NotUndoableError(f"Hit points cannot be undone: {choice_id.encode()}")

    def _parse_roll(self, value: str, choice_id: ChoiceId) -> int:
        try:
            return int(value)
        except ValueError:
            raise SelectionError(
                f"'{value}' is neither 'average' nor a roll.",
                value=value,
                constraint="option",
                choice_id=choice_id.encode(),
            ) from None

    def _level_for(
        self, session: Session, sheet: CharacterSheet, choice_id: ChoiceId
    ) -> tuple[CharacterLevel, CharacterClass]:
        if (
            choice_id.kind != self.kind
            or choice_id.owner_type != OwnerType.CLASS
            or choice_id.group_key != GROUP_KEY
            or choice_id.level is None
        ):
            raise ChoiceNotFoundError(f"Unknown choice: {choice_id.encode()}")
        for row in sheet.levels:
            if row.level == choice_id.level and row.class_id == choice_id.owner_id and row.level > 1:
                entry = sheet.class_entry(row.class_id)
                return row, entry.character_class
        raise ChoiceNotFoundError(
            f"Character {sheet.character_id} has no level {choice_id.level} "
            f"in class {choice_id.owner_id}."
        )

    def _build_pending(
        self,
        row: CharacterLevel,
        class_row: CharacterClass,
        gain: CharacterHitPointGain | None,
        modifier: int,
    ) -> PendingChoice:
        choice_id = ChoiceId(
            kind=self.kind,
            owner_type=OwnerType.CLASS,
            owner_id=row.class_id,
            level=row.level,
            group_key=GROUP_KEY,
        )
        selected: list[str] = []
        if gain is not None:
            selected = [HP_AVERAGE if gain.method == HP_AVERAGE else str(gain.roll)]
        metadata = {
            "hit_die": class_row.hit_die,
            "constitution_modifier": modifier,
            "average": average_hit_point_gain(class_row.hit_die, modifier),
        }
        if gain is not None:
            metadata["amount"] = gain.amount
        return PendingChoice(
            choice_id=choice_id,
            source_name=class_row.name,
            name=f"Hit points (level {row.level})",
            required=1,
            selected=selected,
            options=[
                PendingOption(key=HP_AVERAGE, label="Take the average", option_type="hit_points"),
                PendingOption(
                    key="roll",
                    label=f"Roll 1d{class_row.hit_die}",
                    option_type="hit_points",
                    unrestricted=True,
                    filters={"min": 1, "max": class_row.hit_die},
                ),
            ],
            optional=False,
            undoable=False,
            metadata=metadata,
        )
