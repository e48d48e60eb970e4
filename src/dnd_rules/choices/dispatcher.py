"""Registry of resolvers and the entry points callers use."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from sqlmodel import Session

from dnd_rules.choices.ability_score import AbilityScoreResolver
from dnd_rules.choices.base import ChoiceResolver
from dnd_rules.choices.equipment import EquipmentResolver
from dnd_rules.choices.hit_points import HitPointResolver
from dnd_rules.choices.ids import ChoiceId, decode_choice_id
from dnd_rules.choices.language import LanguageResolver
from dnd_rules.choices.lookup import OptionLookup
from dnd_rules.choices.optional_feature import OptionalFeatureResolver
from dnd_rules.choices.pending import PendingChoice
from dnd_rules.choices.proficiency import ProficiencyResolver
from dnd_rules.choices.spell import SpellResolver
from dnd_rules.constants import ChoiceKind
from dnd_rules.errors import ConfigurationError
from dnd_rules.locks import character_lock
from dnd_rules.sheet import load_character_sheet

logger = logging.getLogger(__name__)


class ChoiceDispatcher:
    """Routes choice operations to the resolver registered for each kind.

    Every call loads the character once, holds the character lock and rolls
    the session back when a resolver fails.
    """

    def __init__(self, resolvers: Iterable[ChoiceResolver]) -> None:
        self._resolvers: dict[ChoiceKind, ChoiceResolver] = {}
        for resolver in resolvers:
            if resolver.kind in self._resolvers:
                raise ConfigurationError(f"Duplicate resolver for kind: {resolver.kind.value}")
            self._resolvers[resolver.kind] = resolver

    @property
    def kinds(self) -> list[ChoiceKind]:
        return list(self._resolvers)

    def resolver_for(self, kind: ChoiceKind) -> ChoiceResolver:
        resolver = self._resolvers.get(kind)
        if resolver is None:
            raise ConfigurationError(f"No resolver registered for kind: {kind.value}")
        return resolver

    def all_pending_choices(self, session: Session, character_id: int) -> list[PendingChoice]:
        """Return every choice of every kind, ordered by level then source."""
        with character_lock(character_id):
            sheet = load_character_sheet(session, character_id)
            pending: list[PendingChoice] = []
            for resolver in self._resolvers.values():
                pending.extend(resolver.pending_choices(session, sheet))
        pending.sort(key=lambda choice: choice.sort_key())
        return pending

    def resolve(
        self,
        session: Session,
        character_id: int,
        choice_id: str | ChoiceId,
        selection: Sequence[str],
    ) -> PendingChoice:
        parsed = decode_choice_id(choice_id)
        resolver = self.resolver_for(parsed.kind)
        with character_lock(character_id):
            sheet = load_character_sheet(session, character_id)
            try:
                return resolver.resolve(session, sheet, parsed, list(selection))
            except Exception:
                session.rollback()
                raise

    def can_undo(self, session: Session, character_id: int, choice_id: str | ChoiceId) -> bool:
        parsed = decode_choice_id(choice_id)
        resolver = self.resolver_for(parsed.kind)
        with character_lock(character_id):
            sheet = load_character_sheet(session, character_id)
            return resolver.can_undo(session, sheet, parsed)

    def undo(self, session: Session, character_id: int, choice_id: str | ChoiceId) -> None:
        parsed = decode_choice_id(choice_id)
        resolver = self.resolver_for(parsed.kind)
        with character_lock(character_id):
            sheet = load_character_sheet(session, character_id)
            try:
                resolver.undo(session, sheet, parsed)
            except Exception:
                session.rollback()
                raise

    def summary(self, session: Session, character_id: int) -> dict[str, Any]:
        """Return pending choices as plain dicts with a completion count."""
        pending = self.all_pending_choices(session, character_id)
        return {
            "character_id": character_id,
            "total": len(pending),
            "outstanding": sum(1 for choice in pending if not choice.complete),
            "choices": [choice.to_dict() for choice in pending],
        }


def build_default_dispatcher(option_lookup: OptionLookup | None = None) -> ChoiceDispatcher:
    """Return a dispatcher with every built-in resolver registered."""
    return ChoiceDispatcher(
        [
            ProficiencyResolver(option_lookup),
            LanguageResolver(option_lookup),
            AbilityScoreResolver(),
            EquipmentResolver(),
            SpellResolver(),
            OptionalFeatureResolver(),
            HitPointResolver(),
        ]
    )
