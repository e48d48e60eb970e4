"""Per-character resource pools derived from class, subclass, feat and race tables."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import and_, or_
from sqlmodel import Session, select

from dnd_rules.abilities import ability_modifier, effective_ability_scores
from dnd_rules.constants import UNLIMITED, ResetTiming, normalize_ability, parse_reset_timing
from dnd_rules.errors import ConfigurationError, CounterNotFoundError, SelectionError
from dnd_rules.locks import character_lock
from dnd_rules.models.counters import CharacterCounter, CounterDefinition
from dnd_rules.sheet import CharacterSheet, ChoiceSource, load_character_sheet

logger = logging.getLogger(__name__)


def _definitions_for_sources(
    session: Session, sources: list[ChoiceSource]
) -> dict[tuple[str, int], list[CounterDefinition]]:
    if not sources:
        return {}
    conditions = [
        and_(
            CounterDefinition.owner_type == source.owner_type.value,
            CounterDefinition.owner_id == source.owner_id,
        )
        for source in sources
    ]
    grouped: dict[tuple[str, int], list[CounterDefinition]] = {}
    for definition in session.exec(
        select(CounterDefinition)
        .where(or_(*conditions))
        .order_by(CounterDefinition.level)
    ).all():
        grouped.setdefault((definition.owner_type, definition.owner_id), []).append(definition)
    return grouped


def _definition_maximum(definition: CounterDefinition, scores: dict[str, int]) -> int:
    if definition.uses_ability:
        ability = normalize_ability(definition.uses_ability)
        if ability is None:
            raise ConfigurationError(
                f"Counter {definition.pool_name} uses unknown ability {definition.uses_ability}"
            )
        return max(1, ability_modifier(scores[ability]))
    if definition.max_uses is None:
        raise ConfigurationError(
            f"Counter {definition.pool_name} has neither max_uses nor uses_ability"
        )
    return definition.max_uses


def _resolve_pools(
    sheet: CharacterSheet,
    definitions: dict[tuple[str, int], list[CounterDefinition]],
    scores: dict[str, int],
) -> dict[tuple[str, int, str], tuple[ChoiceSource, CounterDefinition, int]]:
    """Pick, per (source, pool), the highest definition at or below the source level."""
    pools: dict[tuple[str, int, str], tuple[ChoiceSource, CounterDefinition, int]] = {}
    for source in sheet.sources:
        for definition in definitions.get(source.key, []):
            if definition.level > source.level:
                continue
            key = (source.owner_type.value, source.owner_id, definition.pool_name)
            # Definitions arrive ordered by level, so later rows win.
            pools[key] = (source, definition, _definition_maximum(definition, scores))
    return pools


def sync_counters_for_character(
    session: Session, character_id: int, *, commit: bool = True
) -> dict[str, int]:
    """Create, update and delete counters so they match the character's sources.

    Pools are keyed by (source, pool name) and never merged across sources.
    Existing pools keep their remaining uses; only new pools start full.
    Safe to call repeatedly.
    """
    with character_lock(character_id):
        sheet = load_character_sheet(session, character_id)
        scores = effective_ability_scores(session, sheet.character)
        pools = _resolve_pools(sheet, _definitions_for_sources(session, sheet.sources), scores)

        existing = {
            (counter.source_type, counter.source_id, counter.pool_name): counter
            for counter in session.exec(
                select(CharacterCounter).where(CharacterCounter.character_id == character_id)
            ).all()
        }

        created = updated = removed = 0
        for key, (source, definition, maximum) in pools.items():
            counter = existing.pop(key, None)
            if counter is None:
                session.add(
                    CharacterCounter(
                        character_id=character_id,
                        source_type=source.owner_type.value,
                        source_id=source.owner_id,
                        source_name=source.name,
                        pool_name=definition.pool_name,
                        current=None,
                        maximum=maximum,
                        reset_timing=definition.reset_timing,
                    )
                )
                created += 1
                continue
            if counter.maximum != maximum or counter.reset_timing != definition.reset_timing:
                counter.maximum = maximum
                counter.reset_timing = definition.reset_timing
                if maximum != UNLIMITED and counter.current is not None:
                    counter.current = min(counter.current, maximum)
                session.add(counter)
                updated += 1

        for counter in existing.values():
            session.delete(counter)
            removed += 1

        if commit:
            session.commit()
        else:
            session.flush()

    if created or updated or removed:
        logger.info(
            "Synced counters for character %s: created=%s updated=%s removed=%s",
            character_id,
            created,
            updated,
            removed,
        )
    return {"created": created, "updated": updated, "removed": removed}


def is_unlimited(counter: CharacterCounter) -> bool:
    return counter.maximum == UNLIMITED


def remaining_uses(counter: CharacterCounter) -> int:
    """Return remaining uses; a null ``current`` means the pool is full."""
    if counter.current is None:
        return counter.maximum
    return counter.current


def counter_payload(counter: CharacterCounter) -> dict[str, Any]:
    return {
        "id": counter.id,
        "source_name": counter.source_name,
        "source_type": counter.source_type,
        "pool_name": counter.pool_name,
        "current": remaining_uses(counter),
        "max": counter.maximum,
        "reset_timing": counter.reset_timing,
        "unlimited": is_unlimited(counter),
    }


def counters_for(session: Session, character_id: int) -> list[dict[str, Any]]:
    """Return every counter of a character, ordered by source then pool."""
    counters = session.exec(
        select(CharacterCounter)
        .where(CharacterCounter.character_id == character_id)
        .order_by(
            CharacterCounter.source_type,
            CharacterCounter.source_id,
            CharacterCounter.pool_name,
        )
    ).all()
    return [counter_payload(counter) for counter in counters]


def _counter_or_raise(session: Session, character_id: int, counter_id: int) -> CharacterCounter:
    counter = session.get(CharacterCounter, counter_id)
    if counter is None or counter.character_id != character_id:
        raise CounterNotFoundError(
            f"Counter {counter_id} not found for character {character_id}"
        )
    return counter


def _check_amount(amount: int) -> None:
    if amount < 1:
        raise SelectionError(
            f"Amount must be at least 1, got {amount}.",
            value=str(amount),
            constraint="amount",
        )


def use_counter(session: Session, character_id: int, counter_id: int, amount: int = 1) -> bool:
    """Spend uses from a pool.

    Returns False, leaving the pool unchanged, when too few uses remain.
    Unlimited pools always succeed and are never decremented.
    """
    _check_amount(amount)
    with character_lock(character_id):
        counter = _counter_or_raise(session, character_id, counter_id)
        if is_unlimited(counter):
            return True
        remaining = remaining_uses(counter)
        if remaining < amount:
            logger.debug("Counter %s exhausted (%s left)", counter_id, remaining)
            return False
        counter.current = min(counter.maximum, max(0, remaining - amount))
        session.add(counter)
        session.commit()
        return True


def restore_counter(
    session: Session, character_id: int, counter_id: int, amount: int = 1
) -> CharacterCounter:
    """Give back uses, never exceeding the pool maximum."""
    _check_amount(amount)
    with character_lock(character_id):
        counter = _counter_or_raise(session, character_id, counter_id)
        if is_unlimited(counter):
            return counter
        counter.current = min(counter.maximum, remaining_uses(counter) + amount)
        session.add(counter)
        session.commit()
        session.refresh(counter)
        return counter


def reset_counter(session: Session, character_id: int, counter_id: int) -> CharacterCounter:
    """Refill one pool."""
    with character_lock(character_id):
        counter = _counter_or_raise(session, character_id, counter_id)
        counter.current = None
        session.add(counter)
        session.commit()
        session.refresh(counter)
        return counter


def reset_by_timing(
    session: Session,
    character_id: int,
    timings: Iterable[ResetTiming | str],
) -> list[dict[str, Any]]:
    """Refill every pool whose reset timing is in ``timings``.

    Runs as a single transaction and returns the pools that were reset.
    """
    wanted = {parse_reset_timing(timing).value for timing in timings}
    with character_lock(character_id):
        counters = session.exec(
            select(CharacterCounter).where(
                CharacterCounter.character_id == character_id,
                CharacterCounter.reset_timing.in_(sorted(wanted)),
            )
        ).all()
        reset: list[dict[str, Any]] = []
        try:
            for counter in counters:
                counter.current = None
                session.add(counter)
                reset.append(counter_payload(counter))
            session.commit()
        except Exception:
            session.rollback()
            raise
    logger.info(
        "Reset %s counter(s) for character %s on %s",
        len(reset),
        character_id,
        sorted(wanted),
    )
    return reset
