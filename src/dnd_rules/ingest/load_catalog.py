"""Catalog loader pipeline.

Loads a structured JSON payload of reference entities, choice groups and
counter definitions. Every section is optional; entities are upserted by
their ``key`` and groups by (owner, level, group key), so loading the same
payload twice changes nothing.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import update
from sqlmodel import Session, select

from dnd_rules.constants import ChoiceKind, OwnerType, parse_owner_type, parse_reset_timing
from dnd_rules.db.engine import create_db_and_tables
from dnd_rules.db.upsert import slugify, upsert_by_key
from dnd_rules.errors import ConfigurationError
from dnd_rules.models.character import CharacterChoice
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.choices import ChoiceGroup, ChoiceOption, Prerequisite
from dnd_rules.models.counters import CounterDefinition
from dnd_rules.models.feature import Feature
from dnd_rules.models.import_run import ImportRun
from dnd_rules.models.item import Item
from dnd_rules.models.origin import Background, Feat, Race
from dnd_rules.models.proficiency import Language, Proficiency
from dnd_rules.models.relationships import SpellClassLink, SubclassFeatureLink
from dnd_rules.models.spell import Spell

logger = logging.getLogger(__name__)

OWNER_MODELS = {
    OwnerType.RACE: Race,
    OwnerType.BACKGROUND: Background,
    OwnerType.CLASS: CharacterClass,
    OwnerType.SUBCLASS: Subclass,
    OwnerType.SUBCLASS_FEATURE: Feature,
    OwnerType.FEAT: Feat,
}

OPTION_TARGETS = {
    "proficiency": Proficiency,
    "language": Language,
    "item": Item,
    "spell": Spell,
    "feature": Feature,
}

DEFAULT_OPTION_TYPES = {
    ChoiceKind.PROFICIENCY: "proficiency",
    ChoiceKind.LANGUAGE: "language",
    ChoiceKind.ABILITY_SCORE: "ability",
    ChoiceKind.EQUIPMENT: "item",
    ChoiceKind.SPELL: "spell",
    ChoiceKind.OPTIONAL_FEATURE: "feature",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _entries(payload: dict[str, Any], section: str) -> list[dict[str, Any]]:
    value = payload.get(section) or []
    if not isinstance(value, list):
        raise ConfigurationError(f"Catalog section '{section}' must be a list")
    return [entry for entry in value if isinstance(entry, dict)]


def _entry_key(entry: dict[str, Any]) -> str:
    key = entry.get("key") or entry.get("index")
    if isinstance(key, str) and key.strip():
        return key.strip()
    name = entry.get("name")
    if isinstance(name, str) and name.strip():
        return slugify(name)
    raise ConfigurationError(f"Catalog entry has neither key nor name: {entry}")


class _Counts:
    def __init__(self) -> None:
        self.created: dict[str, int] = {}
        self.updated: dict[str, int] = {}
        self.missing_owner_count = 0
        self.missing_option_refs_count = 0

    def record(self, kind: str, created: bool, updated: bool) -> None:
        if created:
            self.created[kind] = self.created.get(kind, 0) + 1
        elif updated:
            self.updated[kind] = self.updated.get(kind, 0) + 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "created": dict(self.created),
            "updated": dict(self.updated),
            "created_rows": sum(self.created.values()),
            "updated_rows": sum(self.updated.values()),
            "missing_owner_count": self.missing_owner_count,
            "missing_option_refs_count": self.missing_option_refs_count,
        }


class _KeyIndex:
    """source_key -> id lookups, refreshed as rows are upserted."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._cache: dict[type, dict[str, int]] = {}

    def add(self, model: type, key: str, row_id: int) -> None:
        self._table(model)[key] = row_id

    def get(self, model: type, key: str | None) -> int | None:
        if not key:
            return None
        return self._table(model).get(key)

    def _table(self, model: type) -> dict[str, int]:
        if model not in self._cache:
            self._cache[model] = {
                row.source_key: row.id for row in self.session.exec(select(model)).all()
            }
        return self._cache[model]


def _load_simple(
    session: Session,
    index: _KeyIndex,
    counts: _Counts,
    model: type,
    kind: str,
    entries: Iterable[dict[str, Any]],
    fields: dict[str, Any],
) -> None:
    for entry in entries:
        key = _entry_key(entry)
        values = {"name": entry.get("name") or key}
        for column, (payload_key, default) in fields.items():
            values[column] = entry.get(payload_key, default)
        row, created, updated = upsert_by_key(session, model, source_key=key, values=values)
        index.add(model, key, row.id)
        counts.record(kind, created, updated)


def _load_entities(
    session: Session, payload: dict[str, Any], index: _KeyIndex, counts: _Counts
) -> None:
    _load_simple(
        session,
        index,
        counts,
        CharacterClass,
        "classes",
        _entries(payload, "classes"),
        {
            "hit_die": ("hit_die", 8),
            "spellcasting_ability": ("spellcasting_ability", None),
            "subclass_level": ("subclass_level", None),
        },
    )

    for entry in _entries(payload, "subclasses"):
        key = _entry_key(entry)
        class_id = index.get(CharacterClass, entry.get("class"))
        if class_id is None:
            raise ConfigurationError(f"Subclass {key} references unknown class {entry.get('class')}")
        row, created, updated = upsert_by_key(
            session,
            Subclass,
            source_key=key,
            values={"name": entry.get("name") or key, "class_id": class_id, "desc": entry.get("desc")},
        )
        index.add(Subclass, key, row.id)
        counts.record("subclasses", created, updated)

    # Parents first so subraces can point at them.
    races = sorted(_entries(payload, "races"), key=lambda entry: entry.get("parent") is not None)
    for entry in races:
        key = _entry_key(entry)
        parent_id = index.get(Race, entry.get("parent"))
        if entry.get("parent") and parent_id is None:
            raise ConfigurationError(f"Race {key} references unknown parent {entry.get('parent')}")
        row, created, updated = upsert_by_key(
            session,
            Race,
            source_key=key,
            values={"name": entry.get("name") or key, "parent_race_id": parent_id},
        )
        index.add(Race, key, row.id)
        counts.record("races", created, updated)

    _load_simple(session, index, counts, Background, "backgrounds", _entries(payload, "backgrounds"), {})
    _load_simple(
        session, index, counts, Feat, "feats", _entries(payload, "feats"), {"feat_desc": ("desc", None)}
    )
    _load_simple(
        session,
        index,
        counts,
        Proficiency,
        "proficiencies",
        _entries(payload, "proficiencies"),
        {"category": ("category", "other"), "subcategory": ("subcategory", None)},
    )
    _load_simple(
        session,
        index,
        counts,
        Language,
        "languages",
        _entries(payload, "languages"),
        {"subcategory": ("subcategory", None)},
    )
    _load_simple(
        session,
        index,
        counts,
        Item,
        "items",
        _entries(payload, "items"),
        {
            "equipment_category": ("equipment_category", None),
            "weapon_category": ("weapon_category", None),
            "armor_category": ("armor_category", None),
            "weight": ("weight", None),
        },
    )

    features = _entries(payload, "features")
    _load_simple(
        session,
        index,
        counts,
        Feature,
        "features",
        features,
        {
            "level": ("level", None),
            "feature_type": ("feature_type", None),
            "feature_desc": ("desc", None),
        },
    )
    for entry in features:
        subclass_key = entry.get("subclass")
        if not subclass_key:
            continue
        subclass_id = index.get(Subclass, subclass_key)
        if subclass_id is None:
            raise ConfigurationError(f"Feature {_entry_key(entry)} references unknown subclass {subclass_key}")
        feature_id = index.get(Feature, _entry_key(entry))
        unlock_level = _coerce_int(entry.get("unlock_level")) or _coerce_int(entry.get("level")) or 1
        _link_subclass_feature(session, counts, subclass_id, feature_id, unlock_level)

    spells = _entries(payload, "spells")
    _load_simple(
        session,
        index,
        counts,
        Spell,
        "spells",
        spells,
        {
            "level": ("level", 0),
            "school": ("school", None),
            "ritual": ("ritual", False),
            "concentration": ("concentration", False),
            "spell_desc": ("desc", None),
        },
    )
    for entry in spells:
        spell_id = index.get(Spell, _entry_key(entry))
        for class_key in entry.get("classes") or []:
            class_id = index.get(CharacterClass, class_key)
            if class_id is None:
                raise ConfigurationError(f"Spell {_entry_key(entry)} references unknown class {class_key}")
            _link_spell_class(session, counts, spell_id, class_id)


def _link_subclass_feature(
    session: Session, counts: _Counts, subclass_id: int, feature_id: int, level: int
) -> None:
    link = session.exec(
        select(SubclassFeatureLink).where(
            SubclassFeatureLink.subclass_id == subclass_id,
            SubclassFeatureLink.feature_id == feature_id,
        )
    ).one_or_none()
    if link is None:
        session.add(SubclassFeatureLink(subclass_id=subclass_id, feature_id=feature_id, level=level))
        counts.record("subclass_features", True, False)
    elif link.level != level:
        link.level = level
        session.add(link)
        counts.record("subclass_features", False, True)


def _link_spell_class(session: Session, counts: _Counts, spell_id: int, class_id: int) -> None:
    link = session.exec(
        select(SpellClassLink).where(
            SpellClassLink.spell_id == spell_id,
            SpellClassLink.class_id == class_id,
        )
    ).one_or_none()
    if link is None:
        session.add(SpellClassLink(spell_id=spell_id, class_id=class_id))
        counts.record("spell_classes", True, False)


def _owner_id(
    index: _KeyIndex, counts: _Counts, entry: dict[str, Any], context: str
) -> tuple[OwnerType, int | None]:
    owner_type = parse_owner_type(str(entry.get("owner_type") or ""))
    owner_id = index.get(OWNER_MODELS[owner_type], entry.get("owner"))
    if owner_id is None:
        counts.missing_owner_count += 1
        logger.warning(
            "Skipping %s: unknown %s '%s'", context, owner_type.value, entry.get("owner")
        )
    return owner_type, owner_id


def _load_prerequisites(
    session: Session, payload: dict[str, Any], index: _KeyIndex, counts: _Counts
) -> None:
    for entry in _entries(payload, "prerequisites"):
        class_id = index.get(CharacterClass, entry.get("class"))
        if class_id is None:
            counts.missing_owner_count += 1
            logger.warning("Skipping prerequisite: unknown class '%s'", entry.get("class"))
            continue
        prereq_type = str(entry.get("type") or "ability")
        key = str(entry.get("key") or "")
        existing = session.exec(
            select(Prerequisite).where(
                Prerequisite.applies_to_type == "class",
                Prerequisite.applies_to_id == class_id,
                Prerequisite.prereq_type == prereq_type,
                Prerequisite.key == key,
            )
        ).one_or_none()
        operator = str(entry.get("operator") or ">=")
        value = str(entry.get("value"))
        if existing is None:
            session.add(
                Prerequisite(
                    applies_to_type="class",
                    applies_to_id=class_id,
                    prereq_type=prereq_type,
                    key=key,
                    operator=operator,
                    value=value,
                    notes=entry.get("notes"),
                )
            )
            counts.record("prerequisites", True, False)
        elif (existing.operator, existing.value) != (operator, value):
            existing.operator = operator
            existing.value = value
            session.add(existing)
            counts.record("prerequisites", False, True)


def _option_values(
    index: _KeyIndex,
    counts: _Counts,
    kind: ChoiceKind,
    option: dict[str, Any],
    position: int,
) -> dict[str, Any]:
    unrestricted = bool(option.get("unrestricted") or option.get("any"))
    option_type = str(option.get("type") or DEFAULT_OPTION_TYPES.get(kind, kind.value))
    label = option.get("label") or option.get("name")
    key = option.get("key") or option.get("index")
    if not key:
        if not label:
            raise ConfigurationError(f"Choice option has neither key nor label: {option}")
        key = slugify(str(label))
        if unrestricted and not key.startswith("any-"):
            key = f"any-{key}"
    label = label or key

    option_ref_id = None
    target = OPTION_TARGETS.get(option_type)
    if target is not None and not unrestricted:
        option_ref_id = index.get(target, key)
        if option_ref_id is None:
            counts.missing_option_refs_count += 1

    class_key = option.get("class")
    class_id = index.get(CharacterClass, class_key)
    if class_key and class_id is None:
        raise ConfigurationError(f"Choice option {key} references unknown class {class_key}")

    letter = option.get("letter")
    return {
        "option_type": option_type,
        "option_source_key": str(key),
        "option_ref_id": option_ref_id,
        "label": str(label),
        "position": position,
        "is_unrestricted": unrestricted,
        "option_letter": str(letter).lower() if letter else None,
        "quantity": _coerce_int(option.get("quantity")) or 1,
        "category": option.get("category"),
        "subcategory": option.get("subcategory"),
        "max_level": _coerce_int(option.get("max_level")),
        "class_id": class_id,
        "school": option.get("school"),
        "ritual_only": bool(option.get("ritual_only", False)),
    }


def _number_repeated_slots(options: list[dict[str, Any]], context: str) -> None:
    """Give repeated open slots of one bundle distinct keys (any-x, any-x-2, ...).

    A repeated concrete option is a catalog error.
    """
    seen: dict[tuple[str | None, str], int] = {}
    for values in options:
        identity = (values["option_letter"], values["option_source_key"])
        count = seen.get(identity, 0) + 1
        seen[identity] = count
        if count == 1:
            continue
        if not values["is_unrestricted"]:
            raise ConfigurationError(
                f"{context} lists option {values['option_source_key']} twice"
            )
        values["option_source_key"] = f"{values['option_source_key']}-{count}"


def _replace_options(
    session: Session, counts: _Counts, group: ChoiceGroup, incoming: list[dict[str, Any]]
) -> None:
    """Upsert options by (letter, key) and drop those no longer listed.

    Resolution records pointing at a dropped option keep their value but lose
    the option reference.
    """
    existing = {
        (option.option_letter, option.option_source_key): option
        for option in session.exec(
            select(ChoiceOption).where(ChoiceOption.choice_group_id == group.id)
        ).all()
    }
    for values in incoming:
        identity = (values["option_letter"], values["option_source_key"])
        option = existing.pop(identity, None)
        if option is None:
            session.add(ChoiceOption(choice_group_id=group.id, **values))
            counts.record("choice_options", True, False)
            continue
        changed = False
        for name, value in values.items():
            if getattr(option, name) != value:
                setattr(option, name, value)
                changed = True
        if changed:
            session.add(option)
            counts.record("choice_options", False, True)

    stale_ids = [option.id for option in existing.values()]
    if stale_ids:
        session.exec(
            update(CharacterChoice)
            .where(CharacterChoice.choice_option_id.in_(stale_ids))
            .values(choice_option_id=None)
        )
        for option in existing.values():
            session.delete(option)
            counts.record("choice_options_removed", True, False)


def _load_choice_groups(
    session: Session, payload: dict[str, Any], index: _KeyIndex, counts: _Counts
) -> None:
    for entry in _entries(payload, "choice_groups"):
        context = f"choice group {entry.get('key')}"
        owner_type, owner_id = _owner_id(index, counts, entry, context)
        if owner_id is None:
            continue
        try:
            kind = ChoiceKind(str(entry.get("kind") or entry.get("choice_type")))
        except ValueError as exc:
            raise ConfigurationError(f"Unknown choice kind in {context}: {entry.get('kind')}") from exc
        if kind == ChoiceKind.HIT_POINTS:
            raise ConfigurationError("Hit point choices are derived from class levels, not the catalog")
        choose_n = _coerce_int(entry.get("choose"))
        if choose_n is None or choose_n < 1:
            raise ConfigurationError(f"{context} must choose at least one option")
        level = _coerce_int(entry.get("level"))
        group_key = str(entry.get("key") or slugify(str(entry.get("label") or kind.value)))

        values = {
            "choice_type": kind.value,
            "choose_n": choose_n,
            "label": entry.get("label"),
            "notes": entry.get("notes"),
            "optional": bool(entry.get("optional", False)),
            "permanent": bool(entry.get("permanent", False)),
            "bonus_value": _coerce_int(entry.get("bonus_value")),
            "distinct_values": bool(entry.get("distinct", True)),
        }
        level_clause = ChoiceGroup.level.is_(None) if level is None else ChoiceGroup.level == level
        group = session.exec(
            select(ChoiceGroup).where(
                ChoiceGroup.owner_type == owner_type.value,
                ChoiceGroup.owner_id == owner_id,
                level_clause,
                ChoiceGroup.group_key == group_key,
            )
        ).one_or_none()
        if group is None:
            group = ChoiceGroup(
                owner_type=owner_type.value,
                owner_id=owner_id,
                level=level,
                group_key=group_key,
                **values,
            )
            session.add(group)
            session.flush()
            counts.record("choice_groups", True, False)
        else:
            changed = False
            for name, value in values.items():
                if getattr(group, name) != value:
                    setattr(group, name, value)
                    changed = True
            if changed:
                session.add(group)
                counts.record("choice_groups", False, True)

        options = [
            _option_values(index, counts, kind, option, position)
            for position, option in enumerate(entry.get("options") or [])
            if isinstance(option, dict)
        ]
        _number_repeated_slots(options, context)
        _replace_options(session, counts, group, options)
        session.flush()


def _load_counters(
    session: Session, payload: dict[str, Any], index: _KeyIndex, counts: _Counts
) -> None:
    for entry in _entries(payload, "counters"):
        pool_name = entry.get("pool") or entry.get("name")
        context = f"counter {pool_name}"
        owner_type, owner_id = _owner_id(index, counts, entry, context)
        if owner_id is None:
            continue
        if not pool_name:
            raise ConfigurationError(f"Counter for {entry.get('owner')} has no pool name")
        max_uses = _coerce_int(entry.get("max_uses"))
        uses_ability = entry.get("uses_ability")
        if max_uses is None and not uses_ability:
            raise ConfigurationError(f"{context} needs max_uses or uses_ability")
        try:
            reset_timing = parse_reset_timing(entry.get("reset") or "long_rest").value
        except ValueError as exc:
            raise ConfigurationError(f"{context} has unknown reset timing {entry.get('reset')}") from exc
        level = _coerce_int(entry.get("level")) or 1

        definition = session.exec(
            select(CounterDefinition).where(
                CounterDefinition.owner_type == owner_type.value,
                CounterDefinition.owner_id == owner_id,
                CounterDefinition.pool_name == pool_name,
                CounterDefinition.level == level,
            )
        ).one_or_none()
        if definition is None:
            session.add(
                CounterDefinition(
                    owner_type=owner_type.value,
                    owner_id=owner_id,
                    pool_name=pool_name,
                    level=level,
                    max_uses=max_uses,
                    uses_ability=uses_ability,
                    reset_timing=reset_timing,
                )
            )
            counts.record("counter_definitions", True, False)
        elif (definition.max_uses, definition.uses_ability, definition.reset_timing) != (
            max_uses,
            uses_ability,
            reset_timing,
        ):
            definition.max_uses = max_uses
            definition.uses_ability = uses_ability
            definition.reset_timing = reset_timing
            session.add(definition)
            counts.record("counter_definitions", False, True)


def load_catalog(*, engine, payload: dict[str, Any], source_name: str = "catalog") -> dict[str, Any]:
    """Populate reference entities, choice groups and counter definitions.

    The whole catalog is verified before the run is marked finished; any
    verification error rolls the import back.
    """
    from dnd_rules.verify.choices import validate_catalog

    create_db_and_tables(engine)
    counts = _Counts()

    with Session(engine) as session:
        import_run = ImportRun(
            status="started",
            source_name=source_name,
            phase="catalog",
            started_at=_utc_now(),
        )
        session.add(import_run)
        session.commit()
        session.refresh(import_run)

        try:
            index = _KeyIndex(session)
            _load_entities(session, payload, index, counts)
            _load_prerequisites(session, payload, index, counts)
            _load_choice_groups(session, payload, index, counts)
            _load_counters(session, payload, index, counts)
            validate_catalog(session)

            summary = counts.as_dict()
            import_run.status = "finished"
            import_run.finished_at = _utc_now()
            import_run.created_rows = summary["created_rows"]
            import_run.updated_rows = summary["updated_rows"]
            import_run.notes = json.dumps(summary, sort_keys=True)
        except Exception as exc:
            session.rollback()
            import_run.status = "failed"
            import_run.finished_at = _utc_now()
            import_run.error = str(exc)
            raise
        finally:
            session.add(import_run)
            session.commit()

    logger.info(
        "Loaded catalog %s: created=%s updated=%s",
        source_name,
        summary["created_rows"],
        summary["updated_rows"],
    )
    return summary
