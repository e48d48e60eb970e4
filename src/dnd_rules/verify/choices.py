"""Verification checks for the choice catalog."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlmodel import Session, select

from dnd_rules.constants import ChoiceKind, OwnerType
from dnd_rules.errors import ConfigurationError
from dnd_rules.ingest.load_catalog import OWNER_MODELS
from dnd_rules.models.character_class import CharacterClass
from dnd_rules.models.choices import ChoiceGroup, ChoiceOption
from dnd_rules.models.counters import CounterDefinition

logger = logging.getLogger(__name__)


def verify_choices(session: Session, dispatcher=None) -> dict[str, list[str]]:
    """Verify choice groups, options and counter definitions.

    When ``dispatcher`` is given, every kind used by the catalog must have a
    registered resolver.
    """
    errors: list[str] = []
    warnings: list[str] = []

    duplicate_groups = session.exec(
        select(
            ChoiceGroup.owner_type,
            ChoiceGroup.owner_id,
            ChoiceGroup.level,
            ChoiceGroup.group_key,
            func.count(ChoiceGroup.id),
        ).group_by(
            ChoiceGroup.owner_type,
            ChoiceGroup.owner_id,
            ChoiceGroup.level,
            ChoiceGroup.group_key,
        ).having(func.count(ChoiceGroup.id) > 1)
    ).all()
    for owner_type, owner_id, level, group_key, count in duplicate_groups:
        errors.append(
            "Duplicate choice group: "
            f"owner_type={owner_type} owner_id={owner_id} level={level} "
            f"group_key={group_key} count={count}"
        )

    valid_owner_types = {owner.value for owner in OwnerType}
    valid_kinds = {kind.value for kind in ChoiceKind if kind != ChoiceKind.HIT_POINTS}
    registered = None
    if dispatcher is not None:
        registered = {kind.value for kind in dispatcher.kinds}

    groups = session.exec(select(ChoiceGroup)).all()
    for group in groups:
        if group.owner_type not in valid_owner_types:
            errors.append(
                f"Choice group has unknown owner type: id={group.id} owner_type={group.owner_type}"
            )
        if group.choice_type not in valid_kinds:
            errors.append(
                f"Choice group has unknown kind: id={group.id} choice_type={group.choice_type}"
            )
        elif registered is not None and group.choice_type not in registered:
            errors.append(
                "Choice group kind has no resolver: "
                f"id={group.id} choice_type={group.choice_type}"
            )
        if group.choose_n < 1:
            errors.append(f"Choice group chooses nothing: id={group.id} choose_n={group.choose_n}")

    for owner_type, model in OWNER_MODELS.items():
        missing = session.exec(
            select(ChoiceGroup).where(
                ChoiceGroup.owner_type == owner_type.value,
                ~ChoiceGroup.owner_id.in_(select(model.id)),
            )
        ).all()
        for group in missing:
            errors.append(
                f"Choice group missing {owner_type.value} owner: "
                f"id={group.id} owner_id={group.owner_id}"
            )

    orphaned_options = session.exec(
        select(ChoiceOption).where(
            ~ChoiceOption.choice_group_id.in_(select(ChoiceGroup.id))
        )
    ).all()
    for option in orphaned_options:
        errors.append(
            "Choice option missing group: "
            f"id={option.id} choice_group_id={option.choice_group_id}"
        )

    empty_groups = session.exec(
        select(ChoiceGroup).where(
            ~ChoiceGroup.id.in_(select(ChoiceOption.choice_group_id))
        )
    ).all()
    for group in empty_groups:
        errors.append(
            "Choice group has no options: "
            f"id={group.id} owner_type={group.owner_type} owner_id={group.owner_id} "
            f"group_key={group.group_key}"
        )

    missing_class_filters = session.exec(
        select(ChoiceOption).where(
            ChoiceOption.class_id.is_not(None),
            ~ChoiceOption.class_id.in_(select(CharacterClass.id)),
        )
    ).all()
    for option in missing_class_filters:
        errors.append(
            f"Choice option references missing class: id={option.id} class_id={option.class_id}"
        )

    unresolved_refs = session.exec(
        select(ChoiceOption).where(
            ChoiceOption.is_unrestricted.is_(False),
            ChoiceOption.option_ref_id.is_(None),
            ChoiceOption.option_type.in_(["proficiency", "language", "item", "spell", "feature"]),
        )
    ).all()
    for option in unresolved_refs:
        warnings.append(
            "Choice option target not found: "
            f"id={option.id} option_type={option.option_type} key={option.option_source_key}"
        )

    bad_counters = session.exec(
        select(CounterDefinition).where(
            CounterDefinition.max_uses.is_(None),
            CounterDefinition.uses_ability.is_(None),
        )
    ).all()
    for definition in bad_counters:
        errors.append(
            "Counter definition has no maximum: "
            f"id={definition.id} pool_name={definition.pool_name}"
        )

    return {"errors": errors, "warnings": warnings}


def validate_catalog(session: Session, dispatcher=None) -> dict[str, list[str]]:
    """Run ``verify_choices`` and raise ``ConfigurationError`` on any error."""
    report = verify_choices(session, dispatcher)
    for warning in report["warnings"]:
        logger.warning(warning)
    if report["errors"]:
        raise ConfigurationError(
            f"Choice catalog has {len(report['errors'])} error(s): {report['errors'][0]}"
        )
    return report
