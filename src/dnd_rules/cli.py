"""Command-line interface for dnd_rules."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from sqlalchemy import inspect
from sqlmodel import Session, select

from dnd_rules.choices import build_default_dispatcher
from dnd_rules.config import configure_logging, get_db_path
from dnd_rules.constants import ResetTiming
from dnd_rules.counters import (
    counter_payload,
    counters_for,
    remaining_uses,
    reset_by_timing,
    sync_counters_for_character,
    use_counter,
)
from dnd_rules.db.engine import create_db_and_tables, get_engine
from dnd_rules.errors import RulesError, SelectionError
from dnd_rules.ingest.load_catalog import load_catalog
from dnd_rules.models.character import Character
from dnd_rules.models.counters import CharacterCounter
from dnd_rules.models.import_run import ImportRun
from dnd_rules.progression import apply_level_up
from dnd_rules.sheet import load_character_sheet
from dnd_rules.verify.choices import verify_choices

logger = logging.getLogger(__name__)


def _init_db() -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    print(f"Database initialized at {get_db_path()}")


def _info() -> None:
    engine = get_engine()
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print(f"Database path: {get_db_path()}")
    print("Tables:")
    for table in tables:
        print(f"- {table}")


def _load_catalog(path: str, source_name: str | None) -> None:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    engine = get_engine()
    summary = load_catalog(
        engine=engine, payload=payload, source_name=source_name or Path(path).name
    )
    print(f"Database path: {get_db_path()}")
    print("Catalog loaded:")
    print(f"- created_rows: {summary['created_rows']}")
    print(f"- updated_rows: {summary['updated_rows']}")
    print(f"- missing_owner_count: {summary['missing_owner_count']}")
    print(f"- missing_option_refs_count: {summary['missing_option_refs_count']}")
    with Session(engine) as session:
        run = session.exec(select(ImportRun).order_by(ImportRun.id.desc())).first()
        if run is not None:
            print(f"Import status: {run.status}")


def _verify_choices() -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        report = verify_choices(session, build_default_dispatcher())
    warnings = report.get("warnings", [])
    if warnings:
        print("Choice verification warnings:")
        for warning in warnings:
            print(f"- {warning}")
    errors = report.get("errors", [])
    if errors:
        print("Choice verification errors:")
        for error in errors:
            print(f"- {error}")
        raise SystemExit(1)
    print("No choice verification errors detected.")


def _create_character(name: str, notes: str | None) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        character = Character(name=name, notes=notes)
        session.add(character)
        session.commit()
        session.refresh(character)
        print(f"Created character {character.id}: {character.name}")


def _level_up(character_id: int, class_id: int, subclass_id: int | None) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        row = apply_level_up(
            session, character_id=character_id, class_id=class_id, subclass_id=subclass_id
        )
        character = session.get(Character, character_id)
        print(f"Character {character_id} is now level {row.level}")
        print(f"HP: {character.current_hp}/{character.max_hp}")


def _show_character(character_id: int) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        sheet = load_character_sheet(session, character_id)
        character = sheet.character
        print(f"Character {character.id}: {character.name}")
        print(f"Total level: {sheet.total_level}")
        print(f"HP: {character.current_hp}/{character.max_hp}")
        print("Sources:")
        for source in sheet.sources:
            print(f"- {source.owner_type.value} {source.name} (level {source.level})")


def _pending_choices(character_id: int, as_json: bool) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    dispatcher = build_default_dispatcher()
    with Session(engine) as session:
        pending = dispatcher.all_pending_choices(session, character_id)
    if as_json:
        print(json.dumps([choice.to_dict() for choice in pending], indent=2))
        return
    if not pending:
        print("No choices.")
        return
    for choice in pending:
        status = "done" if choice.complete else f"{choice.remaining} remaining"
        print(f"- {choice.id}")
        print(f"  {choice.source_name}: {choice.name} ({status})")
        if choice.selected:
            print(f"  selected: {', '.join(choice.selected)}")
        if choice.options_endpoint_hint:
            print(f"  options: {choice.options_endpoint_hint}")


def _resolve(character_id: int, choice_id: str, values: list[str]) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    dispatcher = build_default_dispatcher()
    with Session(engine) as session:
        try:
            choice = dispatcher.resolve(session, character_id, choice_id, values)
        except SelectionError as exc:
            print(json.dumps(exc.to_dict(), indent=2))
            raise SystemExit(1)
    print(f"Resolved {choice.id}: {', '.join(choice.selected)}")


def _undo(character_id: int, choice_id: str) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    dispatcher = build_default_dispatcher()
    with Session(engine) as session:
        dispatcher.undo(session, character_id, choice_id)
    print(f"Undid {choice_id}")


def _counters(character_id: int) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        counters = counters_for(session, character_id)
    if not counters:
        print("No counters.")
        return
    for counter in counters:
        limit = "unlimited" if counter["unlimited"] else f"{counter['current']}/{counter['max']}"
        print(
            f"- [{counter['id']}] {counter['source_name']}: {counter['pool_name']} "
            f"{limit} ({counter['reset_timing']})"
        )


def _use_counter(character_id: int, counter_id: int, amount: int) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        used = use_counter(session, character_id, counter_id, amount)
        counter = session.get(CharacterCounter, counter_id)
        if not used:
            print(f"Not enough uses left ({remaining_uses(counter)}).")
            raise SystemExit(1)
        payload = counter_payload(counter)
    print(f"{payload['pool_name']}: {payload['current']}/{payload['max']}")


def _rest(character_id: int, long_rest: bool) -> None:
    timings = [ResetTiming.SHORT_REST]
    if long_rest:
        timings.append(ResetTiming.LONG_REST)
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        reset = reset_by_timing(session, character_id, timings)
    print(f"Reset {len(reset)} counter(s).")
    for counter in reset:
        print(f"- {counter['source_name']}: {counter['pool_name']}")


def _sync_counters(character_id: int) -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        summary = sync_counters_for_character(session, character_id)
    print("Counters synced:")
    for key in ("created", "updated", "removed"):
        print(f"- {key}: {summary[key]}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="dnd_rules CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Initialize the database schema")
    subparsers.add_parser("info", help="Show database path and table names")

    load = subparsers.add_parser("load-catalog", help="Load a catalog JSON file")
    load.add_argument("path")
    load.add_argument("--source-name", default=None, help="Name recorded on the import run")

    subparsers.add_parser("verify-choices", help="Verify the choice catalog")

    create = subparsers.add_parser("create-character", help="Create an empty character")
    create.add_argument("name")
    create.add_argument("--notes", default=None)

    level_up = subparsers.add_parser("level-up", help="Add one level in a class")
    level_up.add_argument("--character", type=int, required=True)
    level_up.add_argument("--class-id", type=int, required=True)
    level_up.add_argument("--subclass-id", type=int, default=None)

    show = subparsers.add_parser("show-character", help="Show a character's sources")
    show.add_argument("--character", type=int, required=True)

    pending = subparsers.add_parser("pending-choices", help="List a character's choices")
    pending.add_argument("--character", type=int, required=True)
    pending.add_argument("--json", action="store_true", help="Print JSON")

    resolve = subparsers.add_parser("resolve", help="Resolve one choice")
    resolve.add_argument("--character", type=int, required=True)
    resolve.add_argument("--choice", required=True)
    resolve.add_argument("values", nargs="+")

    undo = subparsers.add_parser("undo", help="Undo one choice")
    undo.add_argument("--character", type=int, required=True)
    undo.add_argument("--choice", required=True)

    counters = subparsers.add_parser("counters", help="List a character's counters")
    counters.add_argument("--character", type=int, required=True)

    use = subparsers.add_parser("use-counter", help="Spend uses from a counter")
    use.add_argument("--character", type=int, required=True)
    use.add_argument("--counter", type=int, required=True)
    use.add_argument("--amount", type=int, default=1)

    rest = subparsers.add_parser("rest", help="Take a short (default) or long rest")
    rest.add_argument("--character", type=int, required=True)
    rest.add_argument("--long", action="store_true", help="Long rest")

    sync = subparsers.add_parser("sync-counters", help="Rebuild a character's counters")
    sync.add_argument("--character", type=int, required=True)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    configure_logging()

    try:
        if args.command == "init-db":
            _init_db()
        elif args.command == "info":
            _info()
        elif args.command == "load-catalog":
            _load_catalog(args.path, args.source_name)
        elif args.command == "verify-choices":
            _verify_choices()
        elif args.command == "create-character":
            _create_character(args.name, args.notes)
        elif args.command == "level-up":
            _level_up(args.character, args.class_id, args.subclass_id)
        elif args.command == "show-character":
            _show_character(args.character)
        elif args.command == "pending-choices":
            _pending_choices(args.character, args.json)
        elif args.command == "resolve":
            _resolve(args.character, args.choice, args.values)
        elif args.command == "undo":
            _undo(args.character, args.choice)
        elif args.command == "counters":
            _counters(args.character)
        elif args.command == "use-counter":
            _use_counter(args.character, args.counter, args.amount)
        elif args.command == "rest":
            _rest(args.character, args.long)
        elif args.command == "sync-counters":
            _sync_counters(args.character)
        else:
            parser.error(f"Unknown command: {args.command}")
    except RulesError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main()
