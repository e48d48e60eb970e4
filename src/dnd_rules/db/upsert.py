"""Upsert helpers for catalog rows keyed by source key."""

from __future__ import annotations

import re
from typing import Any, TypeVar

from sqlmodel import Session, SQLModel, select

ModelT = TypeVar("ModelT", bound=SQLModel)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", value.strip().lower())
    return slug.strip("-") or value.strip().lower()


def upsert_by_key(
    session: Session,
    model: type[ModelT],
    *,
    source_key: str,
    values: dict[str, Any],
) -> tuple[ModelT, bool, bool]:
    """Insert or update a row by ``source_key``, returning (row, created, updated).

    Only columns whose value differs are written; an unchanged row is left
    alone. Flushes but does not commit.
    """
    statement = select(model).where(model.source_key == source_key)
    existing = session.exec(statement).one_or_none()

    if existing is None:
        row = model(source_key=source_key, **values)
        session.add(row)
        session.flush()
        return row, True, False

    changed = False
    for name, value in values.items():
        if getattr(existing, name) != value:
            setattr(existing, name, value)
            changed = True
    if changed:
        session.add(existing)
        session.flush()
    return existing, False, changed
