"""Option lookup collaborator for unrestricted proficiency and language options."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

from sqlmodel import Session, select

from dnd_rules.models.proficiency import Language, Proficiency


@dataclass(frozen=True)
class LookupCandidate:
    key: str
    label: str
    category: str | None = None
    subcategory: str | None = None


class OptionLookup(Protocol):
    """Enumerates candidates for an unrestricted option on demand."""

    def candidates(
        self,
        session: Session,
        target_type: str,
        category: str | None,
        subcategory: str | None,
    ) -> list[LookupCandidate]:
        ...

    def hint(self, target_type: str, category: str | None, subcategory: str | None) -> str:
        ...


class DatabaseOptionLookup:
    """Option lookup backed by the proficiency and language tables."""

    def __init__(self, base_path: str = "/lookup") -> None:
        self.base_path = base_path.rstrip("/")

    def candidates(
        self,
        session: Session,
        target_type: str,
        category: str | None,
        subcategory: str | None,
    ) -> list[LookupCandidate]:
        if target_type == "language":
            statement = select(Language)
            if subcategory:
                statement = statement.where(Language.subcategory == subcategory)
            return [
                LookupCandidate(row.source_key, row.name, "language", row.subcategory)
                for row in session.exec(statement.order_by(Language.name)).all()
            ]

        statement = select(Proficiency)
        if category:
            statement = statement.where(Proficiency.category == category)
        if subcategory:
            statement = statement.where(Proficiency.subcategory == subcategory)
        return [
            LookupCandidate(row.source_key, row.name, row.category, row.subcategory)
            for row in session.exec(statement.order_by(Proficiency.name)).all()
        ]

    def hint(self, target_type: str, category: str | None, subcategory: str | None) -> str:
        params = {
            key: value
            for key, value in (("category", category), ("subcategory", subcategory))
            if value
        }
        path = f"{self.base_path}/{target_type}"
        if not params:
            return path
        return f"{path}?{urlencode(sorted(params.items()))}"
