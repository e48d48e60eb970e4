"""Structured pending-choice identifiers and their boundary encoding."""

from __future__ import annotations

from dataclasses import dataclass

from dnd_rules.constants import ChoiceKind, OwnerType
from dnd_rules.errors import ChoiceNotFoundError

ID_VERSION = "v1"
_NO_LEVEL = "-"


@dataclass(frozen=True)
class ChoiceId:
    """Identity of one pending choice; stable across re-fetches."""

    kind: ChoiceKind
    owner_type: OwnerType
    owner_id: int
    level: int | None
    group_key: str

    def encode(self) -> str:
        level = _NO_LEVEL if self.level is None else str(self.level)
        return ":".join(
            [
                ID_VERSION,
                self.kind.value,
                self.owner_type.value,
                str(self.owner_id),
                level,
                self.group_key,
            ]
        )

    def __str__(self) -> str:
        return self.encode()


def decode_choice_id(value: str | ChoiceId) -> ChoiceId:
    """Parse an encoded id; malformed ids raise ``ChoiceNotFoundError``.

    The group key is the last segment and may itself contain colons.
    """
    if isinstance(value, ChoiceId):
        return value
    parts = str(value).split(":", 5)
    if len(parts) != 6 or parts[0] != ID_VERSION:
        raise ChoiceNotFoundError(f"Malformed choice id: {value}")
    _, kind, owner_type, owner_id, level, group_key = parts
    try:
        return ChoiceId(
            kind=ChoiceKind(kind),
            owner_type=OwnerType(owner_type),
            owner_id=int(owner_id),
            level=None if level == _NO_LEVEL else int(level),
            group_key=_require(group_key, value),
        )
    except ValueError as exc:
        raise ChoiceNotFoundError(f"Malformed choice id: {value}") from exc


def _require(group_key: str, raw: str) -> str:
    if not group_key:
        raise ValueError(f"Empty group key in {raw}")
    return group_key
