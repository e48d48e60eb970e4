"""Transient view of a character's outstanding or completed choices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dnd_rules.choices.ids import ChoiceId
from dnd_rules.constants import OWNER_TYPE_ORDER


@dataclass
class PendingOption:
    key: str
    label: str
    option_type: str
    option_id: int | None = None
    unrestricted: bool = False
    letter: str | None = None
    quantity: int = 1
    filters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.option_id,
            "key": self.key,
            "label": self.label,
            "option_type": self.option_type,
            "unrestricted": self.unrestricted,
        }
        if self.letter is not None:
            payload["letter"] = self.letter
            payload["quantity"] = self.quantity
        if self.filters:
            payload["filters"] = dict(self.filters)
        return payload


@dataclass
class PendingChoice:
    """One choice group as seen by one character.

    ``metadata`` carries whatever the owning resolver needs to re-derive the
    group's constraints at resolution time.
    """

    choice_id: ChoiceId
    source_name: str
    name: str
    required: int
    selected: list[str] = field(default_factory=list)
    options: list[PendingOption] = field(default_factory=list)
    options_endpoint_hint: str | None = None
    optional: bool = False
    undoable: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.choice_id.encode()

    @property
    def kind(self) -> str:
        return self.choice_id.kind.value

    @property
    def source_type(self) -> str:
        return self.choice_id.owner_type.value

    @property
    def level(self) -> int | None:
        return self.choice_id.level

    @property
    def selected_count(self) -> int:
        return len(self.selected)

    @property
    def remaining(self) -> int:
        return max(0, self.required - self.selected_count)

    @property
    def complete(self) -> bool:
        return self.remaining == 0

    def sort_key(self) -> tuple[int, int, int, str, str]:
        return (
            self.level or 0,
            OWNER_TYPE_ORDER[self.choice_id.owner_type],
            self.choice_id.owner_id,
            self.choice_id.group_key,
            self.kind,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "source": self.source_name,
            "source_type": self.source_type,
            "name": self.name,
            "level": self.level,
            "required": self.required,
            "remaining": self.remaining,
            "selected": list(self.selected),
            "optional": self.optional,
            "undoable": self.undoable,
            "options": [option.to_dict() for option in self.options],
            "options_endpoint_hint": self.options_endpoint_hint,
            "metadata": dict(self.metadata),
        }
