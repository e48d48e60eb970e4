"""Exception hierarchy for the rules engine."""

from __future__ import annotations


class RulesError(Exception):
    """Base rules engine error."""


class ConfigurationError(RulesError):
    """Raised when catalog data or resolver wiring is inconsistent.

    These are programming or import errors and are never recovered from.
    """


class SelectionError(RulesError):
    """Raised when a submitted selection violates a choice constraint."""

    def __init__(
        self,
        message: str,
        *,
        value: str | None = None,
        constraint: str,
        choice_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.value = value
        self.constraint = constraint
        self.choice_id = choice_id

    def to_dict(self) -> dict[str, str | None]:
        return {
            "message": str(self),
            "value": self.value,
            "constraint": self.constraint,
            "choice_id": self.choice_id,
        }


class StateError(RulesError):
    """Raised when an operation does not apply to the character's state."""


class CharacterNotFoundError(StateError):
    """Raised when a character id does not exist."""


class ChoiceNotFoundError(StateError):
    """Raised when a choice id is malformed or not available to the character."""


class NotUndoableError(StateError):
    """Raised when undo is requested for a permanent choice."""


class AlreadyResolvedError(StateError):
    """Raised when a once-only choice is resolved a second time."""


class CounterNotFoundError(StateError):
    """Raised when a counter id does not belong to the character."""


class PrerequisiteError(StateError):
    """Raised when a class prerequisite is not met."""
