"""Language choices."""

from __future__ import annotations

from dnd_rules.choices.proficiency import LookupResolver
from dnd_rules.constants import ChoiceKind


class LanguageResolver(LookupResolver):
    kind = ChoiceKind.LANGUAGE
    target_type = "language"
