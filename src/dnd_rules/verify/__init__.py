"""Verification utilities."""

from dnd_rules.verify.choices import validate_catalog, verify_choices

__all__ = [
    "validate_catalog",
    "verify_choices",
]
