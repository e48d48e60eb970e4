"""Data models for dnd_rules."""

from dnd_rules.models.character import (
    Character,
    CharacterChoice,
    CharacterFeat,
    CharacterHitPointGain,
    CharacterLevel,
)
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.choices import ChoiceGroup, ChoiceOption, Prerequisite
from dnd_rules.models.counters import CharacterCounter, CounterDefinition
from dnd_rules.models.feature import Feature
from dnd_rules.models.import_run import ImportRun
from dnd_rules.models.item import Item
from dnd_rules.models.origin import Background, Feat, Race
from dnd_rules.models.proficiency import Language, Proficiency
from dnd_rules.models.relationships import SpellClassLink, SubclassFeatureLink
from dnd_rules.models.spell import Spell

__all__ = [
    "Background",
    "Character",
    "CharacterChoice",
    "CharacterClass",
    "CharacterCounter",
    "CharacterFeat",
    "CharacterHitPointGain",
    "CharacterLevel",
    "ChoiceGroup",
    "ChoiceOption",
    "CounterDefinition",
    "Feat",
    "Feature",
    "ImportRun",
    "Item",
    "Language",
    "Prerequisite",
    "Proficiency",
    "Race",
    "SpellClassLink",
    "Spell",
    "Subclass",
    "SubclassFeatureLink",
]
