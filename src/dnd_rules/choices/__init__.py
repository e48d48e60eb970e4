"""Choice resolvers and the dispatcher that routes between them."""

from dnd_rules.choices.ability_score import AbilityScoreResolver
from dnd_rules.choices.base import CatalogResolver, ChoiceResolver
from dnd_rules.choices.dispatcher import ChoiceDispatcher, build_default_dispatcher
from dnd_rules.choices.equipment import EquipmentResolver
from dnd_rules.choices.hit_points import HitPointResolver
from dnd_rules.choices.ids import ChoiceId, decode_choice_id
from dnd_rules.choices.language import LanguageResolver
from dnd_rules.choices.lookup import DatabaseOptionLookup, LookupCandidate, OptionLookup
from dnd_rules.choices.optional_feature import OptionalFeatureResolver
from dnd_rules.choices.pending import PendingChoice, PendingOption
from dnd_rules.choices.proficiency import ProficiencyResolver
from dnd_rules.choices.spell import SpellResolver

__all__ = [
    "AbilityScoreResolver",
    "CatalogResolver",
    "ChoiceDispatcher",
    "ChoiceId",
    "ChoiceResolver",
    "DatabaseOptionLookup",
    "EquipmentResolver",
    "HitPointResolver",
    "LanguageResolver",
    "LookupCandidate",
    "OptionLookup",
    "OptionalFeatureResolver",
    "PendingChoice",
    "PendingOption",
    "ProficiencyResolver",
    "SpellResolver",
    "build_default_dispatcher",
    "decode_choice_id",
]
