"""Starting equipment choices: pick whole lettered bundles."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

from sqlmodel import Session, select

from dnd_rules.catalog import CatalogGroup
from dnd_rules.choices.base import CatalogResolver
from dnd_rules.choices.ids import ChoiceId
from dnd_rules.constants import ChoiceKind
from dnd_rules.errors import SelectionError
from dnd_rules.models.character import CharacterChoice
from dnd_rules.models.choices import ChoiceOption
from dnd_rules.models.item import Item


def _bundle_key(option: ChoiceOption) -> str:
    return (option.option_letter or option.option_source_key).lower()


def bundles(entry: CatalogGroup) -> "OrderedDict[str, list[ChoiceOption]]":
    """Group options by letter; options without a letter are bundles of one."""
    grouped: OrderedDict[str, list[ChoiceOption]] = OrderedDict()
    for option in entry.options:
        grouped.setdefault(_bundle_key(option), []).append(option)
    return grouped


def _item_matches(option: ChoiceOption, item: Item) -> bool:
    if option.category and (item.equipment_category or "").lower() != option.category.lower():
        return False
    if option.subcategory:
        wanted = option.subcategory.lower()
        categories = {
            (item.weapon_category or "").lower(),
            (item.armor_category or "").lower(),
        }
        if wanted not in categories:
            return False
    return True


class EquipmentResolver(CatalogResolver):
    """Each value is a bundle letter, or ``letter:item`` when the bundle
    contains an unrestricted slot such as "any martial weapon". Bundles with
    several open slots take one item per slot, in order: ``letter:item1,item2``.
    """

    kind = ChoiceKind.EQUIPMENT

    def validate(
        self,
        session: Session,
        sheet,
        entry: CatalogGroup,
        values: list[str],
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        available = bundles(entry)
        seen: set[str] = set()
        records: list[CharacterChoice] = []
        for value in values:
            letter, _, item_key = value.partition(":")
            letter = letter.strip().lower()
            item_key = item_key.strip()
            bundle = available.get(letter)
            if bundle is None:
                raise SelectionError(
                    f"'{letter}' is not one of the offered bundles ({', '.join(available)}).",
                    value=value,
                    constraint="bundle",
                    choice_id=choice_id.encode(),
                )
            if letter in seen:
                raise SelectionError(
                    f"Bundle '{letter}' was selected more than once.",
                    value=value,
                    constraint="distinct",
                    choice_id=choice_id.encode(),
                )
            seen.add(letter)
            records.extend(self._bundle_records(session, bundle, letter, item_key, value, choice_id))
        return records

    def _bundle_records(
        self,
        session: Session,
        bundle: list[ChoiceOption],
        letter: str,
        item_key: str,
        value: str,
        choice_id: ChoiceId,
    ) -> list[CharacterChoice]:
        open_slots = [option for option in bundle if option.is_unrestricted]
        item_keys = [key.strip() for key in item_key.split(",") if key.strip()]
        if open_slots and not item_keys:
            raise SelectionError(
                f"Bundle '{letter}' needs an item, e.g. '{letter}:<item>'.",
                value=value,
                constraint="bundle",
                choice_id=choice_id.encode(),
            )
        if item_keys and not open_slots:
            raise SelectionError(
                f"Bundle '{letter}' has no item to pick.",
                value=value,
                constraint="bundle",
                choice_id=choice_id.encode(),
            )
        if len(item_keys) != len(open_slots):
            raise SelectionError(
                f"Bundle '{letter}' takes {len(open_slots)} item(s), "
                f"e.g. '{letter}:<item>,<item>'.",
                value=value,
                constraint="bundle",
                choice_id=choice_id.encode(),
            )

        picked: dict[int, Item] = {}
        for option, key in zip(open_slots, item_keys):
            item = session.exec(select(Item).where(Item.source_key == key)).one_or_none()
            if item is None:
                raise SelectionError(
                    f"Unknown item '{key}'.",
                    value=value,
                    constraint="option",
                    choice_id=choice_id.encode(),
                )
            if not _item_matches(option, item):
                raise SelectionError(
                    f"{item.name} does not fit '{option.label}'.",
                    value=value,
                    constraint="subcategory",
                    choice_id=choice_id.encode(),
                )
            picked[option.id] = item

        records: list[CharacterChoice] = []
        for option in bundle:
            item = picked.get(option.id)
            if item is not None:
                key, label = item.source_key, item.name
            else:
                key, label = option.option_source_key, option.label
            records.append(
                CharacterChoice(
                    choice_option_id=option.id,
                    value=key,
                    option_label=label,
                    option_letter=letter,
                    magnitude=option.quantity,
                )
            )
        return records

    def _selected_values(self, entry: CatalogGroup, records: list[CharacterChoice]) -> list[str]:
        unrestricted_ids = {option.id for option in entry.unrestricted_options}
        letters: list[str] = []
        items: dict[str, list[str]] = {}
        for record in records:
            letter = record.option_letter or record.value
            if letter not in items:
                letters.append(letter)
                items[letter] = []
            if record.choice_option_id in unrestricted_ids:
                items[letter].append(record.value)
        return [
            f"{letter}:{','.join(items[letter])}" if items[letter] else letter
            for letter in letters
        ]

    def _metadata(self, entry: CatalogGroup) -> dict[str, Any]:
        return {
            "bundles": {
                letter: [option.option_source_key for option in options]
                for letter, options in bundles(entry).items()
            }
        }
