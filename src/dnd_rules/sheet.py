"""Batch loading of everything the engine needs to know about one character."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlmodel import Session, select

from dnd_rules.constants import OwnerType
from dnd_rules.errors import CharacterNotFoundError
from dnd_rules.models.character import Character, CharacterFeat, CharacterLevel
from dnd_rules.models.character_class import CharacterClass, Subclass
from dnd_rules.models.feature import Feature
from dnd_rules.models.origin import Background, Feat, Race
from dnd_rules.models.relationships import SubclassFeatureLink


@dataclass(frozen=True)
class ChoiceSource:
    """An entity currently granting things to the character.

    ``level`` is the level that gates this source's catalog rows: the class
    level for classes, subclasses and subclass features, the total character
    level for everything else.
    """

    owner_type: OwnerType
    owner_id: int
    name: str
    level: int
    class_id: int | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.owner_type.value, self.owner_id)


@dataclass
class ClassLevel:
    character_class: CharacterClass
    level: int
    first_character_level: int
    subclass: Subclass | None = None


@dataclass
class ReachedFeature:
    feature: Feature
    subclass_id: int
    class_id: int
    unlock_level: int
    class_level: int


@dataclass
class CharacterSheet:
    character: Character
    levels: list[CharacterLevel] = field(default_factory=list)
    classes: list[ClassLevel] = field(default_factory=list)
    race: Race | None = None
    parent_race: Race | None = None
    background: Background | None = None
    feats: list[Feat] = field(default_factory=list)
    features: list[ReachedFeature] = field(default_factory=list)

    @property
    def character_id(self) -> int:
        return int(self.character.id)

    @property
    def total_level(self) -> int:
        return len(self.levels)

    def class_level(self, class_id: int) -> int:
        for entry in self.classes:
            if entry.character_class.id == class_id:
                return entry.level
        return 0

    def class_entry(self, class_id: int) -> ClassLevel | None:
        for entry in self.classes:
            if entry.character_class.id == class_id:
                return entry
        return None

    @property
    def sources(self) -> list[ChoiceSource]:
        total = self.total_level
        results: list[ChoiceSource] = []
        if self.parent_race is not None:
            results.append(
                ChoiceSource(OwnerType.RACE, int(self.parent_race.id), self.parent_race.name, total)
            )
        if self.race is not None:
            results.append(ChoiceSource(OwnerType.RACE, int(self.race.id), self.race.name, total))
        if self.background is not None:
            results.append(
                ChoiceSource(
                    OwnerType.BACKGROUND, int(self.background.id), self.background.name, total
                )
            )
        for entry in self.classes:
            class_id = int(entry.character_class.id)
            results.append(
                ChoiceSource(
                    OwnerType.CLASS,
                    class_id,
                    entry.character_class.name,
                    entry.level,
                    class_id=class_id,
                )
            )
            if entry.subclass is not None:
                results.append(
                    ChoiceSource(
                        OwnerType.SUBCLASS,
                        int(entry.subclass.id),
                        entry.subclass.name,
                        entry.level,
                        class_id=class_id,
                    )
                )
        for reached in self.features:
            results.append(
                ChoiceSource(
                    OwnerType.SUBCLASS_FEATURE,
                    int(reached.feature.id),
                    reached.feature.name,
                    reached.class_level,
                    class_id=reached.class_id,
                )
            )
        for feat in self.feats:
            results.append(ChoiceSource(OwnerType.FEAT, int(feat.id), feat.name, total))
        return results

    def source_for(self, owner_type: OwnerType | str, owner_id: int) -> ChoiceSource | None:
        key = (OwnerType(owner_type).value, owner_id)
        for source in self.sources:
            if source.key == key:
                return source
        return None


def load_character_sheet(session: Session, character_id: int) -> CharacterSheet:
    """Load a character with its classes, origins, feats and reached features.

    Issues a fixed number of queries regardless of how many classes or
    features the character has.
    """
    character = session.get(Character, character_id)
    if character is None:
        raise CharacterNotFoundError(f"Character not found: {character_id}")

    levels = list(
        session.exec(
            select(CharacterLevel)
            .where(CharacterLevel.character_id == character_id)
            .order_by(CharacterLevel.level)
        ).all()
    )
    sheet = CharacterSheet(character=character, levels=levels)

    class_ids = sorted({row.class_id for row in levels})
    classes_by_id: dict[int, CharacterClass] = {}
    if class_ids:
        classes_by_id = {
            row.id: row
            for row in session.exec(
                select(CharacterClass).where(CharacterClass.id.in_(class_ids))
            ).all()
        }

    counts: dict[int, int] = {}
    first_levels: dict[int, int] = {}
    subclass_by_class: dict[int, int] = {}
    for row in levels:
        counts[row.class_id] = counts.get(row.class_id, 0) + 1
        first_levels.setdefault(row.class_id, row.level)
        if row.subclass_id is not None:
            subclass_by_class[row.class_id] = row.subclass_id

    subclasses_by_id: dict[int, Subclass] = {}
    if subclass_by_class:
        subclasses_by_id = {
            row.id: row
            for row in session.exec(
                select(Subclass).where(Subclass.id.in_(list(subclass_by_class.values())))
            ).all()
        }

    for class_id in sorted(first_levels, key=first_levels.get):
        subclass_id = subclass_by_class.get(class_id)
        sheet.classes.append(
            ClassLevel(
                character_class=classes_by_id[class_id],
                level=counts[class_id],
                first_character_level=first_levels[class_id],
                subclass=subclasses_by_id.get(subclass_id) if subclass_id else None,
            )
        )

    if subclasses_by_id:
        class_for_subclass = {value: key for key, value in subclass_by_class.items()}
        rows = session.exec(
            select(Feature, SubclassFeatureLink)
            .join(SubclassFeatureLink, SubclassFeatureLink.feature_id == Feature.id)
            .where(SubclassFeatureLink.subclass_id.in_(list(subclasses_by_id)))
            .order_by(SubclassFeatureLink.level, Feature.id)
        ).all()
        for feature, link in rows:
            class_id = class_for_subclass[link.subclass_id]
            class_level = counts[class_id]
            if link.level <= class_level:
                sheet.features.append(
                    ReachedFeature(
                        feature=feature,
                        subclass_id=link.subclass_id,
                        class_id=class_id,
                        unlock_level=link.level,
                        class_level=class_level,
                    )
                )

    if character.race_id is not None:
        sheet.race = session.get(Race, character.race_id)
        if sheet.race is not None and sheet.race.parent_race_id is not None:
            sheet.parent_race = session.get(Race, sheet.race.parent_race_id)
    if character.background_id is not None:
        sheet.background = session.get(Background, character.background_id)

    sheet.feats = list(
        session.exec(
            select(Feat)
            .join(CharacterFeat, CharacterFeat.feat_id == Feat.id)
            .where(CharacterFeat.character_id == character_id)
            .order_by(CharacterFeat.id)
        ).all()
    )
    return sheet
