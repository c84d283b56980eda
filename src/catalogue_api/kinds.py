"""Registry describing each taxonomy kind and each relation table.

The services are written once against these descriptors instead of once per
table.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .models import (
    ClinicalProfile,
    ClinicalProfileTranslation,
    Domain,
    DomainTranslation,
    Population,
    PopulationTranslation,
    ResourceDomain,
    ResourceTag,
    ResourceTheme,
    ResourceType,
    ResourceTypeTranslation,
    Tag,
    TagTranslation,
    TestClinicalProfile,
    TestDomain,
    TestTag,
    TestTheme,
    Theme,
    ThemeTranslation,
)

SLUG_ON_TRANSLATION = "translation"
SLUG_ON_ENTITY = "entity"


@dataclass(frozen=True)
class TaxonomyKind:
    name: str
    entity: Any
    translation: Any
    entity_fk: str
    slug: Optional[str] = None
    has_synonyms: bool = False
    has_description: bool = False
    has_color: bool = False

    @property
    def fk_column(self):
        """Translation column pointing at the parent entity."""
        return getattr(self.translation, self.entity_fk)

    @property
    def translation_pk(self):
        """Column identifying one translation row (for scoped slug lookups)."""
        return getattr(self.translation, "id", None)

    def __str__(self) -> str:
        return self.name


DOMAIN = TaxonomyKind(
    name="domain",
    entity=Domain,
    translation=DomainTranslation,
    entity_fk="domain_id",
    slug=SLUG_ON_TRANSLATION,
    has_synonyms=True,
)
TAG = TaxonomyKind(
    name="tag",
    entity=Tag,
    translation=TagTranslation,
    entity_fk="tag_id",
    has_synonyms=True,
    has_color=True,
)
THEME = TaxonomyKind(
    name="theme",
    entity=Theme,
    translation=ThemeTranslation,
    entity_fk="theme_id",
    slug=SLUG_ON_ENTITY,
    has_synonyms=True,
    has_description=True,
)
RESOURCE_TYPE = TaxonomyKind(
    name="resourceType",
    entity=ResourceType,
    translation=ResourceTypeTranslation,
    entity_fk="resource_type_id",
)
POPULATION = TaxonomyKind(
    name="population",
    entity=Population,
    translation=PopulationTranslation,
    entity_fk="population_id",
)
CLINICAL_PROFILE = TaxonomyKind(
    name="clinicalProfile",
    entity=ClinicalProfile,
    translation=ClinicalProfileTranslation,
    entity_fk="clinical_profile_id",
)

KINDS: Dict[str, TaxonomyKind] = {
    kind.name: kind
    for kind in (DOMAIN, TAG, THEME, RESOURCE_TYPE, POPULATION, CLINICAL_PROFILE)
}


def get_kind(name: str) -> TaxonomyKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown taxonomy kind: {name}") from None


@dataclass(frozen=True)
class RelationSpec:
    """A junction table linking a subject record to one taxonomy kind."""
    model: Any
    subject_fk: str
    object_fk: str
    kind: TaxonomyKind

    @property
    def subject_column(self):
        return getattr(self.model, self.subject_fk)

    @property
    def object_column(self):
        return getattr(self.model, self.object_fk)


# subject -> metadata key -> relation
RELATIONS: Dict[str, Dict[str, RelationSpec]] = {
    "test": {
        "domains": RelationSpec(TestDomain, "test_id", "domain_id", DOMAIN),
        "themes": RelationSpec(TestTheme, "test_id", "theme_id", THEME),
        "tags": RelationSpec(TestTag, "test_id", "tag_id", TAG),
        "clinical_profiles": RelationSpec(TestClinicalProfile, "test_id", "clinical_profile_id", CLINICAL_PROFILE),
    },
    "resource": {
        "domains": RelationSpec(ResourceDomain, "resource_id", "domain_id", DOMAIN),
        "themes": RelationSpec(ResourceTheme, "resource_id", "theme_id", THEME),
        "tags": RelationSpec(ResourceTag, "resource_id", "tag_id", TAG),
    },
}
