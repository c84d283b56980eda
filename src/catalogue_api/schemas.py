"""Pydantic schemas for API request/response models.

JSON bodies use camelCase keys; Python code uses the snake_case field names.
"""
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import TargetAudience, ValidationStatus


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, snake_case names accepted as well."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


TaxonomyType = Literal["domain", "tag", "theme", "resourceType"]


# ============================================================================
# Taxonomy Schemas
# ============================================================================

class DomainItem(CamelModel):
    id: uuid.UUID
    label: str
    slug: str
    synonyms: List[str] = Field(default_factory=list)


class TagItem(CamelModel):
    id: uuid.UUID
    label: str
    synonyms: List[str] = Field(default_factory=list)
    color: Optional[str] = None


class ThemeDomainItem(CamelModel):
    id: uuid.UUID
    label: str


class ThemeItem(CamelModel):
    id: uuid.UUID
    label: str
    slug: Optional[str] = None
    description: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)
    domains: List[ThemeDomainItem] = Field(default_factory=list)


class ResourceTypeItem(CamelModel):
    id: uuid.UUID
    label: str


class TaxonomyResponse(CamelModel):
    """Localized taxonomy. ``error`` is set when the read failed."""
    domains: List[DomainItem] = Field(default_factory=list)
    tags: List[TagItem] = Field(default_factory=list)
    themes: List[ThemeItem] = Field(default_factory=list)
    resource_types: List[ResourceTypeItem] = Field(default_factory=list)
    error: Optional[str] = None


class TaxonomyMutation(CamelModel):
    """Create (POST) or update (PUT, with ``id``) one taxonomy translation."""
    type: TaxonomyType
    locale: Optional[str] = None
    value: str
    description: Optional[str] = None
    synonyms: Optional[str] = Field(None, description="Comma separated synonyms")
    color: Optional[str] = None
    domain_ids: Optional[List[uuid.UUID]] = None
    id: Optional[uuid.UUID] = None


class TaxonomyDeletion(CamelModel):
    type: TaxonomyType
    id: uuid.UUID
    locale: Optional[str] = None


class TermResponse(CamelModel):
    id: uuid.UUID
    label: str


class DeletedTermResponse(TermResponse):
    reaped: bool


# ============================================================================
# Test Schemas
# ============================================================================

class BibliographyEntry(CamelModel):
    label: str = Field(..., min_length=1)
    url: str


class TestInput(CamelModel):
    """Admin form for a test. Taxonomy relations are given as labels."""
    __test__ = False

    locale: Optional[str] = None
    name: str
    target_audience: TargetAudience = TargetAudience.child
    status: ValidationStatus = ValidationStatus.draft
    short_description: Optional[str] = None
    objective: Optional[str] = None
    age_min_months: Optional[int] = Field(None, ge=0)
    age_max_months: Optional[int] = Field(None, ge=0)
    population: Optional[str] = Field(None, description="Population label")
    duration_minutes: Optional[int] = Field(None, ge=0)
    materials: Optional[str] = None
    is_standardized: bool = False
    publisher: Optional[str] = None
    price_range: Optional[str] = None
    buy_link: Optional[str] = None
    notes: Optional[str] = None
    bibliography: List[BibliographyEntry] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    clinical_profiles: List[str] = Field(default_factory=list)


class TestUpdateInput(TestInput):
    __test__ = False

    id: uuid.UUID


class TestDTO(CamelModel):
    """A test as read back, localized with fallback to the default locale."""
    __test__ = False

    id: uuid.UUID
    name: str
    slug: str
    target_audience: TargetAudience
    status: ValidationStatus
    short_description: Optional[str] = None
    objective: Optional[str] = None
    age_min_months: Optional[int] = None
    age_max_months: Optional[int] = None
    population: Optional[str] = None
    duration_minutes: Optional[int] = None
    materials: Optional[str] = None
    is_standardized: bool = False
    publisher: Optional[str] = None
    price_range: Optional[str] = None
    buy_link: Optional[str] = None
    notes: Optional[str] = None
    bibliography: List[BibliographyEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    clinical_profiles: List[str] = Field(default_factory=list)


class TestsResponse(CamelModel):
    __test__ = False

    tests: List[TestDTO] = Field(default_factory=list)
    error: Optional[str] = None


class TestResponse(CamelModel):
    __test__ = False

    test: TestDTO


class BulkRequest(CamelModel):
    """Bulk action on tests. No action means delete (archive when in use)."""
    action: Optional[Literal["status", "tags:add", "tags:remove", "archive", "delete"]] = None
    ids: List[uuid.UUID] = Field(..., min_length=1)
    status: Optional[ValidationStatus] = None
    tag_ids: List[uuid.UUID] = Field(default_factory=list)


# ============================================================================
# Resource Schemas
# ============================================================================

class ResourceInput(CamelModel):
    locale: Optional[str] = None
    title: str
    description: Optional[str] = None
    url: Optional[str] = None
    status: ValidationStatus = ValidationStatus.draft
    resource_type: Optional[str] = Field(None, description="Resource type label")
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)


class ResourceUpdateInput(ResourceInput):
    id: uuid.UUID


class ResourceDTO(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    url: Optional[str] = None
    status: ValidationStatus
    resource_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)


class ResourcesResponse(CamelModel):
    resources: List[ResourceDTO] = Field(default_factory=list)
    error: Optional[str] = None


class ResourceResponse(CamelModel):
    resource: ResourceDTO


# ============================================================================
# Populations & Clinical Profiles
# ============================================================================

class PopulationItem(CamelModel):
    id: uuid.UUID
    label: str
    characteristics: List[str] = Field(default_factory=list)


class PopulationsResponse(CamelModel):
    populations: List[PopulationItem] = Field(default_factory=list)
    error: Optional[str] = None


class CharacteristicInput(CamelModel):
    population_id: uuid.UUID
    locale: Optional[str] = None
    value: str


class CharacteristicRename(CharacteristicInput):
    previous_value: str


class CharacteristicsResponse(CamelModel):
    population_id: uuid.UUID
    characteristics: List[str]


class ClinicalProfileInput(CamelModel):
    locale: Optional[str] = None
    value: str


class ClinicalProfileRename(ClinicalProfileInput):
    previous_value: str


class ClinicalProfilesResponse(CamelModel):
    profiles: List[str] = Field(default_factory=list)
    error: Optional[str] = None


# ============================================================================
# Public search & catalogue
# ============================================================================

class SearchResult(CamelModel):
    id: uuid.UUID
    kind: Literal["test", "resource"]
    category: Literal["assessments", "selfReports", "resources"]
    title: str
    description: Optional[str] = None
    slug: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    # tests only
    objective: Optional[str] = None
    materials: Optional[str] = None
    duration_minutes: Optional[int] = None
    is_standardized: Optional[bool] = None
    # resources only
    resource_type: Optional[str] = None
    url: Optional[str] = None


class SearchGroup(CamelModel):
    category: Literal["assessments", "selfReports", "resources"]
    results: List[SearchResult] = Field(default_factory=list)


class SearchResponse(CamelModel):
    groups: List[SearchGroup] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ThemeSearchItem(CamelModel):
    id: uuid.UUID
    slug: str
    label: str
    description: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)


class ThemeSearchResponse(CamelModel):
    items: List[ThemeSearchItem] = Field(default_factory=list)
    error: Optional[str] = None


class CatalogueTheme(CamelModel):
    id: uuid.UUID
    label: str
    slug: str


class CatalogueDomain(CamelModel):
    id: uuid.UUID
    label: str
    slug: str
    themes: List[CatalogueTheme] = Field(default_factory=list)


class CatalogueResponse(CamelModel):
    domains: List[CatalogueDomain] = Field(default_factory=list)
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
