"""
SQLAlchemy ORM models for the clinical assessment catalogue.

Taxonomy entities (domains, tags, themes, resource types, populations and
clinical profiles) carry no label of their own: every human-readable field
lives in a per-locale translation row, at most one per (entity, locale).
Tests and resources follow the same split between locale-independent
columns and a translation table.

Column types are declared with PostgreSQL variants so the same metadata is
usable on asyncpg in production and on SQLite in the test suite.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TSVECTOR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

StringArray = JSON().with_variant(ARRAY(Text), "postgresql")
JSONDocument = JSON().with_variant(JSONB(), "postgresql")
SearchVector = Text().with_variant(TSVECTOR(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ValidationStatus(str, enum.Enum):
    """Editorial status of a test. Any value may follow any other."""
    draft = "draft"
    in_review = "in_review"
    published = "published"
    archived = "archived"


class TargetAudience(str, enum.Enum):
    child = "child"
    adult = "adult"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================================
# Taxonomy: Domains
# ============================================================================

class Domain(Base):
    """Clinical domain (e.g. oral language, fine motor skills)."""
    __tablename__ = "domains"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["DomainTranslation"]] = relationship(
        back_populates="domain", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Domain(id={self.id})>"


class DomainTranslation(Base):
    """Localized label, slug and synonyms of a domain."""
    __tablename__ = "domains_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    synonyms: Mapped[List[str]] = mapped_column(StringArray, nullable=False, default=list)

    domain: Mapped["Domain"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint("domain_id", "locale", name="domains_translations_domain_id_locale_key"),
        UniqueConstraint("slug", "locale", name="domains_translations_slug_locale_key"),
        Index("idx_domains_translations_label", "label"),
    )

    def __repr__(self) -> str:
        return f"<DomainTranslation(domain_id={self.domain_id}, locale='{self.locale}', label='{self.label}')>"


# ============================================================================
# Taxonomy: Tags
# ============================================================================

class Tag(Base):
    """Free classification tag. ``label`` is the label it was created with."""
    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    color_label: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["TagTranslation"]] = relationship(
        back_populates="tag", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("label", name="tags_label_key"),
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, label='{self.label}')>"


class TagTranslation(Base):
    """Localized label and synonyms of a tag."""
    __tablename__ = "tags_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tag_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    synonyms: Mapped[List[str]] = mapped_column(StringArray, nullable=False, default=list)

    tag: Mapped["Tag"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint("tag_id", "locale", name="tags_translations_tag_id_locale_key"),
        Index("idx_tags_translations_label", "label"),
    )

    def __repr__(self) -> str:
        return f"<TagTranslation(tag_id={self.tag_id}, locale='{self.locale}', label='{self.label}')>"


# ============================================================================
# Taxonomy: Themes
# ============================================================================

class Theme(Base):
    """Theme grouping tests across domains. The slug is shared by all locales."""
    __tablename__ = "themes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["ThemeTranslation"]] = relationship(
        back_populates="theme", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("slug", name="themes_slug_key"),
    )

    def __repr__(self) -> str:
        return f"<Theme(id={self.id}, slug='{self.slug}')>"


class ThemeTranslation(Base):
    """Localized label, description and synonyms of a theme."""
    __tablename__ = "theme_translations"

    theme_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("themes.id", ondelete="CASCADE"), primary_key=True)
    locale: Mapped[str] = mapped_column(String(10), primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    synonyms: Mapped[List[str]] = mapped_column(StringArray, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    theme: Mapped["Theme"] = relationship(back_populates="translations")

    __table_args__ = (
        Index("idx_theme_translations_label", "label"),
    )

    def __repr__(self) -> str:
        return f"<ThemeTranslation(theme_id={self.theme_id}, locale='{self.locale}', label='{self.label}')>"


class ThemeDomain(Base):
    """Many-to-many junction table for themes and domains."""
    __tablename__ = "theme_domains"

    theme_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("themes.id", ondelete="CASCADE"), primary_key=True)
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("domains.id", ondelete="CASCADE"), primary_key=True)


# ============================================================================
# Taxonomy: Resource types, populations, clinical profiles
# ============================================================================

class ResourceType(Base):
    __tablename__ = "resource_types"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["ResourceTypeTranslation"]] = relationship(
        back_populates="resource_type", cascade="all, delete-orphan", passive_deletes=True
    )


class ResourceTypeTranslation(Base):
    __tablename__ = "resource_type_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    resource_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resource_types.id", ondelete="CASCADE"), nullable=False
    )
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)

    resource_type: Mapped["ResourceType"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint(
            "resource_type_id", "locale", name="resource_type_translations_resource_type_id_locale_key"
        ),
    )


class Population(Base):
    """Target population of a test (e.g. preschool children)."""
    __tablename__ = "population"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["PopulationTranslation"]] = relationship(
        back_populates="population", cascade="all, delete-orphan", passive_deletes=True
    )


class PopulationTranslation(Base):
    """Localized population label and its list of characteristics."""
    __tablename__ = "population_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    population_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("population.id", ondelete="CASCADE"), nullable=False
    )
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    population_characteristic: Mapped[List[str]] = mapped_column(StringArray, nullable=False, default=list)

    population: Mapped["Population"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint("population_id", "locale", name="population_translations_population_id_locale_key"),
    )


class ClinicalProfile(Base):
    __tablename__ = "clinical_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    translations: Mapped[List["ClinicalProfileTranslation"]] = relationship(
        back_populates="clinical_profile", cascade="all, delete-orphan", passive_deletes=True
    )


class ClinicalProfileTranslation(Base):
    __tablename__ = "clinical_profile_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    clinical_profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinical_profiles.id", ondelete="CASCADE"), nullable=False
    )
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)

    clinical_profile: Mapped["ClinicalProfile"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint(
            "clinical_profile_id", "locale", name="clinical_profile_translations_profile_id_locale_key"
        ),
    )


# ============================================================================
# Tests (assessments)
# ============================================================================

class Test(Base):
    """Assessment instrument. Localized fields live in ``TestTranslation``."""
    __tablename__ = "tests"
    # keep pytest from collecting the model
    __test__ = False

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    target_audience: Mapped[TargetAudience] = mapped_column(
        Enum(TargetAudience, name="target_audience", values_callable=_enum_values),
        nullable=False,
        default=TargetAudience.child,
    )
    population_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("population.id", ondelete="SET NULL")
    )
    age_min_months: Mapped[Optional[int]] = mapped_column(Integer)
    age_max_months: Mapped[Optional[int]] = mapped_column(Integer)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    is_standardized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    buy_link: Mapped[Optional[str]] = mapped_column(Text)
    bibliography: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    status: Mapped[ValidationStatus] = mapped_column(
        Enum(ValidationStatus, name="validation_status", values_callable=_enum_values),
        nullable=False,
        default=ValidationStatus.draft,
    )
    # maintained by a database trigger on PostgreSQL; unused elsewhere
    fts_vector: Mapped[Optional[str]] = mapped_column(SearchVector)

    # Audit fields (user ids come from the identity provider)
    validated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    translations: Mapped[List["TestTranslation"]] = relationship(
        back_populates="test", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_tests_status", "status"),
        Index("idx_tests_population", "population_id"),
    )

    def __repr__(self) -> str:
        return f"<Test(id={self.id}, status='{self.status}')>"


class TestTranslation(Base):
    """Localized name, slug and descriptive fields of a test."""
    __tablename__ = "tests_translations"
    __test__ = False

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    short_description: Mapped[Optional[str]] = mapped_column(Text)
    objective: Mapped[Optional[str]] = mapped_column(Text)
    materials: Mapped[Optional[str]] = mapped_column(Text)
    publisher: Mapped[Optional[str]] = mapped_column(Text)
    price_range: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    test: Mapped["Test"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint("test_id", "locale", name="tests_translations_test_id_locale_key"),
        UniqueConstraint("slug", "locale", name="tests_translations_slug_locale_key"),
    )

    def __repr__(self) -> str:
        return f"<TestTranslation(test_id={self.test_id}, locale='{self.locale}', name='{self.name}')>"


class TestDomain(Base):
    __tablename__ = "test_domains"
    __test__ = False

    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id", ondelete="CASCADE"), primary_key=True)
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("domains.id", ondelete="CASCADE"), primary_key=True)


class TestTag(Base):
    __tablename__ = "test_tags"
    __test__ = False

    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class TestTheme(Base):
    __tablename__ = "test_themes"
    __test__ = False

    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id", ondelete="CASCADE"), primary_key=True)
    theme_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("themes.id", ondelete="CASCADE"), primary_key=True)


class TestClinicalProfile(Base):
    __tablename__ = "test_clinical_profiles"
    __test__ = False

    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id", ondelete="CASCADE"), primary_key=True)
    clinical_profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clinical_profiles.id", ondelete="CASCADE"), primary_key=True
    )


class PatientAssessmentTest(Base):
    """Usage of a test in a patient assessment. Referenced tests are never hard-deleted."""
    __tablename__ = "patient_assessments_tests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    test_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tests.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_patient_assessments_tests_test", "test_id"),
    )


# ============================================================================
# Resources
# ============================================================================

class Resource(Base):
    """Documentation resource (article, video, worksheet...)."""
    __tablename__ = "resources"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    resource_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("resource_types.id", ondelete="SET NULL")
    )
    url: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[ValidationStatus] = mapped_column(
        Enum(ValidationStatus, name="validation_status", values_callable=_enum_values),
        nullable=False,
        default=ValidationStatus.draft,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    translations: Mapped[List["ResourceTranslation"]] = relationship(
        back_populates="resource", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, url='{self.url}')>"


class ResourceTranslation(Base):
    __tablename__ = "resources_translations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False
    )
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    resource: Mapped["Resource"] = relationship(back_populates="translations")

    __table_args__ = (
        UniqueConstraint("resource_id", "locale", name="resources_translations_resource_locale_key"),
    )


class ResourceDomain(Base):
    __tablename__ = "resource_domains"

    resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True
    )
    domain_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("domains.id", ondelete="CASCADE"), primary_key=True)


class ResourceTag(Base):
    __tablename__ = "resource_tags"

    resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class ResourceTheme(Base):
    __tablename__ = "resource_themes"

    resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True
    )
    theme_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("themes.id", ondelete="CASCADE"), primary_key=True)


# ============================================================================
# Exports
# ============================================================================

__all__ = [
    "Base",
    "ValidationStatus",
    "TargetAudience",
    # Taxonomy
    "Domain",
    "DomainTranslation",
    "Tag",
    "TagTranslation",
    "Theme",
    "ThemeTranslation",
    "ThemeDomain",
    "ResourceType",
    "ResourceTypeTranslation",
    "Population",
    "PopulationTranslation",
    "ClinicalProfile",
    "ClinicalProfileTranslation",
    # Tests
    "Test",
    "TestTranslation",
    "TestDomain",
    "TestTag",
    "TestTheme",
    "TestClinicalProfile",
    "PatientAssessmentTest",
    # Resources
    "Resource",
    "ResourceTranslation",
    "ResourceDomain",
    "ResourceTag",
    "ResourceTheme",
]
