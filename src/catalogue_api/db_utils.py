"""
Database utilities for schema creation, seeding and verification.

Uses async/await with asyncpg for PostgreSQL (aiosqlite for local SQLite files).
"""

from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    Base,
    ClinicalProfile,
    Domain,
    Population,
    Resource,
    ResourceType,
    Tag,
    Test,
    Theme,
)

if TYPE_CHECKING:
    from .db import Database


def _convert_to_async_url(database_url: str) -> str:
    """Convert a plain database URL to its async driver form (asyncpg / aiosqlite)."""
    if database_url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return database_url
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    raise ValueError(f"Unsupported database URL scheme: {database_url}")


async def create_schema(database: "Database", drop_existing: bool = False) -> None:
    """
    Create all database tables from SQLAlchemy models.

    Args:
        database: Database handle
        drop_existing: If True, drop all existing tables first
    """
    async with database.engine.begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


# (locale -> label) pairs; the default locale creates the entity
SEED_RESOURCE_TYPES: List[Dict[str, str]] = [
    {"fr": "Article", "en": "Article"},
    {"fr": "Vidéo", "en": "Video"},
    {"fr": "Fiche pratique", "en": "Practical sheet"},
]

SEED_CLINICAL_PROFILES: List[Dict[str, str]] = [
    {"fr": "Trouble du spectre de l'autisme", "en": "Autism spectrum disorder"},
    {"fr": "Trouble développemental du langage", "en": "Developmental language disorder"},
]

SEED_POPULATIONS: List[Dict[str, str]] = [
    {"fr": "Enfants", "en": "Children"},
    {"fr": "Adolescents", "en": "Teenagers"},
    {"fr": "Adultes", "en": "Adults"},
    {"fr": "Personnes âgées", "en": "Older adults"},
]


async def _seed_kind(session, kind, entries: List[Dict[str, str]], locales: List[str]) -> int:
    from .taxonomy import upsert_term

    created = 0
    for entry in entries:
        ref = None
        for locale in locales:
            label = entry.get(locale)
            if not label:
                continue
            if ref is None:
                ref = await upsert_term(session, kind, label, locale)
                created += 1
            else:
                await upsert_term(session, kind, label, locale, entity_id=ref.id)
    return created


async def seed_initial_data(
    database: "Database",
    locales: List[str],
    default_locale: Optional[str] = None,
) -> Dict[str, int]:
    """
    Seed the database with initial reference data.

    Only empty tables are seeded, so running this twice is harmless.

    Args:
        database: Database handle
        locales: Supported locales
        default_locale: Locale whose label creates each entity; defaults to
            the first of ``locales``

    Returns:
        Number of entities created per kind
    """
    from .kinds import CLINICAL_PROFILE, POPULATION, RESOURCE_TYPE

    if default_locale in locales:
        locales = [default_locale] + [locale for locale in locales if locale != default_locale]

    seeded = {}
    async with database.transaction() as session:
        # 1. Resource types
        result = await session.execute(select(ResourceType.id).limit(1))
        if not result.first():
            seeded["resource_types"] = await _seed_kind(session, RESOURCE_TYPE, SEED_RESOURCE_TYPES, locales)

        # 2. Clinical profiles
        result = await session.execute(select(ClinicalProfile.id).limit(1))
        if not result.first():
            seeded["clinical_profiles"] = await _seed_kind(session, CLINICAL_PROFILE, SEED_CLINICAL_PROFILES, locales)

        # 3. Populations
        result = await session.execute(select(Population.id).limit(1))
        if not result.first():
            seeded["population"] = await _seed_kind(session, POPULATION, SEED_POPULATIONS, locales)

    if seeded:
        logger.info(f"Seeded reference data: {seeded}")
    return seeded


STATS_TABLES: List[Tuple[str, type]] = [
    ("domains", Domain),
    ("tags", Tag),
    ("themes", Theme),
    ("resource_types", ResourceType),
    ("population", Population),
    ("clinical_profiles", ClinicalProfile),
    ("tests", Test),
    ("resources", Resource),
]


async def get_database_stats(database: "Database") -> Dict[str, int]:
    """
    Get statistics about the database contents.

    Returns:
        Dictionary with table counts
    """
    stats = {}
    async with database.session() as session:
        for table, model in STATS_TABLES:
            result = await session.execute(select(func.count()).select_from(model))
            stats[table] = result.scalar() or 0
    return stats


async def verify_schema(database: "Database") -> bool:
    """
    Verify that the database schema matches the models.

    Returns:
        True if every mapped table can be queried, False otherwise
    """
    try:
        async with database.session() as session:
            for mapper in Base.registry.mappers:
                await session.execute(select(mapper.class_).limit(1))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Schema verification failed: {e}")
        return False
