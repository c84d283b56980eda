"""
Assessment (test) writes and reads.

A write takes the admin form as submitted: localized fields for one locale,
and taxonomy relations as labels. Missing domains, tags, themes and clinical
profiles are created on the way; every relation table of the test is then
replaced as a whole.
"""
import uuid
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFound
from .kinds import CLINICAL_PROFILE, DOMAIN, POPULATION, RELATIONS, TAG, THEME
from .labels import normalize_label
from .locales import DEFAULT_LOCALE, fallback_chain
from .metadata import attach_metadata, localized_labels
from .models import Test, TestTranslation, ValidationStatus
from .resolver import resolve_ids
from .schemas import TestDTO, TestInput, TestUpdateInput
from .slug import generate_unique_slug
from .taxonomy import dialect_insert, replace_relations, upsert_terms

# form field -> taxonomy kind, in write order
TEST_TAXONOMY_FIELDS = (
    ("domains", DOMAIN),
    ("tags", TAG),
    ("themes", THEME),
    ("clinical_profiles", CLINICAL_PROFILE),
)

TRANSLATED_FIELDS = ("short_description", "objective", "materials", "publisher", "price_range", "notes")


def _scalar_fields(payload: TestInput, population_id: Optional[uuid.UUID]) -> Dict[str, Any]:
    return {
        "target_audience": payload.target_audience,
        "status": payload.status,
        "population_id": population_id,
        "age_min_months": payload.age_min_months,
        "age_max_months": payload.age_max_months,
        "duration_minutes": payload.duration_minutes,
        "is_standardized": payload.is_standardized,
        "buy_link": payload.buy_link,
        "bibliography": [entry.model_dump() for entry in payload.bibliography],
    }


async def _resolve_population(
    session: AsyncSession, payload: TestInput, locale: str, default_locale: str
) -> Optional[uuid.UUID]:
    if not payload.population or not payload.population.strip():
        return None
    ids = await resolve_ids(session, POPULATION, [payload.population], locale, default_locale)
    return ids[0]


async def _upsert_translation(
    session: AsyncSession, test_id: uuid.UUID, locale: str, name: str, payload: TestInput
) -> str:
    slug = await generate_unique_slug(
        session,
        name,
        TestTranslation.slug,
        id_column=TestTranslation.test_id,
        exclude_id=test_id,
        locale_column=TestTranslation.locale,
        locale=locale,
    )
    changes = {"name": name, "slug": slug}
    changes.update({field: getattr(payload, field) for field in TRANSLATED_FIELDS})

    stmt = dialect_insert(session, TestTranslation).values(test_id=test_id, locale=locale, **changes)
    stmt = stmt.on_conflict_do_update(index_elements=["test_id", "locale"], set_=changes)
    await session.execute(stmt)
    return slug


async def _write_taxonomy(
    session: AsyncSession, test_id: uuid.UUID, payload: TestInput, locale: str, default_locale: str
) -> None:
    relations = RELATIONS["test"]
    for field, kind in TEST_TAXONOMY_FIELDS:
        labels = getattr(payload, field)
        await upsert_terms(session, kind, labels, locale)
        ids = await resolve_ids(session, kind, labels, locale, default_locale)
        await replace_relations(session, relations[field], test_id, ids)


async def create_test(
    session: AsyncSession,
    payload: TestInput,
    *,
    default_locale: str = DEFAULT_LOCALE,
    created_by: Optional[uuid.UUID] = None,
) -> uuid.UUID:
    """
    Create a test with its translation for ``payload.locale`` and its relations.

    Returns:
        The new test id
    """
    locale = payload.locale or default_locale
    name = normalize_label(payload.name, "Test name must not be empty.")
    population_id = await _resolve_population(session, payload, locale, default_locale)

    test = Test(created_by=created_by, **_scalar_fields(payload, population_id))
    session.add(test)
    await session.flush()

    slug = await _upsert_translation(session, test.id, locale, name, payload)
    await _write_taxonomy(session, test.id, payload, locale, default_locale)

    logger.info(f"Created test '{name}' ({test.id}) [{locale}] slug={slug}")
    return test.id


async def update_test_admin_fields(
    session: AsyncSession,
    payload: TestUpdateInput,
    *,
    default_locale: str = DEFAULT_LOCALE,
) -> uuid.UUID:
    """
    Overwrite a test's fields, its translation for ``payload.locale`` and
    all its taxonomy relations.

    Raises:
        NotFound: no test has ``payload.id``
        UnresolvedLabel: the population label matches nothing
    """
    locale = payload.locale or default_locale
    name = normalize_label(payload.name, "Test name must not be empty.")

    result = await session.execute(select(func.count()).select_from(Test).where(Test.id == payload.id))
    if not result.scalar():
        raise NotFound(f"Test {payload.id} not found.")

    population_id = await _resolve_population(session, payload, locale, default_locale)
    await session.execute(
        update(Test).where(Test.id == payload.id).values(**_scalar_fields(payload, population_id))
    )

    await _upsert_translation(session, payload.id, locale, name, payload)
    await _write_taxonomy(session, payload.id, payload, locale, default_locale)

    logger.info(f"Updated test '{name}' ({payload.id}) [{locale}]")
    return payload.id


# ============================================================================
# Reads
# ============================================================================

TEST_COLUMNS = (
    Test.id,
    Test.target_audience,
    Test.status,
    Test.population_id,
    Test.age_min_months,
    Test.age_max_months,
    Test.duration_minutes,
    Test.is_standardized,
    Test.buy_link,
    Test.bibliography,
    Test.created_at,
    Test.updated_at,
)


async def _load_tests(
    session: AsyncSession,
    locale: str,
    default_locale: str,
    ids: Optional[Iterable[uuid.UUID]] = None,
    status: Optional[ValidationStatus] = None,
) -> List[TestDTO]:
    query = select(*TEST_COLUMNS)
    if ids is not None:
        query = query.where(Test.id.in_(list(ids)))
    if status is not None:
        query = query.where(Test.status == status)
    result = await session.execute(query)
    rows = result.all()
    if not rows:
        return []

    test_ids = [row.id for row in rows]
    chain = fallback_chain(locale, default_locale)
    result = await session.execute(
        select(TestTranslation.__table__).where(
            TestTranslation.test_id.in_(test_ids), TestTranslation.locale.in_(chain)
        )
    )
    translations: Dict[uuid.UUID, Any] = {}
    for row in result:
        current = translations.get(row.test_id)
        if current is None or chain.index(row.locale) < chain.index(current.locale):
            translations[row.test_id] = row

    populations = await localized_labels(
        session, POPULATION, {row.population_id for row in rows if row.population_id}, locale, default_locale
    )

    records = []
    for row in rows:
        translation = translations.get(row.id)
        record = dict(row._mapping)
        record["name"] = translation.name if translation else ""
        record["slug"] = translation.slug if translation else ""
        for field in TRANSLATED_FIELDS:
            record[field] = getattr(translation, field) if translation else None
        record["population"] = populations.get(row.population_id)
        record["bibliography"] = record["bibliography"] or []
        records.append(record)

    records = await attach_metadata(session, "test", records, locale, default_locale)
    dtos = [TestDTO.model_validate(record) for record in records]
    return sorted(dtos, key=lambda dto: dto.name.lower())


async def get_tests_with_metadata(
    session: AsyncSession,
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
    status: Optional[ValidationStatus] = None,
) -> List[TestDTO]:
    """All tests (optionally of one status) localized for ``locale``, sorted by name."""
    return await _load_tests(session, locale, default_locale, status=status)


async def get_test_with_metadata(
    session: AsyncSession,
    test_id: uuid.UUID,
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
) -> TestDTO:
    """
    One test localized for ``locale``.

    Raises:
        NotFound: no test has ``test_id``
    """
    tests = await _load_tests(session, locale, default_locale, ids=[test_id])
    if not tests:
        raise NotFound(f"Test {test_id} not found.")
    return tests[0]
