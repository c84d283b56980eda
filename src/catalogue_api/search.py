"""
Public read surface: search hub, theme lookup and catalogue navigation.

Only published tests and resources are visible here. Matching is a plain
case-insensitive substring filter; on PostgreSQL, tests also match through
their full-text vector.
"""
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .kinds import DOMAIN, RESOURCE_TYPE, THEME
from .locales import DEFAULT_LOCALE
from .metadata import attach_metadata, localized_labels, localized_translations
from .models import (
    DomainTranslation,
    Resource,
    ResourceTranslation,
    ResourceTypeTranslation,
    TagTranslation,
    Test,
    TestDomain,
    TestTheme,
    TestTranslation,
    Theme,
    ThemeTranslation,
    ValidationStatus,
)

SEARCH_GROUPS = ("assessments", "selfReports", "resources")


def _like(query: str) -> str:
    return f"%{query}%"


async def _search_tests(
    session: AsyncSession, query: Optional[str], locale: str, limit: int, offset: int
) -> List[Dict[str, Any]]:
    conditions = [TestTranslation.locale == locale, Test.status == ValidationStatus.published]
    if query:
        matches = [
            TestTranslation.name.ilike(_like(query)),
            TestTranslation.short_description.ilike(_like(query)),
        ]
        if session.bind.dialect.name == "postgresql":
            matches.append(Test.fts_vector.op("@@")(func.plainto_tsquery("french", query)))
        conditions.append(or_(*matches))

    result = await session.execute(
        select(
            Test.id,
            TestTranslation.name,
            TestTranslation.slug,
            TestTranslation.short_description,
            TestTranslation.objective,
            TestTranslation.materials,
            Test.duration_minutes,
            Test.is_standardized,
        )
        .join(TestTranslation, TestTranslation.test_id == Test.id)
        .where(*conditions)
        .order_by(TestTranslation.name)
        .limit(limit)
        .offset(offset)
    )
    return [
        {
            "id": row.id,
            "kind": "test",
            "category": "assessments" if row.is_standardized else "selfReports",
            "title": row.name,
            "description": row.short_description,
            "slug": row.slug,
            "objective": row.objective,
            "materials": row.materials,
            "duration_minutes": row.duration_minutes,
            "is_standardized": bool(row.is_standardized),
        }
        for row in result
    ]


async def _search_resources(
    session: AsyncSession, query: Optional[str], locale: str, default_locale: str, limit: int, offset: int
) -> List[Dict[str, Any]]:
    conditions = [ResourceTranslation.locale == locale, Resource.status == ValidationStatus.published]
    if query:
        typed = select(ResourceTypeTranslation.resource_type_id).where(
            ResourceTypeTranslation.label.ilike(_like(query))
        )
        conditions.append(
            or_(
                ResourceTranslation.title.ilike(_like(query)),
                ResourceTranslation.description.ilike(_like(query)),
                Resource.resource_type_id.in_(typed),
            )
        )

    result = await session.execute(
        select(
            Resource.id,
            Resource.url,
            Resource.resource_type_id,
            ResourceTranslation.title,
            ResourceTranslation.description,
        )
        .join(ResourceTranslation, ResourceTranslation.resource_id == Resource.id)
        .where(*conditions)
        .order_by(ResourceTranslation.title)
        .limit(limit)
        .offset(offset)
    )
    rows = result.all()
    types = await localized_labels(
        session, RESOURCE_TYPE, {row.resource_type_id for row in rows if row.resource_type_id}, locale, default_locale
    )
    return [
        {
            "id": row.id,
            "kind": "resource",
            "category": "resources",
            "title": row.title,
            "description": row.description,
            "resource_type": types.get(row.resource_type_id),
            "url": row.url,
        }
        for row in rows
    ]


async def search_hub(
    session: AsyncSession,
    query: Optional[str],
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
    limit: int = 20,
    page: int = 1,
) -> Dict[str, Any]:
    """
    Search published tests and resources.

    Tests are split into standardized ``assessments`` and ``selfReports``.
    The response also lists the locale's domain and tag labels for the
    search filters.

    Returns:
        ``{groups: [{category, results}], domains, tags}``
    """
    query = query.strip() if query else None
    offset = (page - 1) * limit

    tests = await _search_tests(session, query, locale, limit, offset)
    tests = await attach_metadata(session, "test", tests, locale, default_locale)
    resources = await _search_resources(session, query, locale, default_locale, limit, offset)
    resources = await attach_metadata(session, "resource", resources, locale, default_locale)

    results = tests + resources
    groups = [
        {"category": category, "results": [item for item in results if item["category"] == category]}
        for category in SEARCH_GROUPS
    ]

    domains = await session.execute(
        select(DomainTranslation.label).where(DomainTranslation.locale == locale).order_by(DomainTranslation.label)
    )
    tags = await session.execute(
        select(TagTranslation.label).where(TagTranslation.locale == locale).order_by(TagTranslation.label)
    )
    return {"groups": groups, "domains": list(domains.scalars()), "tags": list(tags.scalars())}


async def _themes_for_locale(session: AsyncSession, q: Optional[str], locale: str, limit: int) -> List[Dict[str, Any]]:
    conditions = [ThemeTranslation.locale == locale]
    if q:
        conditions.append(or_(ThemeTranslation.label.ilike(_like(q)), ThemeTranslation.description.ilike(_like(q))))
    result = await session.execute(
        select(
            Theme.id,
            Theme.slug,
            ThemeTranslation.label,
            ThemeTranslation.description,
            ThemeTranslation.synonyms,
        )
        .join(ThemeTranslation, ThemeTranslation.theme_id == Theme.id)
        .where(*conditions)
        .order_by(ThemeTranslation.label)
        .limit(limit)
    )
    return [
        {
            "id": row.id,
            "slug": row.slug,
            "label": row.label,
            "description": row.description,
            "synonyms": list(row.synonyms or []),
        }
        for row in result
    ]


async def search_themes(
    session: AsyncSession,
    q: Optional[str],
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
    limit: int = 20,
) -> List[Dict[str, Any]]:
    """Themes matching ``q`` in ``locale``; the default locale is searched when that finds nothing."""
    q = q.strip() if q else None
    items = await _themes_for_locale(session, q, locale, limit)
    if not items and locale != default_locale:
        items = await _themes_for_locale(session, q, default_locale, limit)
    return items


async def get_catalogue_taxonomy(
    session: AsyncSession,
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
) -> List[Dict[str, Any]]:
    """
    Navigation tree: domains used by published tests, each with the themes
    those same tests carry. Both levels are sorted by label.
    """
    published = select(Test.id).where(Test.status == ValidationStatus.published)

    result = await session.execute(
        select(TestDomain.test_id, TestDomain.domain_id).where(TestDomain.test_id.in_(published))
    )
    test_domains = result.all()
    if not test_domains:
        return []

    result = await session.execute(
        select(TestTheme.test_id, TestTheme.theme_id).where(TestTheme.test_id.in_(published))
    )
    themes_by_test: Dict[uuid.UUID, List[uuid.UUID]] = {}
    for test_id, theme_id in result.all():
        themes_by_test.setdefault(test_id, []).append(theme_id)

    domain_ids = {domain_id for _, domain_id in test_domains}
    theme_ids = {theme_id for ids in themes_by_test.values() for theme_id in ids}

    domain_rows = await localized_translations(session, DOMAIN, locale, default_locale, ids=domain_ids)
    theme_labels = await localized_labels(session, THEME, theme_ids, locale, default_locale)
    theme_slugs: Dict[uuid.UUID, str] = {}
    if theme_ids:
        result = await session.execute(select(Theme.id, Theme.slug).where(Theme.id.in_(theme_ids)))
        theme_slugs = dict(result.all())

    themes_by_domain: Dict[uuid.UUID, Dict[uuid.UUID, Dict[str, Any]]] = {}
    for test_id, domain_id in test_domains:
        for theme_id in themes_by_test.get(test_id, []):
            label = theme_labels.get(theme_id)
            slug = theme_slugs.get(theme_id)
            if label and slug:
                themes_by_domain.setdefault(domain_id, {})[theme_id] = {"id": theme_id, "label": label, "slug": slug}

    domains = []
    for domain_id in domain_ids:
        row = domain_rows.get(domain_id)
        if row is None:
            continue
        themes = sorted(themes_by_domain.get(domain_id, {}).values(), key=lambda item: item["label"].lower())
        domains.append({"id": domain_id, "label": row.label, "slug": row.slug, "themes": themes})
    return sorted(domains, key=lambda item: item["label"].lower())
