"""Resource writes and reads.

Unlike tests, a resource form never creates taxonomy entries: its resource
type, domains, tags and themes must already exist.
"""
import uuid
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFound
from .kinds import DOMAIN, RELATIONS, RESOURCE_TYPE, TAG, THEME
from .labels import normalize_label
from .locales import DEFAULT_LOCALE, fallback_chain
from .metadata import attach_metadata, localized_labels
from .models import Resource, ResourceTranslation, ValidationStatus
from .resolver import resolve_ids
from .schemas import ResourceDTO, ResourceInput, ResourceUpdateInput
from .taxonomy import dialect_insert, replace_relations

RESOURCE_TAXONOMY_FIELDS = (
    ("domains", DOMAIN),
    ("tags", TAG),
    ("themes", THEME),
)


async def _resolve_type(
    session: AsyncSession, payload: ResourceInput, locale: str, default_locale: str
) -> Optional[uuid.UUID]:
    if not payload.resource_type or not payload.resource_type.strip():
        return None
    ids = await resolve_ids(session, RESOURCE_TYPE, [payload.resource_type], locale, default_locale)
    return ids[0]


async def _write_resource_details(
    session: AsyncSession,
    resource_id: uuid.UUID,
    payload: ResourceInput,
    title: str,
    locale: str,
    default_locale: str,
) -> None:
    # resolve everything before the first relation write
    resolved = {}
    for field, kind in RESOURCE_TAXONOMY_FIELDS:
        resolved[field] = await resolve_ids(session, kind, getattr(payload, field), locale, default_locale)

    changes = {"title": title, "description": payload.description}
    stmt = dialect_insert(session, ResourceTranslation).values(resource_id=resource_id, locale=locale, **changes)
    stmt = stmt.on_conflict_do_update(index_elements=["resource_id", "locale"], set_=changes)
    await session.execute(stmt)

    relations = RELATIONS["resource"]
    for field, ids in resolved.items():
        await replace_relations(session, relations[field], resource_id, ids)


async def create_resource(
    session: AsyncSession,
    payload: ResourceInput,
    *,
    default_locale: str = DEFAULT_LOCALE,
) -> uuid.UUID:
    """
    Create a resource with its translation and relations.

    Raises:
        InvalidLabel: the title is empty
        UnresolvedLabel: a resource type, domain, tag or theme label is unknown
    """
    locale = payload.locale or default_locale
    title = normalize_label(payload.title, "Resource title must not be empty.")
    resource_type_id = await _resolve_type(session, payload, locale, default_locale)

    resource = Resource(resource_type_id=resource_type_id, url=payload.url, status=payload.status)
    session.add(resource)
    await session.flush()

    await _write_resource_details(session, resource.id, payload, title, locale, default_locale)
    logger.info(f"Created resource '{title}' ({resource.id}) [{locale}]")
    return resource.id


async def update_resource(
    session: AsyncSession,
    payload: ResourceUpdateInput,
    *,
    default_locale: str = DEFAULT_LOCALE,
) -> uuid.UUID:
    """
    Overwrite a resource, its translation for ``payload.locale`` and its relations.

    Raises:
        NotFound: no resource has ``payload.id``
    """
    locale = payload.locale or default_locale
    title = normalize_label(payload.title, "Resource title must not be empty.")

    result = await session.execute(select(func.count()).select_from(Resource).where(Resource.id == payload.id))
    if not result.scalar():
        raise NotFound(f"Resource {payload.id} not found.")

    resource_type_id = await _resolve_type(session, payload, locale, default_locale)
    await session.execute(
        update(Resource)
        .where(Resource.id == payload.id)
        .values(resource_type_id=resource_type_id, url=payload.url, status=payload.status)
    )

    await _write_resource_details(session, payload.id, payload, title, locale, default_locale)
    logger.info(f"Updated resource '{title}' ({payload.id}) [{locale}]")
    return payload.id


async def get_resources_with_metadata(
    session: AsyncSession,
    locale: str,
    *,
    default_locale: str = DEFAULT_LOCALE,
    ids: Optional[Iterable[uuid.UUID]] = None,
    status: Optional[ValidationStatus] = None,
) -> List[ResourceDTO]:
    """Resources localized for ``locale`` (title falls back to the default locale), sorted by title."""
    query = select(
        Resource.id,
        Resource.resource_type_id,
        Resource.url,
        Resource.status,
        Resource.created_at,
        Resource.updated_at,
    )
    if ids is not None:
        query = query.where(Resource.id.in_(list(ids)))
    if status is not None:
        query = query.where(Resource.status == status)
    result = await session.execute(query)
    rows = result.all()
    if not rows:
        return []

    chain = fallback_chain(locale, default_locale)
    result = await session.execute(
        select(ResourceTranslation.resource_id, ResourceTranslation.locale, ResourceTranslation.title,
               ResourceTranslation.description).where(
            ResourceTranslation.resource_id.in_([row.id for row in rows]),
            ResourceTranslation.locale.in_(chain),
        )
    )
    translations: Dict[uuid.UUID, Any] = {}
    for row in result:
        current = translations.get(row.resource_id)
        if current is None or chain.index(row.locale) < chain.index(current.locale):
            translations[row.resource_id] = row

    types = await localized_labels(
        session, RESOURCE_TYPE, {row.resource_type_id for row in rows if row.resource_type_id}, locale, default_locale
    )

    records = []
    for row in rows:
        translation = translations.get(row.id)
        records.append({
            "id": row.id,
            "title": translation.title if translation else "",
            "description": translation.description if translation else None,
            "url": row.url,
            "status": row.status,
            "resource_type": types.get(row.resource_type_id),
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        })

    records = await attach_metadata(session, "resource", records, locale, default_locale)
    dtos = [ResourceDTO.model_validate(record) for record in records]
    return sorted(dtos, key=lambda dto: dto.title.lower())
