"""
Taxonomy upsert, update, deletion and listing.

A taxonomy entity (domain, tag, theme, resource type, population, clinical
profile) is created implicitly the first time one of its labels is
submitted, and reaped when its last translation is deleted. Labels are
matched across all locales: two entities of one kind never share a label,
even in different languages.

None of these functions commit. Callers run them inside one
``session.begin()`` block so a failing step rolls back every write.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import DuplicateLabel, NotFound
from .kinds import (
    DOMAIN,
    RESOURCE_TYPE,
    SLUG_ON_ENTITY,
    SLUG_ON_TRANSLATION,
    TAG,
    THEME,
    RelationSpec,
    TaxonomyKind,
)
from .labels import normalize_label, normalize_list
from .locales import DEFAULT_LOCALE
from .metadata import localized_labels, localized_translations
from .models import Domain, Tag, Theme, ThemeDomain
from .slug import generate_unique_slug


@dataclass
class TermRef:
    """Identity of a written term: parent id and the label as stored."""
    id: uuid.UUID
    label: str


@dataclass
class DeletedTerm:
    id: uuid.UUID
    label: str
    # True when the parent entity went away with its last translation
    reaped: bool


def dialect_insert(session: AsyncSession, model):
    """``INSERT`` construct supporting ``ON CONFLICT`` for the session's backend."""
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# ============================================================================
# Internal helpers
# ============================================================================

async def _find_entity_by_label(session: AsyncSession, kind: TaxonomyKind, label: str) -> Optional[uuid.UUID]:
    # any locale on purpose: labels are unique per kind across languages
    result = await session.execute(
        select(kind.fk_column).where(kind.translation.label == label).limit(1)
    )
    return result.scalar()


async def _create_entity(
    session: AsyncSession,
    kind: TaxonomyKind,
    label: str,
    color: Optional[str],
    reserved: Set[str],
) -> uuid.UUID:
    if kind is TAG:
        entity = Tag(label=label, color_label=color)
    elif kind.slug == SLUG_ON_ENTITY:
        slug = await generate_unique_slug(session, label, kind.entity.slug, reserved=reserved)
        entity = kind.entity(slug=slug)
    else:
        entity = kind.entity()
    session.add(entity)
    await session.flush()
    return entity.id


async def _translation_slug(
    session: AsyncSession,
    kind: TaxonomyKind,
    entity_id: uuid.UUID,
    label: str,
    locale: str,
    reserved: Set[str],
) -> str:
    # the entity's own row is excluded so re-submitting a label keeps its slug
    return await generate_unique_slug(
        session,
        label,
        kind.translation.slug,
        id_column=kind.fk_column,
        exclude_id=entity_id,
        locale_column=kind.translation.locale,
        locale=locale,
        reserved=reserved,
    )


def _translation_fields(
    kind: TaxonomyKind,
    synonyms: Optional[List[str]],
    description: Optional[str],
    new_row: bool,
) -> Dict[str, Any]:
    # on an existing row, fields left as None keep their stored value
    fields: Dict[str, Any] = {}
    if kind.has_synonyms and (new_row or synonyms is not None):
        fields["synonyms"] = list(synonyms or [])
    if kind.has_description and (new_row or description is not None):
        fields["description"] = description
    return fields


async def _check_domain_ids(session: AsyncSession, domain_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
    domain_ids = list(dict.fromkeys(domain_ids))
    if not domain_ids:
        return domain_ids
    result = await session.execute(select(Domain.id).where(Domain.id.in_(domain_ids)))
    found = set(result.scalars())
    missing = [str(domain_id) for domain_id in domain_ids if domain_id not in found]
    if missing:
        raise NotFound(f"Unknown domain id(s): {', '.join(missing)}")
    return domain_ids


async def _replace_theme_domains(session: AsyncSession, theme_id: uuid.UUID, domain_ids: Iterable[uuid.UUID]) -> None:
    await session.execute(delete(ThemeDomain).where(ThemeDomain.theme_id == theme_id))
    rows = [{"theme_id": theme_id, "domain_id": domain_id} for domain_id in dict.fromkeys(domain_ids)]
    if rows:
        await session.execute(ThemeDomain.__table__.insert(), rows)


async def _apply_entity_extras(
    session: AsyncSession,
    kind: TaxonomyKind,
    entity_id: uuid.UUID,
    color: Optional[str],
    domain_ids: Optional[Iterable[uuid.UUID]],
) -> None:
    if kind.has_color and color is not None:
        await session.execute(update(Tag).where(Tag.id == entity_id).values(color_label=color))
    if kind is THEME and domain_ids is not None:
        await _replace_theme_domains(session, entity_id, domain_ids)


# ============================================================================
# Upsert / update
# ============================================================================

async def upsert_term(
    session: AsyncSession,
    kind: TaxonomyKind,
    label: str,
    locale: str,
    *,
    synonyms: Optional[List[str]] = None,
    description: Optional[str] = None,
    color: Optional[str] = None,
    domain_ids: Optional[Iterable[uuid.UUID]] = None,
    entity_id: Optional[uuid.UUID] = None,
    reserved: Optional[Set[str]] = None,
) -> TermRef:
    """
    Find or create the entity labelled ``label``, then write its translation.

    The translation for ``(entity, locale)`` is inserted, or overwritten when
    it already exists. Label and slug are always rewritten; synonyms and
    description only when given.

    Args:
        entity_id: Attach the translation to this entity instead of looking
            the label up (adding a second language to a known entity).
        reserved: Slugs already handed out in the current batch.

    Raises:
        InvalidLabel: ``label`` is empty after trimming
        NotFound: a theme's ``domain_ids`` names an unknown domain
        DuplicateLabel: a storage uniqueness constraint rejected the write
    """
    label = normalize_label(label)
    if reserved is None:
        reserved = set()
    if kind is THEME and domain_ids is not None:
        domain_ids = await _check_domain_ids(session, domain_ids)

    try:
        if entity_id is None:
            entity_id = await _find_entity_by_label(session, kind, label)
        if entity_id is None:
            entity_id = await _create_entity(session, kind, label, color, reserved)
            logger.info(f"Created {kind} '{label}' ({entity_id})")

        changes: Dict[str, Any] = {"label": label}
        if kind.slug == SLUG_ON_TRANSLATION:
            changes["slug"] = await _translation_slug(session, kind, entity_id, label, locale, reserved)
        changes.update(_translation_fields(kind, synonyms, description, new_row=False))

        values = {kind.entity_fk: entity_id, "locale": locale}
        values.update(changes)
        values.update(_translation_fields(kind, synonyms, description, new_row=True))

        stmt = dialect_insert(session, kind.translation).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=[kind.entity_fk, "locale"], set_=changes)
        await session.execute(stmt)
    except IntegrityError as e:
        logger.warning(f"Rejected {kind} '{label}': {e.orig}")
        raise DuplicateLabel(label, kind.name) from e

    await _apply_entity_extras(session, kind, entity_id, color, domain_ids)
    return TermRef(id=entity_id, label=label)


async def upsert_terms(
    session: AsyncSession,
    kind: TaxonomyKind,
    labels: Iterable[str],
    locale: str,
) -> List[TermRef]:
    """Upsert a batch of labels, deduplicated, sharing one reserved slug set."""
    reserved: Set[str] = set()
    refs = []
    for label in normalize_list(labels):
        refs.append(await upsert_term(session, kind, label, locale, reserved=reserved))
    return refs


async def update_term(
    session: AsyncSession,
    kind: TaxonomyKind,
    entity_id: uuid.UUID,
    locale: str,
    label: str,
    *,
    synonyms: Optional[List[str]] = None,
    description: Optional[str] = None,
    color: Optional[str] = None,
    domain_ids: Optional[Iterable[uuid.UUID]] = None,
) -> TermRef:
    """
    Rewrite the existing translation of ``entity_id`` in ``locale``.

    Domain slugs are regenerated from the new label; the entity's own
    current slug does not count as taken.

    Raises:
        NotFound: the entity has no translation in ``locale``, or a theme's
            ``domain_ids`` names an unknown domain
        DuplicateLabel: a storage uniqueness constraint rejected the write
    """
    label = normalize_label(label)

    conditions = (kind.fk_column == entity_id, kind.translation.locale == locale)
    result = await session.execute(select(func.count()).select_from(kind.translation).where(*conditions))
    if not result.scalar():
        raise NotFound(f"No {kind} translation for locale '{locale}'.")
    if kind is THEME and domain_ids is not None:
        domain_ids = await _check_domain_ids(session, domain_ids)

    values: Dict[str, Any] = {"label": label}
    values.update(_translation_fields(kind, synonyms, description, new_row=False))

    try:
        if kind.slug == SLUG_ON_TRANSLATION:
            values["slug"] = await _translation_slug(session, kind, entity_id, label, locale, set())
        await session.execute(update(kind.translation).where(*conditions).values(**values))
    except IntegrityError as e:
        logger.warning(f"Rejected {kind} '{label}': {e.orig}")
        raise DuplicateLabel(label, kind.name) from e

    await _apply_entity_extras(session, kind, entity_id, color, domain_ids)
    logger.info(f"Updated {kind} {entity_id} [{locale}] -> '{label}'")
    return TermRef(id=entity_id, label=label)


async def replace_relations(
    session: AsyncSession,
    relation: RelationSpec,
    subject_id: uuid.UUID,
    object_ids: Iterable[uuid.UUID],
) -> None:
    """Replace every link of ``subject_id`` in one junction table (delete, then insert)."""
    await session.execute(delete(relation.model).where(relation.subject_column == subject_id))
    rows = [
        {relation.subject_fk: subject_id, relation.object_fk: object_id}
        for object_id in dict.fromkeys(object_ids)
    ]
    if rows:
        await session.execute(relation.model.__table__.insert(), rows)


# ============================================================================
# Deletion & orphan reaping
# ============================================================================

async def delete_translation(
    session: AsyncSession,
    kind: TaxonomyKind,
    locale: str,
    *,
    entity_id: Optional[uuid.UUID] = None,
    label: Optional[str] = None,
    default_locale: str = DEFAULT_LOCALE,
) -> DeletedTerm:
    """
    Delete one translation, then the parent entity if it has none left.

    The entity is given by id, or by its label in ``locale``. Removing the
    parent cascades to every relation row pointing at it.

    Raises:
        NotFound: there is no translation to delete for ``locale``
    """
    if entity_id is None:
        label = normalize_label(label)
        result = await session.execute(
            select(kind.fk_column)
            .where(kind.translation.label == label, kind.translation.locale == locale)
            .limit(1)
        )
        entity_id = result.scalar()
        if entity_id is None:
            raise NotFound(f"No {kind} labelled '{label}' for locale '{locale}'.")

    # read before delete: the response reports the label being removed
    labels = await localized_labels(session, kind, [entity_id], locale, default_locale)

    result = await session.execute(
        delete(kind.translation).where(kind.fk_column == entity_id, kind.translation.locale == locale)
    )
    if not result.rowcount:
        raise NotFound(f"No {kind} translation for locale '{locale}'.")

    result = await session.execute(
        select(func.count()).select_from(kind.translation).where(kind.fk_column == entity_id)
    )
    reaped = not result.scalar()
    if reaped:
        await session.execute(delete(kind.entity).where(kind.entity.id == entity_id))

    deleted_label = labels.get(entity_id, label or "")
    logger.info(f"Deleted {kind} '{deleted_label}' [{locale}] ({entity_id}), reaped={reaped}")
    return DeletedTerm(id=entity_id, label=deleted_label, reaped=reaped)


# ============================================================================
# Listing
# ============================================================================

async def list_taxonomy(
    session: AsyncSession,
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Localized read model of the editable taxonomy kinds.

    Returns:
        ``{domains, tags, themes, resourceTypes}``, each sorted by label.
        Themes carry the ids and labels of their domains.
    """
    domain_rows = await localized_translations(session, DOMAIN, locale, default_locale)
    domains = [
        {"id": entity_id, "label": row.label, "slug": row.slug, "synonyms": list(row.synonyms or [])}
        for entity_id, row in domain_rows.items()
    ]
    domain_labels = {entity_id: row.label for entity_id, row in domain_rows.items()}

    tag_rows = await localized_translations(session, TAG, locale, default_locale)
    result = await session.execute(select(Tag.id, Tag.color_label))
    colors = dict(result.all())
    tags = [
        {
            "id": entity_id,
            "label": row.label,
            "synonyms": list(row.synonyms or []),
            "color": colors.get(entity_id),
        }
        for entity_id, row in tag_rows.items()
    ]

    theme_rows = await localized_translations(session, THEME, locale, default_locale)
    result = await session.execute(select(Theme.id, Theme.slug))
    theme_slugs = dict(result.all())
    result = await session.execute(select(ThemeDomain.theme_id, ThemeDomain.domain_id))
    theme_domains: Dict[uuid.UUID, List[uuid.UUID]] = {}
    for theme_id, domain_id in result.all():
        theme_domains.setdefault(theme_id, []).append(domain_id)
    themes = []
    for entity_id, row in theme_rows.items():
        linked = [d for d in theme_domains.get(entity_id, []) if d in domain_labels]
        themes.append({
            "id": entity_id,
            "label": row.label,
            "slug": theme_slugs.get(entity_id),
            "description": row.description,
            "synonyms": list(row.synonyms or []),
            "domains": sorted(
                ({"id": d, "label": domain_labels[d]} for d in linked), key=lambda item: item["label"]
            ),
        })

    resource_type_rows = await localized_translations(session, RESOURCE_TYPE, locale, default_locale)
    resource_types = [{"id": entity_id, "label": row.label} for entity_id, row in resource_type_rows.items()]

    def by_label(items):
        return sorted(items, key=lambda item: item["label"].lower())

    return {
        "domains": by_label(domains),
        "tags": by_label(tags),
        "themes": by_label(themes),
        "resourceTypes": by_label(resource_types),
    }
