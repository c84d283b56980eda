"""
Localized label lookups and metadata aggregation for tests and resources.

Every read applies the same fallback rule: the translation in the requested
locale wins, otherwise the default-locale translation is used, otherwise
the entity has no label and is skipped.
"""
import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .kinds import RELATIONS, TaxonomyKind
from .locales import DEFAULT_LOCALE, fallback_chain


async def localized_translations(
    session: AsyncSession,
    kind: TaxonomyKind,
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
    ids: Optional[Iterable[uuid.UUID]] = None,
) -> Dict[uuid.UUID, Any]:
    """
    Map entity id to its best translation row for ``locale``.

    Args:
        ids: Restrict to these entities. ``None`` reads every entity of the kind.

    Returns:
        Dictionary of entity id -> translation row (a Row with the
        translation table's columns)
    """
    chain = fallback_chain(locale, default_locale)
    query = select(kind.translation.__table__).where(kind.translation.locale.in_(chain))
    if ids is not None:
        ids = list(ids)
        if not ids:
            return {}
        query = query.where(kind.fk_column.in_(ids))

    result = await session.execute(query)

    best: Dict[uuid.UUID, Any] = {}
    for row in result:
        entity_id = getattr(row, kind.entity_fk)
        current = best.get(entity_id)
        if current is None or chain.index(row.locale) < chain.index(current.locale):
            best[entity_id] = row
    return best


async def localized_labels(
    session: AsyncSession,
    kind: TaxonomyKind,
    ids: Iterable[uuid.UUID],
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> Dict[uuid.UUID, str]:
    """Map each id to its label in ``locale``, else in the default locale."""
    rows = await localized_translations(session, kind, locale, default_locale, ids=ids)
    return {entity_id: row.label for entity_id, row in rows.items()}


async def attach_metadata(
    session: AsyncSession,
    subject: str,
    records: List[Dict[str, Any]],
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> List[Dict[str, Any]]:
    """
    Add the localized taxonomy labels related to each record.

    Args:
        subject: ``"test"`` or ``"resource"``
        records: Dictionaries carrying at least an ``id`` key

    Returns:
        New dictionaries with one sorted, deduplicated label list per
        related kind (``domains``, ``themes``, ``tags`` and, for tests,
        ``clinical_profiles``). A record without relations of a kind gets
        an empty list for it.
    """
    relations = RELATIONS[subject]
    record_ids = [record["id"] for record in records]

    enriched = [dict(record) for record in records]
    for record in enriched:
        for key in relations:
            record[key] = []
    if not record_ids:
        return enriched

    for key, relation in relations.items():
        result = await session.execute(
            select(relation.subject_column, relation.object_column).where(
                relation.subject_column.in_(record_ids)
            )
        )
        links = result.all()
        labels = await localized_labels(
            session, relation.kind, {object_id for _, object_id in links}, locale, default_locale
        )

        per_record: Dict[uuid.UUID, set] = {}
        for subject_id, object_id in links:
            label = labels.get(object_id)
            if label is not None:
                per_record.setdefault(subject_id, set()).add(label)

        for record in enriched:
            record[key] = sorted(per_record.get(record["id"], ()))

    return enriched
