"""Resolution of submitted labels to taxonomy entity ids."""
import uuid
from typing import Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import UnresolvedLabel
from .kinds import TaxonomyKind
from .labels import normalize_list
from .locales import DEFAULT_LOCALE, fallback_chain


async def resolve_ids(
    session: AsyncSession,
    kind: TaxonomyKind,
    labels: Iterable[str],
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> List[uuid.UUID]:
    """
    Resolve labels to entity ids, in the order of the deduplicated input.

    A label matches a translation in ``locale`` or, failing that, in the
    default locale.

    Raises:
        UnresolvedLabel: at least one label matched nothing. No id is
            returned in that case, so callers never write a partial set.
    """
    labels = normalize_list(labels)
    if not labels:
        return []

    chain = fallback_chain(locale, default_locale)
    result = await session.execute(
        select(kind.fk_column, kind.translation.label, kind.translation.locale).where(
            kind.translation.label.in_(labels),
            kind.translation.locale.in_(chain),
        )
    )

    matches: Dict[str, tuple] = {}
    for entity_id, label, row_locale in result.all():
        rank = chain.index(row_locale)
        current = matches.get(label)
        if current is None or rank < current[0]:
            matches[label] = (rank, entity_id)

    missing = [label for label in labels if label not in matches]
    if missing:
        raise UnresolvedLabel(missing, kind.name)

    return [matches[label][1] for label in labels]
