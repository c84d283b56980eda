"""URL slugs, unique per table (and per locale where the table is localized)."""
import re
import unicodedata
from typing import Any, Optional, Set

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

FALLBACK_SLUG = "item"


def slugify(value: str) -> str:
    """
    Lowercase, strip diacritics and collapse non-word runs to '-'.

    Examples:
        "Été" -> "ete"
        "Troubles du langage oral" -> "troubles-du-langage-oral"
        "  --Motricité fine!! " -> "motricite-fine"
    """
    value = unicodedata.normalize("NFD", value.lower())
    value = re.sub(r"[^\w\s-]", "", value, flags=re.ASCII)
    value = re.sub(r"[-_\s]+", "-", value)
    return value.strip("-")


async def generate_unique_slug(
    session: AsyncSession,
    name: str,
    slug_column: Any,
    *,
    id_column: Any = None,
    exclude_id: Any = None,
    locale_column: Any = None,
    locale: Optional[str] = None,
    reserved: Optional[Set[str]] = None,
) -> str:
    """
    Derive a slug from ``name`` that is not used yet within the scope.

    The scope is the table of ``slug_column``, narrowed to ``locale`` when a
    locale column is given. ``exclude_id`` skips the caller's own row so a
    rename keeps its slug when it still fits. ``reserved`` holds slugs handed
    out earlier in the same batch and receives the returned value.

    Existing slugs are looked up by prefix (``LIKE 'base%'``), which also
    returns unrelated slugs such as ``category`` for ``cat``. These extra
    entries never equal a candidate, so uniqueness holds; they only widen
    the read.
    """
    if reserved is None:
        reserved = set()

    base_slug = slugify(name) or FALLBACK_SLUG

    conditions = [slug_column.like(f"{base_slug}%")]
    if locale_column is not None and locale is not None:
        conditions.append(locale_column == locale)
    if id_column is not None and exclude_id is not None:
        conditions.append(id_column != exclude_id)

    result = await session.execute(select(slug_column).where(and_(*conditions)))

    taken = set(reserved)
    taken.update(slug for slug in result.scalars() if isinstance(slug, str))

    candidate = base_slug
    suffix = 2
    while candidate in taken:
        candidate = f"{base_slug}-{suffix}"
        suffix += 1

    reserved.add(candidate)
    return candidate
