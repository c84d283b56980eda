"""Per-locale characteristics of a population (e.g. "bilingual", "hearing impaired")."""
import uuid
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFound
from .kinds import POPULATION
from .labels import normalize_label
from .locales import DEFAULT_LOCALE
from .metadata import localized_translations
from .models import PopulationTranslation

CHARACTERISTIC_REQUIRED = "Characteristic must not be empty."


async def list_populations(
    session: AsyncSession,
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> List[Dict[str, Any]]:
    """Populations with label and characteristics for ``locale`` (default-locale fallback)."""
    rows = await localized_translations(session, POPULATION, locale, default_locale)
    populations = [
        {"id": entity_id, "label": row.label, "characteristics": list(row.population_characteristic or [])}
        for entity_id, row in rows.items()
    ]
    return sorted(populations, key=lambda item: item["label"].lower())


async def _get_translation(session: AsyncSession, population_id: uuid.UUID, locale: str):
    result = await session.execute(
        select(
            PopulationTranslation.id,
            PopulationTranslation.label,
            PopulationTranslation.population_characteristic,
        )
        .where(PopulationTranslation.population_id == population_id, PopulationTranslation.locale == locale)
        .limit(1)
    )
    return result.first()


async def _ensure_translation(
    session: AsyncSession, population_id: uuid.UUID, locale: str, default_locale: str
):
    """The translation for ``locale``, created from the default-locale label when missing."""
    existing = await _get_translation(session, population_id, locale)
    if existing is not None:
        return existing

    fallback = await _get_translation(session, population_id, default_locale)
    if fallback is None:
        return None

    await session.execute(
        PopulationTranslation.__table__.insert().values(
            id=uuid.uuid4(),
            population_id=population_id,
            locale=locale,
            label=fallback.label,
            population_characteristic=[],
        )
    )
    logger.info(f"Created population translation {population_id} [{locale}] from '{fallback.label}'")
    return await _get_translation(session, population_id, locale)


async def _store(session: AsyncSession, translation_id: uuid.UUID, characteristics: List[str]) -> List[str]:
    await session.execute(
        update(PopulationTranslation)
        .where(PopulationTranslation.id == translation_id)
        .values(population_characteristic=characteristics)
    )
    return characteristics


def _require(translation: Optional[Any]) -> Any:
    if translation is None:
        raise NotFound("Population not found.")
    return translation


async def add_characteristic(
    session: AsyncSession,
    population_id: uuid.UUID,
    locale: str,
    value: str,
    default_locale: str = DEFAULT_LOCALE,
) -> List[str]:
    """Append a characteristic (no duplicates). Returns the updated list."""
    value = normalize_label(value, CHARACTERISTIC_REQUIRED)
    translation = _require(await _ensure_translation(session, population_id, locale, default_locale))
    characteristics = list(dict.fromkeys([*(translation.population_characteristic or []), value]))
    return await _store(session, translation.id, characteristics)


async def rename_characteristic(
    session: AsyncSession,
    population_id: uuid.UUID,
    locale: str,
    previous_value: str,
    value: str,
) -> List[str]:
    """
    Replace ``previous_value`` by ``value`` in place.

    Raises:
        NotFound: the population has no translation for ``locale``, or
            ``previous_value`` is not one of its characteristics
    """
    previous_value = normalize_label(previous_value, CHARACTERISTIC_REQUIRED)
    value = normalize_label(value, CHARACTERISTIC_REQUIRED)
    translation = _require(await _get_translation(session, population_id, locale))

    current = list(translation.population_characteristic or [])
    if previous_value not in current:
        raise NotFound("Characteristic not found.")

    renamed = [value if item == previous_value else item for item in current]
    return await _store(session, translation.id, list(dict.fromkeys(renamed)))


async def remove_characteristic(
    session: AsyncSession,
    population_id: uuid.UUID,
    locale: str,
    value: str,
) -> List[str]:
    """Drop a characteristic. Removing an absent value is not an error."""
    value = normalize_label(value, CHARACTERISTIC_REQUIRED)
    translation = _require(await _get_translation(session, population_id, locale))
    remaining = [item for item in (translation.population_characteristic or []) if item != value]
    return await _store(session, translation.id, remaining)
