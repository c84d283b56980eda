"""Clinical profiles, managed by label within one locale."""
from typing import List

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import DuplicateLabel, NotFound
from .kinds import CLINICAL_PROFILE
from .labels import normalize_label
from .locales import DEFAULT_LOCALE, fallback_chain
from .models import ClinicalProfileTranslation
from .taxonomy import delete_translation, upsert_term

PROFILE_REQUIRED = "Clinical profile must not be empty."


async def list_clinical_profiles(
    session: AsyncSession,
    locale: str,
    default_locale: str = DEFAULT_LOCALE,
) -> List[str]:
    """
    Sorted, unique profile labels of ``locale``.

    The fallback is all-or-nothing: default-locale labels are listed only
    when ``locale`` has no profile at all.
    """
    result = await session.execute(
        select(ClinicalProfileTranslation.locale, ClinicalProfileTranslation.label).where(
            ClinicalProfileTranslation.locale.in_(fallback_chain(locale, default_locale))
        )
    )
    rows = result.all()
    labels = [label for row_locale, label in rows if row_locale == locale]
    if not labels:
        labels = [label for row_locale, label in rows if row_locale == default_locale]
    return sorted(set(labels), key=str.lower)


async def create_clinical_profile(
    session: AsyncSession,
    locale: str,
    value: str,
) -> None:
    """
    Raises:
        DuplicateLabel: ``locale`` already has a profile labelled ``value``
    """
    value = normalize_label(value, PROFILE_REQUIRED)
    result = await session.execute(
        select(ClinicalProfileTranslation.id)
        .where(ClinicalProfileTranslation.locale == locale, ClinicalProfileTranslation.label == value)
        .limit(1)
    )
    if result.first() is not None:
        raise DuplicateLabel(value, "clinical profile")
    await upsert_term(session, CLINICAL_PROFILE, value, locale)


async def rename_clinical_profile(
    session: AsyncSession,
    locale: str,
    previous_value: str,
    value: str,
) -> None:
    """
    Raises:
        NotFound: ``locale`` has no profile labelled ``previous_value``
    """
    previous_value = normalize_label(previous_value, PROFILE_REQUIRED)
    value = normalize_label(value, PROFILE_REQUIRED)
    result = await session.execute(
        update(ClinicalProfileTranslation)
        .where(ClinicalProfileTranslation.locale == locale, ClinicalProfileTranslation.label == previous_value)
        .values(label=value)
    )
    if not result.rowcount:
        raise NotFound("Clinical profile not found.")
    logger.info(f"Renamed clinical profile '{previous_value}' -> '{value}' [{locale}]")


async def delete_clinical_profile(
    session: AsyncSession,
    locale: str,
    value: str,
    default_locale: str = DEFAULT_LOCALE,
) -> None:
    """Delete the profile's translation for ``locale``; the profile goes with its last one."""
    await delete_translation(
        session, CLINICAL_PROFILE, locale, label=normalize_label(value, PROFILE_REQUIRED), default_locale=default_locale
    )
