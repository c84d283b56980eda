"""Locale resolution."""
from typing import Iterable, Optional

SUPPORTED_LOCALES = ("fr", "en")
DEFAULT_LOCALE = "fr"


def resolve_locale(requested: Optional[str], supported: Iterable[str], default: str) -> str:
    """Return ``requested`` when it is supported, otherwise ``default``.

    Never fails: an empty, unknown or missing locale falls back silently.
    """
    if requested is not None and requested in set(supported):
        return requested
    return default


def fallback_chain(locale: str, default: str = DEFAULT_LOCALE) -> tuple:
    """Locales to read, most preferred first."""
    if locale == default:
        return (locale,)
    return (locale, default)
