"""Normalization of free-text labels submitted by administrators."""
from typing import Iterable, List, Optional

from .errors import InvalidLabel


def normalize_label(raw: Optional[str], message: Optional[str] = None) -> str:
    """Trim a label, rejecting values that are empty afterwards."""
    normalized = (raw or "").strip()
    if not normalized:
        raise InvalidLabel(message) if message else InvalidLabel()
    return normalized


def parse_synonyms(raw: Optional[str]) -> List[str]:
    """
    Split a comma separated synonym string.

    Tokens are trimmed and empty ones dropped. Order is preserved and
    duplicates are kept as submitted.

    Examples:
        "anxiety, worry,,  fear" -> ["anxiety", "worry", "fear"]
        None -> []
    """
    if not raw:
        return []
    return [value.strip() for value in raw.split(",") if value.strip()]


def normalize_list(values: Iterable[str]) -> List[str]:
    """Trim, drop empties and dedupe a label batch, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        normalized = (value or "").strip()
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result
