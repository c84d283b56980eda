"""Domain errors raised by the catalogue services.

Each error carries the HTTP status the API layer answers with, so handlers
can map them without a lookup table.
"""
from typing import Iterable, Optional


class CatalogueError(Exception):
    """Base class for all expected, user-visible failures."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidLabel(CatalogueError):
    """A label (or characteristic, profile...) is empty after trimming."""

    status_code = 400

    def __init__(self, message: str = "Label must not be empty."):
        super().__init__(message)


class DuplicateLabel(CatalogueError):
    """A storage-level uniqueness constraint rejected a write."""

    status_code = 409

    def __init__(self, label: str, kind: Optional[str] = None):
        what = f"{kind} " if kind else ""
        super().__init__(f"A {what}labelled '{label}' already exists.")
        self.label = label
        self.kind = kind


class NotFound(CatalogueError):
    """The targeted row does not exist (for the given locale)."""

    status_code = 404

    def __init__(self, message: str = "Not found."):
        super().__init__(message)


class UnresolvedLabel(CatalogueError):
    """One or more submitted labels could not be matched to an entity."""

    status_code = 400

    def __init__(self, labels: Iterable[str], kind: Optional[str] = None):
        self.labels = list(labels)
        self.kind = kind
        what = f" {kind}" if kind else ""
        super().__init__(f"Unknown{what} label(s): {', '.join(self.labels)}")


class Unauthorized(CatalogueError):
    """No valid session, or the session's role is not allowed."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


__all__ = [
    "CatalogueError",
    "InvalidLabel",
    "DuplicateLabel",
    "NotFound",
    "UnresolvedLabel",
    "Unauthorized",
]
