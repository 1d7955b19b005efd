"""Typed errors surfaced by the database layer and repositories."""

from __future__ import annotations

import sqlite3


class RecipeStoreError(Exception):
    """Base class for every error raised by the store."""


class StorageError(RecipeStoreError):
    """Opaque engine failure. Callers should treat it as retryable."""


class UniqueConstraintViolation(StorageError):
    """A row collides with an existing one on a unique key (names ignore case)."""


class ReferentialIntegrityViolation(StorageError):
    """A child row references a parent that does not exist."""


class RequiredFieldMissing(StorageError):
    """A non-nullable column was left empty."""


class NotFound(RecipeStoreError):
    """The target id is absent or soft-deleted."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


def classify_error(exc: sqlite3.Error) -> StorageError:
    """Map a raw engine error onto the store's error taxonomy."""
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        if "UNIQUE constraint failed" in message or "PRIMARY KEY" in message:
            return UniqueConstraintViolation(message)
        if "FOREIGN KEY constraint failed" in message:
            return ReferentialIntegrityViolation(message)
        if "NOT NULL constraint failed" in message:
            return RequiredFieldMissing(message)
    return StorageError(message)
