"""Database layer: async SQLite with ACID transactions and repository pattern."""

from recipe_store.db.database import Database, close_db, get_db, reset_database
from recipe_store.db.errors import (
    NotFound,
    RecipeStoreError,
    ReferentialIntegrityViolation,
    RequiredFieldMissing,
    StorageError,
    UniqueConstraintViolation,
)
from recipe_store.db.migrations import MigrationReport, run_migrations
from recipe_store.db.recipe_repo import RecipeRepository
from recipe_store.db.schema import ensure_schema
from recipe_store.db.settings_repo import SettingsRepository
from recipe_store.db.template_repo import TemplateRepository

__all__ = [
    "Database",
    "get_db",
    "close_db",
    "reset_database",
    "ensure_schema",
    "run_migrations",
    "MigrationReport",
    "RecipeRepository",
    "TemplateRepository",
    "SettingsRepository",
    "RecipeStoreError",
    "StorageError",
    "UniqueConstraintViolation",
    "ReferentialIntegrityViolation",
    "RequiredFieldMissing",
    "NotFound",
]
