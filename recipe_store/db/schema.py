"""Database schema DDL: canonical tables and indexes for the recipe store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from recipe_store.db.errors import StorageError

if TYPE_CHECKING:
    from recipe_store.db.database import Database

logger = logging.getLogger(__name__)


# Parents before children; reversed for dropping.
TABLE_NAMES = (
    "templates",
    "template_sections",
    "recipes",
    "recipe_ingredients",
    "recipe_sections",
    "tags",
    "recipe_tags",
    "settings",
)

# ==========================================================================
# Tables
# ==========================================================================
TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS templates (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    created_at  INTEGER NOT NULL,
    updated_at  INTEGER NOT NULL,
    deleted_at  INTEGER
)"""

TEMPLATE_SECTIONS_DDL = """
CREATE TABLE IF NOT EXISTS template_sections (
    id          TEXT PRIMARY KEY,
    template_id TEXT NOT NULL REFERENCES templates(id),
    name        TEXT NOT NULL,
    order_index INTEGER NOT NULL,
    created_at  INTEGER NOT NULL,
    updated_at  INTEGER NOT NULL,
    UNIQUE(template_id, name COLLATE NOCASE)
)"""

RECIPES_DDL = """
CREATE TABLE IF NOT EXISTS {name} (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    cook_time_min INTEGER,
    servings      REAL,
    favorite      INTEGER NOT NULL DEFAULT 0,
    source_url    TEXT,
    image_url     TEXT,
    image_width   INTEGER,
    image_height  INTEGER,
    created_at    INTEGER NOT NULL,
    updated_at    INTEGER NOT NULL,
    deleted_at    INTEGER
)"""

RECIPE_INGREDIENTS_DDL = """
CREATE TABLE IF NOT EXISTS {name} (
    id          TEXT PRIMARY KEY,
    recipe_id   TEXT NOT NULL REFERENCES recipes(id),
    name        TEXT NOT NULL,
    amount      REAL,
    unit        TEXT,
    order_index INTEGER NOT NULL DEFAULT 0
)"""

RECIPE_SECTIONS_DDL = """
CREATE TABLE IF NOT EXISTS {name} (
    id          TEXT PRIMARY KEY,
    recipe_id   TEXT NOT NULL REFERENCES recipes(id),
    name        TEXT NOT NULL,
    content     TEXT NOT NULL DEFAULT '',
    updated_at  INTEGER NOT NULL
)"""

TAGS_DDL = """
CREATE TABLE IF NOT EXISTS tags (
    id   TEXT PRIMARY KEY,
    name TEXT NOT NULL
)"""

RECIPE_TAGS_DDL = """
CREATE TABLE IF NOT EXISTS recipe_tags (
    recipe_id TEXT NOT NULL REFERENCES recipes(id),
    tag_id    TEXT NOT NULL REFERENCES tags(id),
    PRIMARY KEY (recipe_id, tag_id)
)"""

SETTINGS_DDL = """
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value_json  TEXT NOT NULL,
    updated_at  INTEGER NOT NULL
)"""

# Tables the migration engine rebuilds take their name as a parameter so the
# same column set is used for ``<table>_new``.
TABLES_DDL: dict[str, str] = {
    "templates": TEMPLATES_DDL,
    "template_sections": TEMPLATE_SECTIONS_DDL,
    "recipes": RECIPES_DDL.format(name="recipes"),
    "recipe_ingredients": RECIPE_INGREDIENTS_DDL.format(name="recipe_ingredients"),
    "recipe_sections": RECIPE_SECTIONS_DDL.format(name="recipe_sections"),
    "tags": TAGS_DDL,
    "recipe_tags": RECIPE_TAGS_DDL,
    "settings": SETTINGS_DDL,
}

# ==========================================================================
# Indexes
# ==========================================================================
INDEXES_DDL: dict[str, str] = {
    "idx_templates_name_nocase":
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_templates_name_nocase "
        "ON templates(name COLLATE NOCASE)",
    "idx_template_sections_order":
        "CREATE INDEX IF NOT EXISTS idx_template_sections_order "
        "ON template_sections(template_id, order_index)",
    "idx_recipes_updated":
        "CREATE INDEX IF NOT EXISTS idx_recipes_updated ON recipes(updated_at DESC)",
    "idx_recipes_fav_updated":
        "CREATE INDEX IF NOT EXISTS idx_recipes_fav_updated "
        "ON recipes(favorite, updated_at DESC)",
    "idx_ingredients_recipe":
        "CREATE INDEX IF NOT EXISTS idx_ingredients_recipe ON recipe_ingredients(recipe_id)",
    "idx_ingredients_order":
        "CREATE INDEX IF NOT EXISTS idx_ingredients_order "
        "ON recipe_ingredients(recipe_id, order_index)",
    "idx_sections_recipe":
        "CREATE INDEX IF NOT EXISTS idx_sections_recipe ON recipe_sections(recipe_id)",
    "idx_tags_name_nocase":
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tags_name_nocase ON tags(name COLLATE NOCASE)",
    "idx_recipe_tags_recipe":
        "CREATE INDEX IF NOT EXISTS idx_recipe_tags_recipe ON recipe_tags(recipe_id)",
    "idx_recipe_tags_tag":
        "CREATE INDEX IF NOT EXISTS idx_recipe_tags_tag ON recipe_tags(tag_id)",
}

DROP_TABLES_DDL = "\n".join(
    f"DROP TABLE IF EXISTS {table};" for table in reversed(TABLE_NAMES)
)


async def ensure_schema(db: "Database") -> list[str]:
    """
    Create every table and index that does not exist yet.

    Never drops or alters a table and never touches rows. An index that
    cannot be built against a legacy table shape (missing column, duplicate
    names) is skipped and its name returned; the migration engine recreates
    all indexes once the shapes are repaired.
    """
    async with db.transaction() as conn:
        for ddl in TABLES_DDL.values():
            await conn.execute(ddl)
    return await create_indexes(db)


async def create_indexes(db: "Database") -> list[str]:
    """(Re)create every index one at a time; returns the names that failed."""
    failed: list[str] = []
    for index_name, ddl in INDEXES_DDL.items():
        try:
            await db.execute(ddl)
        except StorageError as e:
            logger.warning(f"Could not create index {index_name}: {e}")
            failed.append(index_name)
    return failed
