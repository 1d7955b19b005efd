"""
Startup migrations that bring a store written by an older schema revision
into the canonical shape.

The live column list of each table decides whether it is still legacy; there
is no version table. Each step is wrapped on its own: a failure is logged and
recorded on the returned ``MigrationReport`` and the remaining steps still
run, so a partly migrated store stays usable and the next launch retries.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, NamedTuple, Optional

from recipe_store.db.schema import (
    RECIPE_INGREDIENTS_DDL,
    RECIPE_SECTIONS_DDL,
    RECIPES_DDL,
    create_indexes,
)
from recipe_store.utils.ids import now_ms
from recipe_store.utils.names import unique_name

if TYPE_CHECKING:
    from recipe_store.db.database import Database

logger = logging.getLogger(__name__)

FALLBACK_SECTION_NAME = "Instructions"

RECIPE_COLUMNS = (
    "id", "name", "cook_time_min", "servings", "favorite", "source_url",
    "image_url", "image_width", "image_height", "created_at", "updated_at",
    "deleted_at",
)
SECTION_COLUMNS = ("id", "recipe_id", "name", "content", "updated_at")
INGREDIENT_COLUMNS = ("id", "recipe_id", "name", "amount", "unit", "order_index")

# Columns added after the first release; older current-shape stores get them
# through ALTER TABLE instead of a rebuild.
LATE_RECIPE_COLUMNS = {
    "source_url": "TEXT",
    "image_url": "TEXT",
    "image_width": "INTEGER",
    "image_height": "INTEGER",
}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class MigrationStepError:
    step: str
    error: str


@dataclass
class MigrationReport:
    """Outcome of one ``run_migrations()`` call."""

    applied: list[str] = field(default_factory=list)
    errors: list[MigrationStepError] = field(default_factory=list)
    deferred_indexes: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        applied = ", ".join(self.applied) or "none"
        if self.ok:
            return f"applied: {applied}"
        failed = "; ".join(f"{e.step}: {e.error}" for e in self.errors)
        return f"applied: {applied}; failed: {failed}"


# ---------------------------------------------------------------------------
# Legacy ingredient text parsing
# ---------------------------------------------------------------------------

class ParsedIngredient(NamedTuple):
    amount: Optional[float]
    unit: Optional[str]
    name: str


_VULGAR_FRACTIONS = {
    "½": 1 / 2, "⅓": 1 / 3, "⅔": 2 / 3, "¼": 1 / 4, "¾": 3 / 4,
    "⅕": 1 / 5, "⅖": 2 / 5, "⅗": 3 / 5, "⅘": 4 / 5, "⅙": 1 / 6,
    "⅚": 5 / 6, "⅛": 1 / 8, "⅜": 3 / 8, "⅝": 5 / 8, "⅞": 7 / 8,
}


def parse_amount(token: str) -> Optional[float]:
    """Parse ``2``, ``1.5``, ``1/2``, ``½`` or ``1½``; ``None`` if not a number."""
    token = token.strip()
    if not token:
        return None
    if token in _VULGAR_FRACTIONS:
        return _VULGAR_FRACTIONS[token]
    if token[-1] in _VULGAR_FRACTIONS:
        whole = parse_amount(token[:-1])
        return None if whole is None else whole + _VULGAR_FRACTIONS[token[-1]]
    if "/" in token:
        numerator, _, denominator = token.partition("/")
        top = parse_amount(numerator)
        bottom = parse_amount(denominator)
        if top is None or not bottom:
            return None
        return top / bottom
    try:
        value = float(token)
    except ValueError:
        return None
    # float() accepts "nan" and "inf"
    return value if math.isfinite(value) else None


def parse_ingredient_text(text: Optional[str]) -> ParsedIngredient:
    """
    Split a legacy ``"<amount> <unit> <name>"`` string into typed parts.

    A numeric first token is the amount (a following ``a/b`` token joins it as a
    mixed number); the next token is the unit when at least one more token
    is left for the name; the remainder is the name. Text that does not start
    with a number is kept whole as the name. This is best-effort recovery:
    free-form text such as ``"3 ripe bananas"`` yields unit ``"ripe"``.
    """
    raw = (text or "").strip()
    tokens = raw.split()
    if not tokens:
        return ParsedIngredient(None, None, raw)

    amount = parse_amount(tokens[0])
    if amount is None:
        logger.debug(f"Ingredient text without leading amount kept as name: {raw!r}")
        return ParsedIngredient(None, None, raw)

    rest = tokens[1:]
    if rest and amount.is_integer() and "/" in rest[0]:
        fraction = parse_amount(rest[0])
        if fraction is not None and 0 < fraction < 1:
            amount += fraction
            rest = rest[1:]

    if len(rest) >= 2:
        return ParsedIngredient(amount, rest[0], " ".join(rest[1:]))
    if rest:
        return ParsedIngredient(amount, None, rest[0])
    logger.debug(f"Ingredient text is a bare amount, kept as name: {raw!r}")
    return ParsedIngredient(None, None, raw)


# ---------------------------------------------------------------------------
# Row transforms (pure)
# ---------------------------------------------------------------------------

def transform_recipe_rows(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop template references; fill columns the legacy shape lacked."""
    fallback_ts = now_ms()
    out = []
    for row in rows:
        created_at = row.get("created_at") or fallback_ts
        out.append({
            "id": row["id"],
            "name": row.get("name") or "",
            "cook_time_min": row.get("cook_time_min"),
            "servings": row.get("servings"),
            "favorite": 1 if row.get("favorite") else 0,
            "source_url": row.get("source_url"),
            "image_url": row.get("image_url"),
            "image_width": row.get("image_width"),
            "image_height": row.get("image_height"),
            "created_at": created_at,
            "updated_at": row.get("updated_at") or created_at,
            "deleted_at": row.get("deleted_at"),
        })
    return out


def transform_section_rows(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Resolve each section name through its removed template-section link."""
    fallback_ts = now_ms()
    out = []
    for row in rows:
        name = row.get("template_section_name") or row.get("name") or FALLBACK_SECTION_NAME
        out.append({
            "id": row["id"],
            "recipe_id": row["recipe_id"],
            "name": name,
            "content": row.get("content") or "",
            "updated_at": row.get("updated_at") or fallback_ts,
        })
    return out


def transform_ingredient_rows(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Split legacy ``text`` into amount/unit/name. Rows must arrive grouped by
    recipe in their display order; ``order_index`` is reassigned densely.
    """
    positions: dict[str, int] = {}
    out = []
    for row in rows:
        recipe_id = row["recipe_id"]
        position = positions.get(recipe_id, 0)
        positions[recipe_id] = position + 1
        parsed = parse_ingredient_text(row.get("text"))
        out.append({
            "id": row["id"],
            "recipe_id": recipe_id,
            "name": parsed.name,
            "amount": parsed.amount,
            "unit": parsed.unit,
            "order_index": position,
        })
    return out


# ---------------------------------------------------------------------------
# Table rebuilds
# ---------------------------------------------------------------------------

async def _rebuild_table(
    db: "Database",
    table: str,
    ddl_template: str,
    columns: tuple[str, ...],
    select_sql: str,
    transform: Callable[[Iterable[dict[str, Any]]], list[dict[str, Any]]],
) -> int:
    """Copy ``table`` into ``<table>_new`` through ``transform`` and swap it in."""
    temp = f"{table}_new"
    insert_sql = (
        f"INSERT INTO {temp} ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)})"
    )
    async with db.transaction() as conn:
        await conn.execute(f"DROP TABLE IF EXISTS {temp}")
        await conn.execute(ddl_template.format(name=temp))
        rows = [dict(r) for r in await conn.execute_fetchall(select_sql)]
        values = [tuple(row[c] for c in columns) for row in transform(rows)]
        await conn.executemany(insert_sql, values)
        await conn.execute(f"DROP TABLE {table}")
        await conn.execute(f"ALTER TABLE {temp} RENAME TO {table}")
    logger.info(f"Migrated {len(values)} rows of {table} to the current shape")
    return len(values)


async def migrate_recipes_table(db: "Database") -> bool:
    columns = await db.table_columns("recipes")
    if not columns:
        return False

    if "template_id" not in columns and "template_name" not in columns:
        missing = [c for c in LATE_RECIPE_COLUMNS if c not in columns]
        if not missing:
            return False
        async with db.transaction() as conn:
            for column in missing:
                await conn.execute(
                    f"ALTER TABLE recipes ADD COLUMN {column} {LATE_RECIPE_COLUMNS[column]}"
                )
        logger.info(f"Added recipe columns: {', '.join(missing)}")
        return True

    await _rebuild_table(
        db, "recipes", RECIPES_DDL, RECIPE_COLUMNS,
        "SELECT * FROM recipes ORDER BY rowid",
        transform_recipe_rows,
    )
    return True


async def migrate_recipe_sections_table(db: "Database") -> bool:
    columns = await db.table_columns("recipe_sections")
    if not columns:
        return False

    has_template_ref = "template_section_id" in columns
    has_order_index = "order_index" in columns
    if not has_template_ref and not has_order_index:
        return False

    if has_template_ref:
        select_sql = (
            "SELECT rs.*, ts.name AS template_section_name FROM recipe_sections rs "
            "LEFT JOIN template_sections ts ON ts.id = rs.template_section_id"
        )
    else:
        select_sql = "SELECT rs.* FROM recipe_sections rs"
    if has_order_index:
        select_sql += " ORDER BY rs.recipe_id, rs.order_index, rs.rowid"
    else:
        select_sql += " ORDER BY rs.rowid"

    await _rebuild_table(
        db, "recipe_sections", RECIPE_SECTIONS_DDL, SECTION_COLUMNS,
        select_sql, transform_section_rows,
    )
    return True


async def migrate_recipe_ingredients_table(db: "Database") -> bool:
    columns = await db.table_columns("recipe_ingredients")
    if not columns or "text" not in columns:
        return False

    order = "order_index, rowid" if "order_index" in columns else "rowid"
    await _rebuild_table(
        db, "recipe_ingredients", RECIPE_INGREDIENTS_DDL, INGREDIENT_COLUMNS,
        f"SELECT * FROM recipe_ingredients ORDER BY recipe_id, {order}",
        transform_ingredient_rows,
    )
    return True


# ---------------------------------------------------------------------------
# Invariant repair
# ---------------------------------------------------------------------------

def _group_by_key(rows: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
    groups: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(row["key"], []).append(row)
    return [g for g in groups.values() if len(g) > 1]


async def dedupe_tags(db: "Database") -> bool:
    """Merge tags whose names differ only by case into the oldest one."""
    rows = await db.fetchall("SELECT id, name, LOWER(name) AS key FROM tags ORDER BY rowid")
    duplicates = _group_by_key(rows)
    if not duplicates:
        return False

    async with db.transaction() as conn:
        for group in duplicates:
            keep_id = group[0]["id"]
            for loser in group[1:]:
                await conn.execute(
                    """INSERT OR IGNORE INTO recipe_tags (recipe_id, tag_id)
                       SELECT recipe_id, ? FROM recipe_tags WHERE tag_id = ?""",
                    (keep_id, loser["id"]),
                )
                await conn.execute("DELETE FROM recipe_tags WHERE tag_id = ?", (loser["id"],))
                await conn.execute("DELETE FROM tags WHERE id = ?", (loser["id"],))
            logger.info(
                f"Merged {len(group) - 1} duplicate tag(s) into {group[0]['name']!r}"
            )
    return True


async def dedupe_template_names(db: "Database") -> bool:
    """Rename templates whose names collide ignoring case: ``Baking (2)``, ..."""
    rows = await db.fetchall(
        "SELECT id, name, LOWER(name) AS key FROM templates ORDER BY created_at, rowid"
    )
    duplicates = _group_by_key(rows)
    if not duplicates:
        return False

    used = [r["name"] for r in rows]
    async with db.transaction() as conn:
        for group in duplicates:
            base = group[0]["name"]
            for dup in group[1:]:
                new_name = unique_name(base, used)
                await conn.execute(
                    "UPDATE templates SET name = ? WHERE id = ?", (new_name, dup["id"])
                )
                used.append(new_name)
                logger.info(f"Renamed duplicate template {dup['name']!r} to {new_name!r}")
    return True


async def ensure_indexes(db: "Database") -> bool:
    failed = await create_indexes(db)
    if failed:
        raise RuntimeError(f"indexes not created: {', '.join(failed)}")
    return False


MigrationStep = Callable[["Database"], Awaitable[bool]]

MIGRATION_STEPS: list[tuple[str, MigrationStep]] = [
    ("recipes", migrate_recipes_table),
    ("recipe_sections", migrate_recipe_sections_table),
    ("recipe_ingredients", migrate_recipe_ingredients_table),
    ("tags_dedupe", dedupe_tags),
    ("templates_dedupe", dedupe_template_names),
    ("indexes", ensure_indexes),
]


async def run_migrations(db: "Database") -> MigrationReport:
    """
    Run every migration step with foreign keys suspended.

    Idempotent: on a store already in the current shape no step changes a
    row. Foreign-key enforcement is restored even when a step fails.
    """
    report = MigrationReport()
    try:
        await db.set_foreign_keys(False)
        for step_name, step in MIGRATION_STEPS:
            try:
                if await step(db):
                    report.applied.append(step_name)
            except Exception as e:
                logger.error(f"Migration error for {step_name}: {e}")
                report.errors.append(MigrationStepError(step_name, str(e)))
    finally:
        await db.set_foreign_keys(True)

    if report.applied:
        logger.info(f"Migrations {report.summary()}")
    return report
