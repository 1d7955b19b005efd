"""Repository for recipes and their ingredients, sections and tags."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import aiosqlite

from recipe_store.db.database import Database
from recipe_store.db.errors import NotFound
from recipe_store.models.recipe import (
    Ingredient,
    InstructionSection,
    NewRecipe,
    Recipe,
    RecipePatch,
)
from recipe_store.utils.ids import generate_id, now_ms

logger = logging.getLogger(__name__)

_RECIPE_COLUMNS = (
    "r.id, r.name, r.cook_time_min, r.servings, r.favorite, r.source_url, "
    "r.image_url, r.image_width, r.image_height, r.created_at, r.updated_at, r.deleted_at"
)
_TAG_EXISTS = """EXISTS (
    SELECT 1 FROM recipe_tags rt
    JOIN tags t ON t.id = rt.tag_id
    WHERE rt.recipe_id = r.id AND {predicate}
)"""


def _like(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RecipeRepository:
    """Single-Responsibility repository for recipe persistence."""

    def __init__(self, db: Database):
        self._db = db

    # -- List / Filter ---------------------------------------------------------

    async def get_all(self) -> list[Recipe]:
        return await self._list()

    async def get_by_tag(self, tag: str) -> list[Recipe]:
        return await self._list(
            _TAG_EXISTS.format(predicate="t.name = ? COLLATE NOCASE"), (tag.strip(),)
        )

    async def get_favorites(self) -> list[Recipe]:
        return await self._list("r.favorite = 1")

    async def get_by_max_cook_time(self, minutes: int) -> list[Recipe]:
        return await self._list(
            "r.cook_time_min IS NOT NULL AND r.cook_time_min <= ?", (minutes,)
        )

    async def search(self, query: str) -> list[Recipe]:
        """Case-insensitive substring match on the recipe name or any tag name."""
        term = _like(query.strip())
        tag_match = _TAG_EXISTS.format(predicate="t.name LIKE ? ESCAPE '\\'")
        return await self._list(
            f"(r.name LIKE ? ESCAPE '\\' OR {tag_match})", (term, term)
        )

    # -- Read ------------------------------------------------------------------

    async def get_by_id(self, recipe_id: str) -> Optional[Recipe]:
        """Fully hydrated recipe, or ``None`` if absent or soft-deleted."""
        async with self._db.transaction() as conn:
            rows = await conn.execute_fetchall(
                f"SELECT {_RECIPE_COLUMNS} FROM recipes r "
                "WHERE r.id = ? AND r.deleted_at IS NULL",
                (recipe_id,),
            )
            if not rows:
                return None
            tags = await self._tags_for(conn, [recipe_id])
            ingredient_rows = await conn.execute_fetchall(
                """SELECT id, name, amount, unit, order_index FROM recipe_ingredients
                   WHERE recipe_id = ? ORDER BY order_index, rowid""",
                (recipe_id,),
            )
            section_rows = await conn.execute_fetchall(
                "SELECT id, name, content FROM recipe_sections WHERE recipe_id = ? ORDER BY rowid",
                (recipe_id,),
            )
        return Recipe.from_row(
            dict(rows[0]),
            tags=tags.get(recipe_id, []),
            ingredients=[Ingredient.from_row(dict(r)) for r in ingredient_rows],
            sections=[InstructionSection.from_row(dict(r)) for r in section_rows],
        )

    async def get_all_tags(self) -> list[str]:
        rows = await self._db.fetchall("SELECT name FROM tags ORDER BY name COLLATE NOCASE ASC")
        return [r["name"] for r in rows]

    async def search_tags(self, query: str) -> list[str]:
        rows = await self._db.fetchall(
            """SELECT name FROM tags WHERE name LIKE ? ESCAPE '\\'
               ORDER BY name COLLATE NOCASE ASC""",
            (_like(query.strip()),),
        )
        return [r["name"] for r in rows]

    # -- Create ----------------------------------------------------------------

    async def create(self, data: NewRecipe) -> Recipe:
        """
        Insert the recipe, its ingredients, sections and tag links in one
        transaction. A failure at any step leaves no rows behind.
        """
        recipe_id = generate_id()
        now = now_ms()
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO recipes
                   (id, name, cook_time_min, servings, favorite, source_url,
                    image_url, image_width, image_height, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    recipe_id, data.name, data.cook_time_minutes, data.servings,
                    1 if data.favorite else 0, data.source_url,
                    data.image_url, data.image_width, data.image_height, now, now,
                ),
            )
            await self._insert_ingredients(conn, recipe_id, data.ingredients)
            await self._insert_sections(conn, recipe_id, data.sections, now)
            await self._link_tags(conn, recipe_id, data.tags)

        logger.info(f"Created recipe {recipe_id}: {data.name}")
        recipe = await self.get_by_id(recipe_id)
        if recipe is None:
            raise NotFound("Recipe", recipe_id)
        return recipe

    # -- Update ----------------------------------------------------------------

    async def update(
        self, recipe_id: str, patch: Optional[RecipePatch] = None, **fields: Any
    ) -> Recipe:
        """
        Write only the supplied fields; ``updated_at`` is always bumped.
        Accepts a ``RecipePatch`` or the same fields as keyword arguments.
        """
        if patch is None:
            patch = RecipePatch(**fields)
        elif fields:
            raise TypeError("Pass either a RecipePatch or keyword fields, not both")

        columns = patch.to_columns()
        columns["updated_at"] = now_ms()
        set_parts = ", ".join(f"{k} = ?" for k in columns)
        values = (*columns.values(), recipe_id)

        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE recipes SET {set_parts} WHERE id = ? AND deleted_at IS NULL",
                values,
            )
            if cursor.rowcount == 0:
                raise NotFound("Recipe", recipe_id)
        return await self._require(recipe_id)

    async def replace_ingredients(self, recipe_id: str, ingredients: list[Ingredient]) -> Recipe:
        """Swap the whole ingredient list for a new one with fresh ids."""
        async with self._db.transaction() as conn:
            await self._touch(conn, recipe_id)
            await conn.execute("DELETE FROM recipe_ingredients WHERE recipe_id = ?", (recipe_id,))
            await self._insert_ingredients(conn, recipe_id, ingredients)
        return await self._require(recipe_id)

    async def replace_sections(
        self, recipe_id: str, sections: list[InstructionSection]
    ) -> Recipe:
        """Swap every instruction section for ``sections``, in the given order."""
        async with self._db.transaction() as conn:
            now = await self._touch(conn, recipe_id)
            await conn.execute("DELETE FROM recipe_sections WHERE recipe_id = ?", (recipe_id,))
            await self._insert_sections(conn, recipe_id, sections, now)
        return await self._require(recipe_id)

    async def set_tags(self, recipe_id: str, tags: list[str]) -> Recipe:
        """Replace the recipe's tag links. Tags themselves are never deleted."""
        async with self._db.transaction() as conn:
            await self._touch(conn, recipe_id)
            await conn.execute("DELETE FROM recipe_tags WHERE recipe_id = ?", (recipe_id,))
            await self._link_tags(conn, recipe_id, tags)
        return await self._require(recipe_id)

    async def toggle_favorite(self, recipe_id: str) -> bool:
        """Flip the favorite flag and return its new value."""
        async with self._db.transaction() as conn:
            rows = await conn.execute_fetchall(
                "SELECT favorite FROM recipes WHERE id = ? AND deleted_at IS NULL",
                (recipe_id,),
            )
            if not rows:
                raise NotFound("Recipe", recipe_id)
            favorite = 0 if rows[0]["favorite"] else 1
            await conn.execute(
                "UPDATE recipes SET favorite = ?, updated_at = ? WHERE id = ?",
                (favorite, now_ms(), recipe_id),
            )
        return favorite == 1

    # -- Delete (soft) ---------------------------------------------------------

    async def delete(self, recipe_id: str) -> None:
        """Mark the recipe deleted. Child rows are left in place."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE recipes SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now_ms(), recipe_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Recipe", recipe_id)
        logger.info(f"Deleted recipe {recipe_id}")

    # -- internal --------------------------------------------------------------

    async def _list(self, where: str = "", params: tuple = ()) -> list[Recipe]:
        clause = "r.deleted_at IS NULL" + (f" AND {where}" if where else "")
        async with self._db.transaction() as conn:
            rows = await conn.execute_fetchall(
                f"SELECT {_RECIPE_COLUMNS} FROM recipes r WHERE {clause} "
                "ORDER BY r.updated_at DESC, r.rowid DESC",
                params,
            )
            recipe_rows = [dict(r) for r in rows]
            tags = await self._tags_for(conn, [r["id"] for r in recipe_rows])
        return [Recipe.from_row(r, tags=tags.get(r["id"], [])) for r in recipe_rows]

    @staticmethod
    async def _tags_for(
        conn: aiosqlite.Connection, recipe_ids: list[str]
    ) -> dict[str, list[str]]:
        """Tag names for many recipes in a single query, keyed by recipe id."""
        if not recipe_ids:
            return {}
        placeholders = ", ".join("?" for _ in recipe_ids)
        rows = await conn.execute_fetchall(
            f"""SELECT rt.recipe_id AS recipe_id, t.name AS name
                FROM recipe_tags rt
                JOIN tags t ON t.id = rt.tag_id
                WHERE rt.recipe_id IN ({placeholders})
                ORDER BY t.name COLLATE NOCASE ASC""",
            tuple(recipe_ids),
        )
        by_recipe: dict[str, list[str]] = {}
        for row in rows:
            by_recipe.setdefault(row["recipe_id"], []).append(row["name"])
        return by_recipe

    @staticmethod
    async def _insert_ingredients(
        conn: aiosqlite.Connection, recipe_id: str, ingredients: Iterable[Ingredient]
    ) -> None:
        await conn.executemany(
            """INSERT INTO recipe_ingredients (id, recipe_id, name, amount, unit, order_index)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (generate_id(), recipe_id, ing.name, ing.amount, ing.unit, index)
                for index, ing in enumerate(ingredients)
            ],
        )

    @staticmethod
    async def _insert_sections(
        conn: aiosqlite.Connection,
        recipe_id: str,
        sections: Iterable[InstructionSection],
        now: int,
    ) -> None:
        for section in sections:
            await conn.execute(
                """INSERT INTO recipe_sections (id, recipe_id, name, content, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (generate_id(), recipe_id, section.name, section.content, now),
            )

    async def _link_tags(
        self, conn: aiosqlite.Connection, recipe_id: str, tag_names: Iterable[str]
    ) -> None:
        for raw in tag_names:
            tag_name = raw.strip()
            if not tag_name:
                continue
            tag_id = await self._resolve_tag(conn, tag_name)
            await conn.execute(
                "INSERT OR IGNORE INTO recipe_tags (recipe_id, tag_id) VALUES (?, ?)",
                (recipe_id, tag_id),
            )

    @staticmethod
    async def _resolve_tag(conn: aiosqlite.Connection, tag_name: str) -> str:
        """Id of the tag named ``tag_name`` ignoring case, created if missing."""
        rows = await conn.execute_fetchall(
            "SELECT id FROM tags WHERE name = ? COLLATE NOCASE", (tag_name,)
        )
        if rows:
            return rows[0]["id"]
        tag_id = generate_id()
        await conn.execute("INSERT INTO tags (id, name) VALUES (?, ?)", (tag_id, tag_name))
        return tag_id

    @staticmethod
    async def _touch(conn: aiosqlite.Connection, recipe_id: str) -> int:
        """Bump ``updated_at`` on a live recipe or raise ``NotFound``."""
        now = now_ms()
        cursor = await conn.execute(
            "UPDATE recipes SET updated_at = ? WHERE id = ? AND deleted_at IS NULL",
            (now, recipe_id),
        )
        if cursor.rowcount == 0:
            raise NotFound("Recipe", recipe_id)
        return now

    async def _require(self, recipe_id: str) -> Recipe:
        recipe = await self.get_by_id(recipe_id)
        if recipe is None:
            raise NotFound("Recipe", recipe_id)
        return recipe
