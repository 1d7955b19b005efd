"""Unit tests for the DB core: connection, transactions, errors, schema.

Every test uses a fresh database file in a temporary directory so tests are
isolated and leave no artefacts on disk.
"""

from __future__ import annotations

import asyncio
import sqlite3
import tempfile
import unittest
from pathlib import Path

from recipe_store.db import database as database_module
from recipe_store.db.database import Database, close_db, get_db, reset_database
from recipe_store.db.errors import (
    NotFound,
    ReferentialIntegrityViolation,
    RequiredFieldMissing,
    StorageError,
    UniqueConstraintViolation,
)
from recipe_store.db.recipe_repo import RecipeRepository
from recipe_store.db.schema import INDEXES_DDL, TABLE_NAMES, ensure_schema
from recipe_store.db.settings_repo import SettingsRepository
from recipe_store.models.recipe import NewRecipe
from recipe_store.utils.ids import generate_id, now_ms
from recipe_store.utils.names import fold_case, unique_name


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Opens an initialised Database in a fresh temporary directory."""

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "test.db"
        self.db = Database(path=self.db_path)
        self.report = await self.db.init()

    async def asyncTearDown(self):
        await self.db.close()
        self._tmp.cleanup()

    async def schema_objects(self) -> set[tuple[str, str]]:
        rows = await self.db.fetchall(
            "SELECT type, name FROM sqlite_master WHERE name NOT LIKE 'sqlite_%'"
        )
        return {(r["type"], r["name"]) for r in rows}


# ===========================================================================
# 1. Utilities
# ===========================================================================

class TestUtils(unittest.TestCase):
    def test_generate_id_unique(self):
        ids = {generate_id() for _ in range(100)}
        self.assertEqual(len(ids), 100)

    def test_now_ms_strictly_increasing(self):
        values = [now_ms() for _ in range(50)]
        self.assertEqual(values, sorted(set(values)))

    def test_unique_name_free(self):
        self.assertEqual(unique_name("Baking", ["Cooking"]), "Baking")

    def test_unique_name_ignores_case(self):
        self.assertEqual(unique_name("BAKING", ["Baking"]), "BAKING (2)")

    def test_unique_name_lowest_unused_suffix(self):
        taken = ["Baking", "Baking (2)", "baking (4)"]
        self.assertEqual(unique_name("Baking", taken), "Baking (3)")

    def test_unique_name_folds_ascii_only(self):
        # matches SQLite NOCASE, which leaves non-ASCII letters alone
        self.assertEqual(fold_case("ÉCLAIR Cake"), "Éclair cake")
        self.assertEqual(unique_name("éclair", ["Éclair"]), "éclair")
        self.assertEqual(unique_name("ÉCLAIR", ["Éclair"]), "ÉCLAIR (2)")
        self.assertEqual(unique_name("éclair", ["éCLAIR"]), "éclair (2)")


# ===========================================================================
# 2. Database core
# ===========================================================================

class TestDatabaseCore(StoreTestCase):
    async def test_tables_created(self):
        tables = await self.db.fetchall(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        names = {t["name"] for t in tables}
        self.assertTrue(set(TABLE_NAMES).issubset(names), f"Missing: {set(TABLE_NAMES) - names}")

    async def test_indexes_created(self):
        objects = await self.schema_objects()
        for index_name in INDEXES_DDL:
            self.assertIn(("index", index_name), objects)

    async def test_fresh_store_needs_no_migration(self):
        self.assertTrue(self.report.ok)
        self.assertEqual(self.report.applied, [])
        self.assertEqual(self.report.deferred_indexes, [])

    async def test_foreign_keys_enabled(self):
        row = await self.db.fetchone("PRAGMA foreign_keys")
        self.assertEqual(row["foreign_keys"], 1)

    async def test_ensure_schema_idempotent(self):
        before = await self.schema_objects()
        self.assertEqual(await ensure_schema(self.db), [])
        self.assertEqual(await ensure_schema(self.db), [])
        self.assertEqual(await self.schema_objects(), before)

    async def test_transaction_commit(self):
        async with self.db.transaction() as conn:
            await conn.execute(
                "INSERT INTO settings (key, value_json, updated_at) VALUES (?, ?, ?)",
                ("test_key", '"v"', now_ms()),
            )
        row = await self.db.fetchone("SELECT * FROM settings WHERE key = 'test_key'")
        self.assertIsNotNone(row)

    async def test_transaction_rollback(self):
        with self.assertRaises(ValueError):
            async with self.db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO settings (key, value_json, updated_at) VALUES (?, ?, ?)",
                    ("rollback_key", '"v"', now_ms()),
                )
                raise ValueError("Force rollback")
        row = await self.db.fetchone("SELECT * FROM settings WHERE key = 'rollback_key'")
        self.assertIsNone(row)

    async def test_nested_transaction_rejected(self):
        with self.assertRaises(RuntimeError):
            async with self.db.transaction():
                async with self.db.transaction():
                    pass
        # the handle is usable again afterwards
        async with self.db.transaction() as conn:
            await conn.execute("SELECT 1")

    async def test_reads_inside_own_transaction(self):
        async with self.db.transaction() as conn:
            await conn.execute("INSERT INTO tags (id, name) VALUES ('t1', 'Quick')")
            row = await self.db.fetchone("SELECT name FROM tags WHERE id = 't1'")
        self.assertEqual(row["name"], "Quick")

    async def test_concurrent_transactions_serialised(self):
        repo = RecipeRepository(self.db)
        results = await asyncio.gather(
            *(repo.create(NewRecipe(name=f"Recipe {i}", tags=["Shared"])) for i in range(5))
        )
        self.assertEqual(len({r.id for r in results}), 5)
        self.assertEqual(await repo.get_all_tags(), ["Shared"])

    async def test_close_and_reopen(self):
        await self.db.execute("INSERT INTO tags (id, name) VALUES ('t1', 'Quick')")
        await self.db.close()
        row = await self.db.fetchone("SELECT name FROM tags WHERE id = 't1'")
        self.assertEqual(row["name"], "Quick")

    async def test_reset_drops_data(self):
        await RecipeRepository(self.db).create(NewRecipe(name="Soup", tags=["Warm"]))
        await self.db.reset()
        for table in TABLE_NAMES:
            row = await self.db.fetchone(f"SELECT COUNT(*) AS n FROM {table}")
            self.assertEqual(row["n"], 0, table)
        fk = await self.db.fetchone("PRAGMA foreign_keys")
        self.assertEqual(fk["foreign_keys"], 1)

    async def test_table_columns(self):
        columns = await self.db.table_columns("recipe_ingredients")
        self.assertEqual(columns, ["id", "recipe_id", "name", "amount", "unit", "order_index"])
        self.assertEqual(await self.db.table_columns("no_such_table"), [])
        with self.assertRaises(ValueError):
            await self.db.table_columns("recipes; DROP TABLE tags")


# ===========================================================================
# 3. Error classification
# ===========================================================================

class TestErrorClassification(StoreTestCase):
    async def test_unique_violation_ignores_case(self):
        await self.db.execute("INSERT INTO tags (id, name) VALUES ('t1', 'Spicy')")
        with self.assertRaises(UniqueConstraintViolation):
            await self.db.execute("INSERT INTO tags (id, name) VALUES ('t2', 'SPICY')")

    async def test_foreign_key_violation(self):
        with self.assertRaises(ReferentialIntegrityViolation):
            async with self.db.transaction() as conn:
                await conn.execute(
                    """INSERT INTO recipe_ingredients (id, recipe_id, name, order_index)
                       VALUES ('i1', 'missing-recipe', 'flour', 0)"""
                )

    async def test_not_null_violation(self):
        with self.assertRaises(RequiredFieldMissing):
            await self.db.execute("INSERT INTO tags (id, name) VALUES ('t1', NULL)")

    async def test_other_errors_are_opaque(self):
        with self.assertRaises(StorageError) as ctx:
            await self.db.fetchall("SELEC 1")
        self.assertIs(type(ctx.exception), StorageError)

    def test_not_found_carries_id(self):
        err = NotFound("Recipe", "abc")
        self.assertEqual(err.record_id, "abc")
        self.assertIn("Recipe not found", str(err))


class TestFailedCommit(unittest.IsolatedAsyncioTestCase):
    """A COMMIT refused by the engine must not leave the handle mid-transaction."""

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "locked.db"
        # rollback journal: a reader's SHARED lock blocks the writer's COMMIT
        self.db = Database(path=self.db_path, journal_mode="DELETE")
        await self.db.init()
        await self.db.execute("PRAGMA busy_timeout = 0")
        self.reader = sqlite3.connect(str(self.db_path), isolation_level=None)

    async def asyncTearDown(self):
        self.reader.close()
        await self.db.close()
        self._tmp.cleanup()

    async def test_commit_failure_rolls_back(self):
        self.reader.execute("BEGIN")
        self.reader.execute("SELECT * FROM tags").fetchall()

        with self.assertRaises(StorageError):
            async with self.db.transaction() as conn:
                await conn.execute("INSERT INTO tags (id, name) VALUES ('t1', 'Locked')")
        conn = await self.db.connection()
        self.assertFalse(conn.in_transaction)

        self.reader.execute("COMMIT")
        async with self.db.transaction() as conn:
            await conn.execute("INSERT INTO tags (id, name) VALUES ('t2', 'Free')")
        rows = await self.db.fetchall("SELECT name FROM tags ORDER BY name")
        self.assertEqual([r["name"] for r in rows], ["Free"])


# ===========================================================================
# 4. Module singleton
# ===========================================================================

class TestSingleton(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "singleton.db"

    async def asyncTearDown(self):
        await close_db()
        self._tmp.cleanup()

    async def test_get_db_caches_handle(self):
        first = await get_db(self.db_path)
        second = await get_db()
        self.assertIs(first, second)
        await close_db()
        self.assertIsNone(database_module._default_db)
        third = await get_db(self.db_path)
        self.assertIsNot(first, third)

    async def test_concurrent_get_db_shares_handle(self):
        first, second = await asyncio.gather(get_db(self.db_path), get_db(self.db_path))
        self.assertIs(first, second)
        self.assertIs(database_module._default_db, first)

    async def test_reset_database(self):
        db = await get_db(self.db_path)
        await SettingsRepository(db).set("units", "metric")
        await reset_database()
        self.assertIsNone(await SettingsRepository(db).get("units"))


# ===========================================================================
# 5. Settings repo
# ===========================================================================

class TestSettingsRepository(StoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.repo = SettingsRepository(self.db)

    async def test_set_and_get(self):
        await self.repo.set("ai", {"provider": "local", "enabled": True})
        self.assertEqual(await self.repo.get("ai"), {"provider": "local", "enabled": True})

    async def test_overwrite(self):
        await self.repo.set("units", "metric")
        await self.repo.set("units", "imperial")
        self.assertEqual(await self.repo.get("units"), "imperial")

    async def test_default_and_delete(self):
        self.assertEqual(await self.repo.get("missing", default=3), 3)
        await self.repo.set("k", 1)
        self.assertTrue(await self.repo.delete("k"))
        self.assertFalse(await self.repo.delete("k"))
        self.assertEqual(await self.repo.all(), {})

    async def test_malformed_value(self):
        await self.repo.set("units", "metric")
        await self.db.execute(
            "INSERT INTO settings (key, value_json, updated_at) VALUES ('broken', '{oops', ?)",
            (now_ms(),),
        )
        self.assertEqual(await self.repo.get("broken", default="fallback"), "fallback")
        self.assertEqual(await self.repo.all(), {"broken": None, "units": "metric"})


if __name__ == "__main__":
    unittest.main()
