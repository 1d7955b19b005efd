"""Core async database connection with ACID transaction support."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiosqlite

from recipe_store.db.errors import classify_error
from recipe_store.db.migrations import MigrationReport, run_migrations
from recipe_store.db.schema import DROP_TABLES_DDL, ensure_schema

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class Database:
    """
    SQLite database wrapper with explicit ACID transaction support.

    Owns a single ``aiosqlite`` connection, opened lazily and cached until
    ``close()``. Every mutation goes through ``transaction()``, which commits
    on success and rolls back on failure. Transactions are serialised on the
    handle, so one logical operation finishes before the next one begins.
    """

    def __init__(self, path: Optional[Path | str] = None, journal_mode: Optional[str] = None):
        from recipe_store.config import get_store_config
        config = get_store_config()
        if path is None:
            self.path: Path | str = config.db_path
        elif isinstance(path, str) and path != MEMORY:
            self.path = Path(path)
        else:
            self.path = path
        self.journal_mode = (journal_mode or config.journal_mode).upper()
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None

    # -- connection lifecycle --------------------------------------------------

    @property
    def in_memory(self) -> bool:
        return str(self.path) == MEMORY

    def _ensure_dir(self) -> None:
        if not self.in_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    async def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._ensure_dir()
            conn = await aiosqlite.connect(str(self.path), isolation_level=None)
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            if not self.in_memory:
                await conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
            self._conn = conn
            logger.debug(f"Opened database at {self.path}")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.debug(f"Closed database at {self.path}")

    async def init(self) -> MigrationReport:
        """Create missing tables and indexes, then migrate legacy shapes."""
        deferred = await ensure_schema(self)
        report = await run_migrations(self)
        report.deferred_indexes = deferred
        return report

    async def reset(self) -> None:
        """Drop every table and recreate the empty schema. Irreversible."""
        await self.set_foreign_keys(False)
        try:
            await self.executescript(DROP_TABLES_DDL)
            await ensure_schema(self)
        finally:
            await self.set_foreign_keys(True)
        logger.warning(f"Database at {self.path} was reset")

    # -- transaction helpers ---------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """ACID transaction: commits on success, rolls back on exception."""
        if self._owner is not None and self._owner is asyncio.current_task():
            raise RuntimeError("Nested transactions are not supported")
        async with self._lock:
            conn = await self.connection()
            self._owner = asyncio.current_task()
            try:
                await conn.execute("BEGIN")
                try:
                    yield conn
                except BaseException:
                    if conn.in_transaction:
                        await conn.execute("ROLLBACK")
                    raise
                try:
                    await conn.execute("COMMIT")
                except sqlite3.Error:
                    # a failed COMMIT (e.g. SQLITE_BUSY) leaves the transaction open
                    if conn.in_transaction:
                        await conn.execute("ROLLBACK")
                    raise
            except sqlite3.Error as e:
                raise classify_error(e) from e
            finally:
                self._owner = None

    @asynccontextmanager
    async def _serialized(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await self.connection()
        if self._owner is not None and self._owner is asyncio.current_task():
            yield conn
            return
        async with self._lock:
            yield conn

    # -- low-level query helpers -----------------------------------------------

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run one statement outside any caller transaction; returns rowcount."""
        async with self._serialized() as conn:
            try:
                cursor = await conn.execute(sql, params)
                rowcount = cursor.rowcount
                await cursor.close()
                return rowcount
            except sqlite3.Error as e:
                raise classify_error(e) from e

    async def executescript(self, script: str) -> None:
        """Run several statements at once; each commits on its own."""
        async with self._serialized() as conn:
            try:
                await conn.executescript(script)
            except sqlite3.Error as e:
                raise classify_error(e) from e

    async def fetchone(self, sql: str, params: tuple = ()) -> Optional[dict[str, Any]]:
        async with self._serialized() as conn:
            try:
                async with conn.execute(sql, params) as cursor:
                    row = await cursor.fetchone()
            except sqlite3.Error as e:
                raise classify_error(e) from e
        return dict(row) if row else None

    async def fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self._serialized() as conn:
            try:
                rows = await conn.execute_fetchall(sql, params)
            except sqlite3.Error as e:
                raise classify_error(e) from e
        return [dict(r) for r in rows]

    async def table_columns(self, table: str) -> list[str]:
        """Live column names of ``table``; empty when the table is missing."""
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        rows = await self.fetchall(f"PRAGMA table_info({table})")
        return [r["name"] for r in rows]

    async def set_foreign_keys(self, enabled: bool) -> None:
        await self.execute(f"PRAGMA foreign_keys = {'ON' if enabled else 'OFF'}")


# -- module singleton ----------------------------------------------------------

_default_db: Optional[Database] = None
_default_lock: Optional[asyncio.Lock] = None


async def get_db(path: Optional[Path | str] = None) -> Database:
    """Return (and lazily initialise) the module-level Database singleton."""
    global _default_db, _default_lock
    if _default_db is not None:
        return _default_db
    if _default_lock is None:
        _default_lock = asyncio.Lock()
    async with _default_lock:
        if _default_db is None:
            db = Database(path)
            try:
                report = await db.init()
            except BaseException:
                await db.close()
                raise
            if not report.ok:
                logger.warning(f"Database opened with degraded migrations: {report.summary()}")
            _default_db = db
    return _default_db


async def close_db() -> None:
    """Close and discard the singleton (used before teardown and in tests)."""
    global _default_db, _default_lock
    _default_lock = None
    if _default_db is not None:
        await _default_db.close()
        _default_db = None


async def reset_database() -> None:
    """Drop and recreate every table of the singleton database."""
    db = await get_db()
    await db.reset()
