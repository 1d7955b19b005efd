"""Repository for the ``settings`` key/value table."""

from __future__ import annotations

import json
from typing import Any, Optional

from recipe_store.db.database import Database
from recipe_store.utils.ids import now_ms


def _decode(value_json: Optional[str], default: Any = None) -> Any:
    try:
        return json.loads(value_json)
    except (json.JSONDecodeError, TypeError):
        return default


class SettingsRepository:
    """Key-value store for app-level configuration; values are JSON-encoded."""

    def __init__(self, db: Database):
        self._db = db

    async def get(self, key: str, default: Optional[Any] = None) -> Any:
        row = await self._db.fetchone("SELECT value_json FROM settings WHERE key = ?", (key,))
        if row is None:
            return default
        return _decode(row["value_json"], default)

    async def set(self, key: str, value: Any) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO settings (key, value_json, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE
                   SET value_json = excluded.value_json, updated_at = excluded.updated_at""",
                (key, json.dumps(value), now_ms()),
            )

    async def delete(self, key: str) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        return cursor.rowcount > 0

    async def all(self) -> dict[str, Any]:
        rows = await self._db.fetchall("SELECT key, value_json FROM settings ORDER BY key")
        return {r["key"]: _decode(r["value_json"]) for r in rows}
