"""Repository for templates and their ordered sections."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

import aiosqlite

from recipe_store.db.database import Database
from recipe_store.db.errors import NotFound
from recipe_store.models.template import NewTemplate, Template, TemplateSection
from recipe_store.utils.ids import generate_id, now_ms
from recipe_store.utils.names import unique_name

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Default"
DEFAULT_SECTION_NAME = "Instructions"

SectionInput = Union[str, TemplateSection]


def _section_name(section: SectionInput) -> str:
    return section.name if isinstance(section, TemplateSection) else section


class TemplateRepository:
    """Single-Responsibility repository for template persistence."""

    def __init__(self, db: Database):
        self._db = db

    # -- Read ------------------------------------------------------------------

    async def get_all(self) -> list[Template]:
        return await self._list()

    async def get_by_id(self, template_id: str) -> Optional[Template]:
        found = await self._list("id = ?", (template_id,))
        return found[0] if found else None

    async def get_by_name(self, name: str) -> Optional[Template]:
        """Exact match ignoring case."""
        found = await self._list("name = ? COLLATE NOCASE", (name.strip(),))
        return found[0] if found else None

    async def search(self, query: str) -> list[Template]:
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return await self._list("name LIKE ? ESCAPE '\\'", (f"%{escaped}%",))

    async def get_default(self) -> Template:
        """
        First template by name; when none exist a ``Default`` template with a
        single ``Instructions`` section is created atomically.
        """
        async with self._db.transaction() as conn:
            rows = await conn.execute_fetchall(
                """SELECT id FROM templates WHERE deleted_at IS NULL
                   ORDER BY name COLLATE NOCASE ASC LIMIT 1"""
            )
            if rows:
                template_id = rows[0]["id"]
            else:
                template_id = await self._insert_template(
                    conn, DEFAULT_TEMPLATE_NAME, [DEFAULT_SECTION_NAME]
                )
                logger.info(f"Created fallback template {template_id}")
        return await self._require(template_id)

    # -- Create ----------------------------------------------------------------

    async def create(self, data: NewTemplate) -> Template:
        """
        Insert a template with its sections. A name that collides with an
        existing one ignoring case gets the lowest free ``" (n)"`` suffix.
        """
        async with self._db.transaction() as conn:
            template_id = await self._insert_template(conn, data.name, data.sections)
        return await self._require(template_id)

    # -- Update ----------------------------------------------------------------

    async def update(
        self,
        template_id: str,
        name: Optional[str] = None,
        sections: Optional[list[SectionInput]] = None,
    ) -> Template:
        """
        Rename and/or replace the section list. Sections are replaced wholesale
        with fresh ids and a dense ``order_index``; there is no diffing.
        """
        now = now_ms()
        set_parts = ["updated_at = ?"]
        values: list[object] = [now]
        if name is not None:
            set_parts.insert(0, "name = ?")
            values.insert(0, name.strip())
        values.append(template_id)

        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE templates SET {', '.join(set_parts)} "
                "WHERE id = ? AND deleted_at IS NULL",
                tuple(values),
            )
            if cursor.rowcount == 0:
                raise NotFound("Template", template_id)
            if sections is not None:
                await conn.execute(
                    "DELETE FROM template_sections WHERE template_id = ?", (template_id,)
                )
                await self._insert_sections(conn, template_id, sections, now)
        return await self._require(template_id)

    # -- Delete (soft) ---------------------------------------------------------

    async def delete(self, template_id: str) -> None:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE templates SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now_ms(), template_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Template", template_id)
        logger.info(f"Deleted template {template_id}")

    # -- internal --------------------------------------------------------------

    async def _list(self, where: str = "", params: tuple = ()) -> list[Template]:
        clause = "deleted_at IS NULL" + (f" AND {where}" if where else "")
        async with self._db.transaction() as conn:
            rows = [
                dict(r)
                for r in await conn.execute_fetchall(
                    f"""SELECT id, name, created_at, updated_at, deleted_at
                        FROM templates WHERE {clause}
                        ORDER BY name COLLATE NOCASE ASC""",
                    params,
                )
            ]
            sections = await self._sections_for(conn, [r["id"] for r in rows])
        return [Template.from_row(r, sections.get(r["id"], [])) for r in rows]

    @staticmethod
    async def _sections_for(
        conn: aiosqlite.Connection, template_ids: list[str]
    ) -> dict[str, list[TemplateSection]]:
        if not template_ids:
            return {}
        placeholders = ", ".join("?" for _ in template_ids)
        rows = await conn.execute_fetchall(
            f"""SELECT id, template_id, name, order_index FROM template_sections
                WHERE template_id IN ({placeholders})
                ORDER BY template_id, order_index ASC""",
            tuple(template_ids),
        )
        by_template: dict[str, list[TemplateSection]] = {}
        for row in rows:
            by_template.setdefault(row["template_id"], []).append(
                TemplateSection.from_row(dict(row))
            )
        return by_template

    async def _insert_template(
        self, conn: aiosqlite.Connection, name: str, sections: Iterable[SectionInput]
    ) -> str:
        requested = name.strip()
        taken = [r["name"] for r in await conn.execute_fetchall("SELECT name FROM templates")]
        final_name = unique_name(requested, taken)
        if final_name != requested:
            logger.info(f"Template name {requested!r} is taken, using {final_name!r}")

        template_id = generate_id()
        now = now_ms()
        await conn.execute(
            "INSERT INTO templates (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (template_id, final_name, now, now),
        )
        await self._insert_sections(conn, template_id, sections, now)
        return template_id

    @staticmethod
    async def _insert_sections(
        conn: aiosqlite.Connection,
        template_id: str,
        sections: Iterable[SectionInput],
        now: int,
    ) -> None:
        await conn.executemany(
            """INSERT INTO template_sections
               (id, template_id, name, order_index, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (generate_id(), template_id, _section_name(s).strip(), index, now, now)
                for index, s in enumerate(sections)
            ],
        )

    async def _require(self, template_id: str) -> Template:
        template = await self.get_by_id(template_id)
        if template is None:
            raise NotFound("Template", template_id)
        return template
