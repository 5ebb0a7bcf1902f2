"""SQLite implementation of SectionRepository."""
from __future__ import annotations

import aiosqlite

from taskvault.db.repositories.base import dump_tags, load_tags, read_failed, write_failed
from taskvault.db.result import ErrorCode, Result, Success, failure, not_found
from taskvault.models import Section


def _row_to_section(row: aiosqlite.Row) -> Section:
    return Section(
        id=row["id"],
        entityType=row["entity_type"],
        entityId=row["entity_id"],
        title=row["title"],
        usageDescription=row["usage_description"] or "",
        content=row["content"] or "",
        contentFormat=row["content_format"] or "markdown",
        ordinal=row["ordinal"] or 0,
        tags=load_tags(row["tags_json"]),
    )


class SqliteSectionRepository:
    """Sections are ordered blocks of content attached to a project, feature or task."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, section: Section) -> Result[Section]:
        try:
            await self.db.execute(
                """INSERT INTO sections (
                    id, entity_type, entity_id, title, usage_description,
                    content, content_format, ordinal, tags_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    section.id, section.entityType, section.entityId, section.title,
                    section.usageDescription, section.content, section.contentFormat,
                    section.ordinal, dump_tags(section.tags),
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create section {section.id}")
        return Success(section)

    async def update(self, section: Section) -> Result[Section]:
        try:
            async with self.db.execute(
                """UPDATE sections SET
                    title = ?, usage_description = ?, content = ?,
                    content_format = ?, ordinal = ?, tags_json = ?
                   WHERE id = ?""",
                (
                    section.title, section.usageDescription, section.content,
                    section.contentFormat, section.ordinal, dump_tags(section.tags),
                    section.id,
                ),
            ) as cur:
                changed = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"update section {section.id}")
        if not changed:
            return not_found("Section", section.id)
        # Owner columns are immutable; return the stored owner, not the caller's copy.
        return await self.get_by_id(section.id)

    async def delete(self, section_id: str) -> Result[bool]:
        try:
            async with self.db.execute("DELETE FROM sections WHERE id = ?", (section_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete section {section_id}")
        if not deleted:
            return not_found("Section", section_id)
        return Success(True)

    async def get_by_id(self, section_id: str) -> Result[Section]:
        try:
            async with self.db.execute(
                "SELECT * FROM sections WHERE id = ?", (section_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get section {section_id}")
        if row is None:
            return not_found("Section", section_id)
        return Success(_row_to_section(row))

    async def list_for_entity(self, entity_type: str, entity_id: str) -> Result[list[Section]]:
        try:
            async with self.db.execute(
                """SELECT * FROM sections
                   WHERE entity_type = ? AND entity_id = ?
                   ORDER BY ordinal, title""",
                (entity_type, entity_id),
            ) as cur:
                return Success([_row_to_section(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, f"list sections for {entity_type} {entity_id}")

    async def reorder(self, entity_type: str, entity_id: str, section_ids: list[str]) -> Result[bool]:
        current = await self.list_for_entity(entity_type, entity_id)
        if not current.ok:
            return current
        known = {s.id for s in current.data}
        if set(section_ids) != known or len(section_ids) != len(known):
            return failure(
                ErrorCode.VALIDATION_ERROR,
                f"Section order for {entity_type} {entity_id} must list each of its sections exactly once",
            )
        try:
            for ordinal, section_id in enumerate(section_ids):
                await self.db.execute(
                    "UPDATE sections SET ordinal = ? WHERE id = ?",
                    (ordinal, section_id),
                )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"reorder sections for {entity_type} {entity_id}")
        return Success(True)
