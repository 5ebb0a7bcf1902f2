"""SQLite implementation of TemplateRepository and DependencyRepository."""
from __future__ import annotations

import aiosqlite

from taskvault.db.repositories.base import dump_tags, load_tags, read_failed, write_failed
from taskvault.db.result import Result, Success, not_found
from taskvault.models import Dependency, Template


def _row_to_template(row: aiosqlite.Row) -> Template:
    return Template(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        targetEntityType=row["target_entity_type"],
        isBuiltIn=bool(row["is_built_in"]),
        isEnabled=bool(row["is_enabled"]),
        tags=load_tags(row["tags_json"]),
    )


def _row_to_dependency(row: aiosqlite.Row) -> Dependency:
    return Dependency(
        id=row["id"],
        fromTaskId=row["from_task_id"],
        toTaskId=row["to_task_id"],
        type=row["type"],
    )


class SqliteTemplateRepository:
    """Section templates. Templates have no markdown form."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, template: Template) -> Result[Template]:
        try:
            await self.db.execute(
                """INSERT INTO templates (
                    id, name, description, target_entity_type, is_built_in, is_enabled, tags_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    template.id, template.name, template.description,
                    template.targetEntityType, int(template.isBuiltIn),
                    int(template.isEnabled), dump_tags(template.tags),
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create template {template.id}")
        return Success(template)

    async def delete(self, template_id: str) -> Result[bool]:
        try:
            async with self.db.execute("DELETE FROM templates WHERE id = ?", (template_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete template {template_id}")
        if not deleted:
            return not_found("Template", template_id)
        return Success(True)

    async def get_by_id(self, template_id: str) -> Result[Template]:
        try:
            async with self.db.execute(
                "SELECT * FROM templates WHERE id = ?", (template_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get template {template_id}")
        if row is None:
            return not_found("Template", template_id)
        return Success(_row_to_template(row))

    async def list_all(self, target_entity_type: str | None = None) -> Result[list[Template]]:
        try:
            if target_entity_type:
                async with self.db.execute(
                    "SELECT * FROM templates WHERE target_entity_type = ? ORDER BY name",
                    (target_entity_type,),
                ) as cur:
                    return Success([_row_to_template(r) for r in await cur.fetchall()])
            async with self.db.execute("SELECT * FROM templates ORDER BY name") as cur:
                return Success([_row_to_template(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, "list templates")


class SqliteDependencyRepository:
    """Task-to-task dependency edges. Removed automatically with either task."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, dependency: Dependency) -> Result[Dependency]:
        try:
            await self.db.execute(
                "INSERT INTO dependencies (id, from_task_id, to_task_id, type) VALUES (?, ?, ?, ?)",
                (dependency.id, dependency.fromTaskId, dependency.toTaskId, dependency.type),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create dependency {dependency.id}")
        return Success(dependency)

    async def delete(self, dependency_id: str) -> Result[bool]:
        try:
            async with self.db.execute("DELETE FROM dependencies WHERE id = ?", (dependency_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete dependency {dependency_id}")
        if not deleted:
            return not_found("Dependency", dependency_id)
        return Success(True)

    async def get_by_id(self, dependency_id: str) -> Result[Dependency]:
        try:
            async with self.db.execute(
                "SELECT * FROM dependencies WHERE id = ?", (dependency_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get dependency {dependency_id}")
        if row is None:
            return not_found("Dependency", dependency_id)
        return Success(_row_to_dependency(row))

    async def list_for_task(self, task_id: str) -> Result[list[Dependency]]:
        try:
            async with self.db.execute(
                """SELECT * FROM dependencies
                   WHERE from_task_id = ? OR to_task_id = ?
                   ORDER BY type, id""",
                (task_id, task_id),
            ) as cur:
                return Success([_row_to_dependency(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, f"list dependencies for task {task_id}")
