"""SQLite implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from taskvault.db.repositories.base import dump_tags, load_tags, read_failed, write_failed
from taskvault.db.result import Result, Success, not_found
from taskvault.models import Project


def _row_to_project(row: aiosqlite.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        summary=row["summary"] or "",
        description=row["description"] or "",
        status=row["status"],
        tags=load_tags(row["tags_json"]),
        createdAt=row["created_at"],
        modifiedAt=row["modified_at"],
    )


class SqliteProjectRepository:
    """SQLite-backed project storage. Deleting a project cascades to its features and tasks."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, project: Project) -> Result[Project]:
        try:
            await self.db.execute(
                """INSERT INTO projects (
                    id, name, summary, description, status, tags_json, created_at, modified_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    project.id, project.name, project.summary, project.description,
                    project.status, dump_tags(project.tags),
                    project.createdAt, project.modifiedAt,
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create project {project.id}")
        return Success(project)

    async def update(self, project: Project) -> Result[Project]:
        now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        updated = project.model_copy(update={"modifiedAt": now})
        try:
            async with self.db.execute(
                """UPDATE projects SET
                    name = ?, summary = ?, description = ?, status = ?,
                    tags_json = ?, modified_at = ?
                   WHERE id = ?""",
                (
                    updated.name, updated.summary, updated.description, updated.status,
                    dump_tags(updated.tags), updated.modifiedAt, updated.id,
                ),
            ) as cur:
                changed = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"update project {project.id}")
        if not changed:
            return not_found("Project", project.id)
        return Success(updated)

    async def delete(self, project_id: str) -> Result[bool]:
        try:
            # Sections have no foreign key to their owner; clear the whole subtree first.
            await self.db.execute(
                """DELETE FROM sections WHERE
                    (entity_type = 'project' AND entity_id = ?)
                 OR (entity_type = 'feature' AND entity_id IN
                        (SELECT id FROM features WHERE project_id = ?))
                 OR (entity_type = 'task' AND entity_id IN
                        (SELECT id FROM tasks WHERE project_id = ?
                            OR feature_id IN (SELECT id FROM features WHERE project_id = ?)))""",
                (project_id, project_id, project_id, project_id),
            )
            async with self.db.execute("DELETE FROM projects WHERE id = ?", (project_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete project {project_id}")
        if not deleted:
            return not_found("Project", project_id)
        return Success(True)

    async def get_by_id(self, project_id: str) -> Result[Project]:
        try:
            async with self.db.execute(
                "SELECT * FROM projects WHERE id = ?", (project_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get project {project_id}")
        if row is None:
            return not_found("Project", project_id)
        return Success(_row_to_project(row))

    async def list_all(self, limit: int | None = None) -> Result[list[Project]]:
        query = "SELECT * FROM projects ORDER BY name"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        try:
            async with self.db.execute(query, params) as cur:
                return Success([_row_to_project(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, "list projects")
