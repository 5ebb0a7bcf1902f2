"""SQLite implementation of TaskRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from taskvault.db.repositories.base import dump_tags, load_tags, read_failed, write_failed
from taskvault.db.result import Result, Success, not_found
from taskvault.models import Task


def _row_to_task(row: aiosqlite.Row) -> Task:
    return Task(
        id=row["id"],
        projectId=row["project_id"],
        featureId=row["feature_id"],
        title=row["title"],
        summary=row["summary"] or "",
        description=row["description"] or "",
        status=row["status"],
        priority=row["priority"],
        complexity=row["complexity"] if row["complexity"] is not None else 5,
        tags=load_tags(row["tags_json"]),
        createdAt=row["created_at"],
        modifiedAt=row["modified_at"],
    )


class SqliteTaskRepository:
    """SQLite-backed task storage."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, task: Task) -> Result[Task]:
        try:
            await self.db.execute(
                """INSERT INTO tasks (
                    id, project_id, feature_id, title, summary, description,
                    status, priority, complexity, tags_json, created_at, modified_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    task.id, task.projectId, task.featureId, task.title, task.summary,
                    task.description, task.status, task.priority, task.complexity,
                    dump_tags(task.tags), task.createdAt, task.modifiedAt,
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create task {task.id}")
        return Success(task)

    async def update(self, task: Task) -> Result[Task]:
        now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        updated = task.model_copy(update={"modifiedAt": now})
        try:
            async with self.db.execute(
                """UPDATE tasks SET
                    project_id = ?, feature_id = ?, title = ?, summary = ?,
                    description = ?, status = ?, priority = ?, complexity = ?,
                    tags_json = ?, modified_at = ?
                   WHERE id = ?""",
                (
                    updated.projectId, updated.featureId, updated.title, updated.summary,
                    updated.description, updated.status, updated.priority,
                    updated.complexity, dump_tags(updated.tags), updated.modifiedAt,
                    updated.id,
                ),
            ) as cur:
                changed = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"update task {task.id}")
        if not changed:
            return not_found("Task", task.id)
        return Success(updated)

    async def delete(self, task_id: str) -> Result[bool]:
        try:
            await self.db.execute(
                "DELETE FROM sections WHERE entity_type = 'task' AND entity_id = ?",
                (task_id,),
            )
            async with self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete task {task_id}")
        if not deleted:
            return not_found("Task", task_id)
        return Success(True)

    async def get_by_id(self, task_id: str) -> Result[Task]:
        try:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE id = ?", (task_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get task {task_id}")
        if row is None:
            return not_found("Task", task_id)
        return Success(_row_to_task(row))

    async def list_all(self, limit: int | None = None) -> Result[list[Task]]:
        query = "SELECT * FROM tasks ORDER BY modified_at DESC, id"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        try:
            async with self.db.execute(query, params) as cur:
                return Success([_row_to_task(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, "list tasks")

    async def list_by_project(self, project_id: str) -> Result[list[Task]]:
        """All tasks carrying ``project_id``, whether or not they also belong to a feature."""
        try:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE project_id = ? ORDER BY title, id",
                (project_id,),
            ) as cur:
                return Success([_row_to_task(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, f"list tasks for project {project_id}")

    async def list_by_feature(self, feature_id: str) -> Result[list[Task]]:
        try:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE feature_id = ? ORDER BY title, id",
                (feature_id,),
            ) as cur:
                return Success([_row_to_task(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, f"list tasks for feature {feature_id}")
