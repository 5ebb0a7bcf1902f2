"""SQLite implementation of FeatureRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from taskvault.db.repositories.base import dump_tags, load_tags, read_failed, write_failed
from taskvault.db.result import Result, Success, not_found
from taskvault.models import Feature


def _row_to_feature(row: aiosqlite.Row) -> Feature:
    return Feature(
        id=row["id"],
        projectId=row["project_id"],
        name=row["name"],
        summary=row["summary"] or "",
        description=row["description"] or "",
        status=row["status"],
        priority=row["priority"],
        tags=load_tags(row["tags_json"]),
        createdAt=row["created_at"],
        modifiedAt=row["modified_at"],
    )


class SqliteFeatureRepository:
    """SQLite-backed feature storage. Deleting a feature cascades to its tasks."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, feature: Feature) -> Result[Feature]:
        try:
            await self.db.execute(
                """INSERT INTO features (
                    id, project_id, name, summary, description, status, priority,
                    tags_json, created_at, modified_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    feature.id, feature.projectId, feature.name, feature.summary,
                    feature.description, feature.status, feature.priority,
                    dump_tags(feature.tags), feature.createdAt, feature.modifiedAt,
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"create feature {feature.id}")
        return Success(feature)

    async def update(self, feature: Feature) -> Result[Feature]:
        now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        updated = feature.model_copy(update={"modifiedAt": now})
        try:
            async with self.db.execute(
                """UPDATE features SET
                    project_id = ?, name = ?, summary = ?, description = ?,
                    status = ?, priority = ?, tags_json = ?, modified_at = ?
                   WHERE id = ?""",
                (
                    updated.projectId, updated.name, updated.summary, updated.description,
                    updated.status, updated.priority, dump_tags(updated.tags),
                    updated.modifiedAt, updated.id,
                ),
            ) as cur:
                changed = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"update feature {feature.id}")
        if not changed:
            return not_found("Feature", feature.id)
        return Success(updated)

    async def delete(self, feature_id: str) -> Result[bool]:
        try:
            await self.db.execute(
                """DELETE FROM sections WHERE
                    (entity_type = 'feature' AND entity_id = ?)
                 OR (entity_type = 'task' AND entity_id IN
                        (SELECT id FROM tasks WHERE feature_id = ?))""",
                (feature_id, feature_id),
            )
            async with self.db.execute("DELETE FROM features WHERE id = ?", (feature_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        except aiosqlite.Error as exc:
            return await write_failed(self.db, exc, f"delete feature {feature_id}")
        if not deleted:
            return not_found("Feature", feature_id)
        return Success(True)

    async def get_by_id(self, feature_id: str) -> Result[Feature]:
        try:
            async with self.db.execute(
                "SELECT * FROM features WHERE id = ?", (feature_id,)
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            return read_failed(exc, f"get feature {feature_id}")
        if row is None:
            return not_found("Feature", feature_id)
        return Success(_row_to_feature(row))

    async def list_all(self, limit: int | None = None) -> Result[list[Feature]]:
        query = "SELECT * FROM features ORDER BY name"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        try:
            async with self.db.execute(query, params) as cur:
                return Success([_row_to_feature(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, "list features")

    async def list_by_project(self, project_id: str) -> Result[list[Feature]]:
        try:
            async with self.db.execute(
                "SELECT * FROM features WHERE project_id = ? ORDER BY name",
                (project_id,),
            ) as cur:
                return Success([_row_to_feature(r) for r in await cur.fetchall()])
        except aiosqlite.Error as exc:
            return read_failed(exc, f"list features for project {project_id}")
