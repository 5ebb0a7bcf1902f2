"""Repository contracts shared by the SQLite store and the export-aware decorators."""
from __future__ import annotations

import json
import logging
from typing import Protocol

import aiosqlite

from taskvault.db.result import Error, ErrorCode, Result, failure
from taskvault.models import Dependency, Feature, Project, Section, Task, Template

logger = logging.getLogger("taskvault.db")


class ProjectRepository(Protocol):
    async def create(self, project: Project) -> Result[Project]: ...
    async def update(self, project: Project) -> Result[Project]: ...
    async def delete(self, project_id: str) -> Result[bool]: ...
    async def get_by_id(self, project_id: str) -> Result[Project]: ...
    async def list_all(self, limit: int | None = None) -> Result[list[Project]]: ...


class FeatureRepository(Protocol):
    async def create(self, feature: Feature) -> Result[Feature]: ...
    async def update(self, feature: Feature) -> Result[Feature]: ...
    async def delete(self, feature_id: str) -> Result[bool]: ...
    async def get_by_id(self, feature_id: str) -> Result[Feature]: ...
    async def list_all(self, limit: int | None = None) -> Result[list[Feature]]: ...
    async def list_by_project(self, project_id: str) -> Result[list[Feature]]: ...


class TaskRepository(Protocol):
    async def create(self, task: Task) -> Result[Task]: ...
    async def update(self, task: Task) -> Result[Task]: ...
    async def delete(self, task_id: str) -> Result[bool]: ...
    async def get_by_id(self, task_id: str) -> Result[Task]: ...
    async def list_all(self, limit: int | None = None) -> Result[list[Task]]: ...
    async def list_by_project(self, project_id: str) -> Result[list[Task]]: ...
    async def list_by_feature(self, feature_id: str) -> Result[list[Task]]: ...


class SectionRepository(Protocol):
    async def create(self, section: Section) -> Result[Section]: ...
    async def update(self, section: Section) -> Result[Section]: ...
    async def delete(self, section_id: str) -> Result[bool]: ...
    async def get_by_id(self, section_id: str) -> Result[Section]: ...
    async def list_for_entity(self, entity_type: str, entity_id: str) -> Result[list[Section]]: ...
    async def reorder(self, entity_type: str, entity_id: str, section_ids: list[str]) -> Result[bool]: ...


class TemplateRepository(Protocol):
    async def create(self, template: Template) -> Result[Template]: ...
    async def delete(self, template_id: str) -> Result[bool]: ...
    async def get_by_id(self, template_id: str) -> Result[Template]: ...
    async def list_all(self, target_entity_type: str | None = None) -> Result[list[Template]]: ...


class DependencyRepository(Protocol):
    async def create(self, dependency: Dependency) -> Result[Dependency]: ...
    async def delete(self, dependency_id: str) -> Result[bool]: ...
    async def get_by_id(self, dependency_id: str) -> Result[Dependency]: ...
    async def list_for_task(self, task_id: str) -> Result[list[Dependency]]: ...


class RepositoryProvider(Protocol):
    def project_repository(self) -> ProjectRepository: ...
    def feature_repository(self) -> FeatureRepository: ...
    def task_repository(self) -> TaskRepository: ...
    def section_repository(self) -> SectionRepository: ...
    def template_repository(self) -> TemplateRepository: ...
    def dependency_repository(self) -> DependencyRepository: ...


# ── Shared SQLite helpers ──────────────────────────────────────────

def dump_tags(tags: list[str]) -> str:
    return json.dumps(list(tags or []))


def load_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(t) for t in parsed] if isinstance(parsed, list) else []


async def write_failed(db: aiosqlite.Connection, exc: aiosqlite.Error, action: str) -> Error:
    """Roll back the pending transaction and map the driver error to a result."""
    try:
        await db.rollback()
    except aiosqlite.Error as rollback_exc:
        logger.warning(f"Rollback after failed {action} also failed: {rollback_exc}")

    message = str(exc)
    if isinstance(exc, aiosqlite.IntegrityError):
        if "FOREIGN KEY" in message.upper():
            return failure(ErrorCode.VALIDATION_ERROR, f"{action}: referenced parent does not exist")
        return failure(ErrorCode.CONFLICT, f"{action}: {message}")
    logger.error(f"Database error during {action}: {message}")
    return failure(ErrorCode.DATABASE_ERROR, f"{action}: {message}")


def read_failed(exc: aiosqlite.Error, action: str) -> Error:
    logger.error(f"Database error during {action}: {exc}")
    return failure(ErrorCode.DATABASE_ERROR, f"{action}: {exc}")
