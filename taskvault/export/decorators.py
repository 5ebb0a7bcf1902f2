"""Export-aware repository decorators.

Each decorator wraps a base repository, forwards every call it does not
override, and after a successful mutation schedules the matching markdown
export on the ``ExportScope``. The caller gets the base repository's result
back unchanged; export work never delays or fails a write.
"""
from __future__ import annotations

import logging
from typing import Any

from taskvault.db.repositories.base import (
    FeatureRepository,
    ProjectRepository,
    TaskRepository,
)
from taskvault.db.result import Result
from taskvault.export.scope import ExportScope
from taskvault.export.service import MarkdownExportService
from taskvault.models import EntityType, Feature, Project, Section, Task

logger = logging.getLogger("taskvault.export")


class _ExportAwareRepository:
    def __init__(self, delegate: Any, export_service: MarkdownExportService, scope: ExportScope):
        self._delegate = delegate
        self._export = export_service
        self._scope = scope

    def __getattr__(self, name: str) -> Any:
        return getattr(self._delegate, name)

    def _launch(self, coro, description: str) -> None:
        self._scope.launch(coro, description)


class ExportAwareTaskRepository(_ExportAwareRepository):
    async def create(self, task: Task) -> Result[Task]:
        result = await self._delegate.create(task)
        if result.ok:
            self._launch(self._export_and_notify(result.data), f"export-task-{result.data.id}")
        return result

    async def update(self, task: Task) -> Result[Task]:
        previous = await self._delegate.get_by_id(task.id)
        result = await self._delegate.update(task)
        if result.ok:
            self._launch(
                self._export_and_notify(result.data, previous.data if previous.ok else None),
                f"export-task-{result.data.id}",
            )
        return result

    async def delete(self, task_id: str) -> Result[bool]:
        # Parents are only known before the row disappears.
        existing = await self._delegate.get_by_id(task_id)
        result = await self._delegate.delete(task_id)
        if result.ok and result.data:
            task = existing.data if existing.ok else None
            self._launch(self._remove_and_notify(task_id, task), f"delete-task-{task_id}")
        return result

    async def _export_and_notify(self, task: Task, previous: Task | None = None) -> None:
        await self._export.export_task(task.id)
        await self._export.notify_parent_exports(task.featureId, task.projectId)
        if previous is not None and (previous.featureId, previous.projectId) != (task.featureId, task.projectId):
            await self._export.notify_parent_exports(previous.featureId, previous.projectId)

    async def _remove_and_notify(self, task_id: str, task: Task | None) -> None:
        await self._export.on_entity_deleted(task_id)
        if task is not None:
            await self._export.notify_parent_exports(task.featureId, task.projectId)


class ExportAwareFeatureRepository(_ExportAwareRepository):
    def __init__(
        self,
        delegate: FeatureRepository,
        tasks: TaskRepository,
        export_service: MarkdownExportService,
        scope: ExportScope,
    ):
        super().__init__(delegate, export_service, scope)
        self._tasks = tasks

    async def create(self, feature: Feature) -> Result[Feature]:
        result = await self._delegate.create(feature)
        if result.ok:
            self._launch(self._export_and_notify(result.data), f"export-feature-{result.data.id}")
        return result

    async def update(self, feature: Feature) -> Result[Feature]:
        previous = await self._delegate.get_by_id(feature.id)
        result = await self._delegate.update(feature)
        if result.ok:
            old_project_id = previous.data.projectId if previous.ok else None
            self._launch(
                self._export_and_notify(result.data, old_project_id),
                f"export-feature-{result.data.id}",
            )
        return result

    async def delete(self, feature_id: str) -> Result[bool]:
        existing = await self._delegate.get_by_id(feature_id)
        project_id = existing.data.projectId if existing.ok else None
        task_ids = await self._collect_task_ids(feature_id)
        result = await self._delegate.delete(feature_id)
        if result.ok and result.data:
            self._launch(self._remove_cascade(feature_id, task_ids, project_id), f"delete-feature-{feature_id}")
        return result

    async def _collect_task_ids(self, feature_id: str) -> list[str]:
        tasks = await self._tasks.list_by_feature(feature_id)
        if not tasks.ok:
            logger.warning(f"Could not collect tasks of feature {feature_id} before delete: {tasks.error.message}")
            return []
        return [t.id for t in tasks.data]

    async def _export_and_notify(self, feature: Feature, old_project_id: str | None = None) -> None:
        await self._export.export_feature(feature.id)
        if feature.projectId:
            await self._export.export_project(feature.projectId)
        if old_project_id and old_project_id != feature.projectId:
            await self._export.export_project(old_project_id)

    async def _remove_cascade(self, feature_id: str, task_ids: list[str], project_id: str | None) -> None:
        for task_id in task_ids:
            await self._export.on_entity_deleted(task_id)
        await self._export.on_entity_deleted(feature_id)
        if project_id:
            await self._export.export_project(project_id)


class ExportAwareProjectRepository(_ExportAwareRepository):
    def __init__(
        self,
        delegate: ProjectRepository,
        features: FeatureRepository,
        tasks: TaskRepository,
        export_service: MarkdownExportService,
        scope: ExportScope,
    ):
        super().__init__(delegate, export_service, scope)
        self._features = features
        self._tasks = tasks

    async def create(self, project: Project) -> Result[Project]:
        result = await self._delegate.create(project)
        if result.ok:
            self._launch(self._export.export_project(result.data.id), f"export-project-{result.data.id}")
        return result

    async def update(self, project: Project) -> Result[Project]:
        result = await self._delegate.update(project)
        if result.ok:
            self._launch(self._export.export_project(result.data.id), f"export-project-{result.data.id}")
        return result

    async def delete(self, project_id: str) -> Result[bool]:
        # The store cascades the delete to children, so their IDs must be read first.
        feature_ids, task_ids = await self._collect_children(project_id)
        result = await self._delegate.delete(project_id)
        if result.ok and result.data:
            logger.debug(
                f"Project {project_id} deleted, removing {len(task_ids)} task and "
                f"{len(feature_ids)} feature file(s)"
            )
            self._launch(
                self._remove_cascade(project_id, feature_ids, task_ids),
                f"delete-project-{project_id}",
            )
        return result

    async def _collect_children(self, project_id: str) -> tuple[list[str], list[str]]:
        feature_ids: list[str] = []
        task_ids: list[str] = []
        features = await self._features.list_by_project(project_id)
        if features.ok:
            feature_ids = [f.id for f in features.data]
        else:
            logger.warning(f"Could not collect features of project {project_id} before delete: {features.error.message}")

        for feature_id in feature_ids:
            tasks = await self._tasks.list_by_feature(feature_id)
            if tasks.ok:
                task_ids.extend(t.id for t in tasks.data)
            else:
                logger.warning(f"Could not collect tasks of feature {feature_id} before delete: {tasks.error.message}")

        direct = await self._tasks.list_by_project(project_id)
        if direct.ok:
            collected = set(task_ids)
            task_ids.extend(t.id for t in direct.data if t.id not in collected)
        else:
            logger.warning(f"Could not collect tasks of project {project_id} before delete: {direct.error.message}")
        return feature_ids, task_ids

    async def _remove_cascade(self, project_id: str, feature_ids: list[str], task_ids: list[str]) -> None:
        for task_id in task_ids:
            await self._export.on_entity_deleted(task_id)
        for feature_id in feature_ids:
            await self._export.on_entity_deleted(feature_id)
        await self._export.on_entity_deleted(project_id)


class ExportAwareSectionRepository(_ExportAwareRepository):
    """Sections render inside their owner's file, so any change re-exports the owner."""

    async def create(self, section: Section) -> Result[Section]:
        result = await self._delegate.create(section)
        if result.ok:
            self._schedule_owner(result.data.entityType, result.data.entityId)
        return result

    async def update(self, section: Section) -> Result[Section]:
        result = await self._delegate.update(section)
        if result.ok:
            self._schedule_owner(result.data.entityType, result.data.entityId)
        return result

    async def delete(self, section_id: str) -> Result[bool]:
        existing = await self._delegate.get_by_id(section_id)
        result = await self._delegate.delete(section_id)
        if result.ok and result.data and existing.ok:
            self._schedule_owner(existing.data.entityType, existing.data.entityId)
        return result

    async def reorder(self, entity_type: str, entity_id: str, section_ids: list[str]) -> Result[bool]:
        result = await self._delegate.reorder(entity_type, entity_id, section_ids)
        if result.ok:
            self._schedule_owner(entity_type, entity_id)
        return result

    def _schedule_owner(self, entity_type: str, entity_id: str) -> None:
        exports = {
            EntityType.TASK: self._export.export_task,
            EntityType.FEATURE: self._export.export_feature,
            EntityType.PROJECT: self._export.export_project,
        }
        export = exports.get(entity_type)
        if export is None:
            logger.debug(f"Section owner type {entity_type!r} has no markdown form")
            return
        self._launch(export(entity_id), f"export-{entity_type}-{entity_id}")
