"""Markdown export service.

Maintains a one-way markdown mirror of the store inside the vault directory.
Entities are read from the *base* (undecorated) repositories so an export can
never trigger another export through a decorator.

Every public operation is fail-safe: errors are logged with the entity ID and
operation, counted, and swallowed. A failed export leaves the mirror stale
until the next write to that entity or the next ``full_export``.
"""
from __future__ import annotations

import asyncio
import logging
import time
import weakref
from pathlib import Path
from typing import Any

from taskvault.db.repositories.base import RepositoryProvider
from taskvault.export.paths import resolve_feature_path, resolve_project_path, resolve_task_path
from taskvault.export.renderer import MarkdownRenderer
from taskvault.export.sync_state import SyncStateStore
from taskvault.models import EntityType, Section
from taskvault.observability import record_export, start_span

logger = logging.getLogger("taskvault.export")


class MarkdownExportService:
    """Writes, moves and removes the markdown file of each project, feature and task."""

    def __init__(
        self,
        repositories: RepositoryProvider,
        vault_path: Path,
        renderer: MarkdownRenderer | None = None,
        sync_state: SyncStateStore | None = None,
    ):
        self.repositories = repositories
        self.vault_path = Path(vault_path)
        self.renderer = renderer or MarkdownRenderer()
        self.sync_state = sync_state or SyncStateStore(self.vault_path)
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ── Public operations ──────────────────────────────────────────

    async def export_task(self, task_id: str) -> None:
        await self._guarded(EntityType.TASK, "export", task_id, self._export_task(task_id))

    async def export_feature(self, feature_id: str) -> None:
        children = await self._guarded(EntityType.FEATURE, "export", feature_id, self._export_feature(feature_id))
        for task_id in children or []:
            await self.export_task(task_id)

    async def export_project(self, project_id: str) -> None:
        children = await self._guarded(EntityType.PROJECT, "export", project_id, self._export_project(project_id))
        if not children:
            return
        feature_ids, task_ids = children
        for feature_id in feature_ids:
            await self.export_feature(feature_id)
        for task_id in task_ids:
            await self.export_task(task_id)

    async def on_entity_deleted(self, entity_id: str) -> None:
        await self._guarded("entity", "delete", entity_id, self._delete_entity(entity_id))

    async def notify_parent_exports(self, feature_id: str | None, project_id: str | None) -> None:
        """Re-render parent documents so their child status tables stay current."""
        if feature_id:
            await self.export_feature(feature_id)
        resolved_project_id = project_id
        if not resolved_project_id and feature_id:
            try:
                feature = await self.repositories.feature_repository().get_by_id(feature_id)
            except Exception as exc:
                logger.warning(f"Failed to resolve project of feature {feature_id}: {exc}", exc_info=True)
                return
            if feature.ok:
                resolved_project_id = feature.data.projectId
        if resolved_project_id:
            await self.export_project(resolved_project_id)

    async def full_export(self) -> dict[str, Any]:
        """Re-export every entity and drop mirror files of entities that no longer exist.

        Idempotent. Returns per-kind counts.
        """
        summary: dict[str, Any] = {"projects": 0, "features": 0, "tasks": 0, "removed": 0, "complete": False}
        logger.info(f"Starting full markdown export into {self.vault_path}")
        # Entities recorded while the rebuild runs are never candidates for pruning.
        recorded_before = self.sync_state.entries()
        seen: set[str] = set()
        listings = (
            ("projects", self.repositories.project_repository(), self.export_project),
            ("features", self.repositories.feature_repository(), self.export_feature),
            ("tasks", self.repositories.task_repository(), self.export_task),
        )
        complete = True
        for label, repository, export in listings:
            try:
                result = await repository.list_all()
            except Exception as exc:
                logger.warning(f"Failed to list {label} for full export: {exc}", exc_info=True)
                complete = False
                continue
            if not result.ok:
                logger.warning(f"Failed to list {label} for full export: {result.error.message}")
                complete = False
                continue
            logger.info(f"Exporting {len(result.data)} {label}")
            for entity in result.data:
                seen.add(entity.id)
                await export(entity.id)
            summary[label] = len(result.data)

        # Only prune against a complete listing; otherwise live entities could lose their files.
        if complete:
            for entity_id, entry in recorded_before.items():
                if entity_id in seen or await self._still_exists(entity_id, entry.entityType):
                    continue
                await self.on_entity_deleted(entity_id)
                summary["removed"] += 1
        summary["complete"] = complete
        logger.info(f"Full markdown export finished: {summary}")
        return summary

    # ── Export internals ───────────────────────────────────────────

    async def _guarded(self, entity: str, operation: str, entity_id: str, work):
        started = time.perf_counter()
        try:
            with start_span(f"markdown.{operation}", {"entity.type": entity, "entity.id": entity_id}):
                outcome = await work
        except Exception as exc:
            record_export(entity, operation, "error", (time.perf_counter() - started) * 1000)
            logger.warning(f"Failed to {operation} markdown for {entity} {entity_id}: {exc}", exc_info=True)
            return None
        record_export(entity, operation, "ok", (time.perf_counter() - started) * 1000)
        return outcome

    def _entity_lock(self, entity_id: str) -> asyncio.Lock:
        # Weakly held: a lock lives exactly as long as a holder or waiter references it.
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        return lock

    async def _still_exists(self, entity_id: str, entity_type: str) -> bool:
        """False only when the store positively reports the entity as gone."""
        repositories = {
            EntityType.PROJECT: self.repositories.project_repository,
            EntityType.FEATURE: self.repositories.feature_repository,
            EntityType.TASK: self.repositories.task_repository,
        }
        repository = repositories.get(entity_type)
        if repository is None:
            logger.warning(f"Sync entry {entity_id} has unknown type {entity_type!r}, keeping it")
            return True
        try:
            result = await repository().get_by_id(entity_id)
        except Exception as exc:
            logger.warning(f"Could not check {entity_type} {entity_id} before pruning: {exc}", exc_info=True)
            return True
        return result.ok or not result.is_not_found

    async def _load_sections(self, entity_type: str, entity_id: str) -> list[Section]:
        result = await self.repositories.section_repository().list_for_entity(entity_type, entity_id)
        if not result.ok:
            logger.warning(f"Failed to load sections for {entity_type} {entity_id}: {result.error.message}")
            return []
        return result.data

    async def _project_name(self, project_id: str | None) -> str | None:
        if not project_id:
            return None
        result = await self.repositories.project_repository().get_by_id(project_id)
        return result.data.name if result.ok else None

    async def _export_task(self, task_id: str) -> None:
        async with self._entity_lock(task_id):
            result = await self.repositories.task_repository().get_by_id(task_id)
            if not result.ok:
                logger.warning(f"Skipping export of task {task_id}: {result.error.message}")
                return
            task = result.data
            sections = await self._load_sections(EntityType.TASK, task_id)

            feature_name = None
            project_id = task.projectId
            if task.featureId:
                feature = await self.repositories.feature_repository().get_by_id(task.featureId)
                if feature.ok:
                    feature_name = feature.data.name
                    # A task filed only under a feature lives in that feature's project.
                    project_id = project_id or feature.data.projectId
            project_name = await self._project_name(project_id)

            path = resolve_task_path(task.title, feature_name, project_name, task.status)
            content = self.renderer.render_task(task, sections)
            await self._write_entity(task_id, EntityType.TASK, path, content)

    async def _export_feature(self, feature_id: str) -> list[str]:
        """Export one feature; returns child task IDs that need re-export."""
        async with self._entity_lock(feature_id):
            result = await self.repositories.feature_repository().get_by_id(feature_id)
            if not result.ok:
                logger.warning(f"Skipping export of feature {feature_id}: {result.error.message}")
                return []
            feature = result.data
            sections = await self._load_sections(EntityType.FEATURE, feature_id)
            project_name = await self._project_name(feature.projectId)

            tasks_result = await self.repositories.task_repository().list_by_feature(feature_id)
            child_tasks = tasks_result.data if tasks_result.ok else []

            path = resolve_feature_path(feature.name, project_name, feature.status)
            content = self.renderer.render_feature(feature, sections, child_tasks)
            previous = await self._write_entity(feature_id, EntityType.FEATURE, path, content)

        if previous is None or previous != path:
            logger.debug(f"Feature {feature_id} moved or first exported, re-exporting {len(child_tasks)} task(s)")
            return [t.id for t in child_tasks]
        return []

    async def _export_project(self, project_id: str) -> tuple[list[str], list[str]] | None:
        """Export one project; returns (feature IDs, direct task IDs) that need re-export."""
        async with self._entity_lock(project_id):
            result = await self.repositories.project_repository().get_by_id(project_id)
            if not result.ok:
                logger.warning(f"Skipping export of project {project_id}: {result.error.message}")
                return None
            project = result.data
            sections = await self._load_sections(EntityType.PROJECT, project_id)

            features_result = await self.repositories.feature_repository().list_by_project(project_id)
            child_features = features_result.data if features_result.ok else []

            path = resolve_project_path(project.name, project.status)
            content = self.renderer.render_project(project, sections, child_features)
            previous = await self._write_entity(project_id, EntityType.PROJECT, path, content)

        if previous is not None and previous == path:
            return None

        tasks_result = await self.repositories.task_repository().list_by_project(project_id)
        direct_tasks = [t.id for t in tasks_result.data if not t.featureId] if tasks_result.ok else []
        logger.debug(
            f"Project {project_id} moved or first exported, re-exporting "
            f"{len(child_features)} feature(s) and {len(direct_tasks)} direct task(s)"
        )
        return [f.id for f in child_features], direct_tasks

    async def _delete_entity(self, entity_id: str) -> None:
        async with self._entity_lock(entity_id):
            path = self.sync_state.get_path(entity_id)
            if path is None:
                logger.debug(f"Entity {entity_id} not in sync state, nothing to delete")
                return
            if not self._claimed_by_other(entity_id, path):
                await asyncio.to_thread(self._remove_file, path)
            await self.sync_state.remove_entry(entity_id)
            logger.debug(f"Removed markdown for entity {entity_id} at {path}")

    async def _write_entity(self, entity_id: str, entity_type: str, path: str, content: str) -> str | None:
        """Write ``content`` at ``path``, removing the previously recorded file if it moved."""
        previous = self.sync_state.get_path(entity_id)
        if previous is not None and previous != path:
            logger.debug(f"{entity_type} {entity_id} moved from {previous} to {path}")
            if not self._claimed_by_other(entity_id, previous):
                await asyncio.to_thread(self._remove_file, previous)
        await asyncio.to_thread(self._write_file, path, content)
        await self.sync_state.record_export(entity_id, entity_type, path)
        logger.debug(f"Exported {entity_type} {entity_id} to {path}")
        return previous

    def _claimed_by_other(self, entity_id: str, path: str) -> bool:
        # Two entities can resolve to the same file; never delete a file another entity still owns.
        return any(
            other_id != entity_id and entry.path == path
            for other_id, entry in self.sync_state.entries().items()
        )

    # ── Filesystem (runs in worker threads) ────────────────────────

    def _resolve(self, relative_path: str) -> Path:
        target = (self.vault_path / relative_path).resolve()
        root = self.vault_path.resolve()
        if target == root or not target.is_relative_to(root):
            raise ValueError(f"Path escapes vault: {relative_path}")
        return target

    def _write_file(self, relative_path: str, content: str) -> None:
        target = self._resolve(relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def _remove_file(self, relative_path: str) -> None:
        target = self._resolve(relative_path)
        target.unlink(missing_ok=True)
        self._prune_empty_dirs(target.parent)

    def _prune_empty_dirs(self, directory: Path) -> None:
        root = self.vault_path.resolve()
        current = directory
        while current != root and current.is_relative_to(root):
            if not current.is_dir() or any(current.iterdir()):
                break
            current.rmdir()
            current = current.parent
