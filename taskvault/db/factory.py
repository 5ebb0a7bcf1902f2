"""Repository providers and the composition root for markdown mirroring."""
from __future__ import annotations

import logging

import aiosqlite

from taskvault.config import MarkdownExportConfig
from taskvault.db.repositories import (
    SqliteDependencyRepository,
    SqliteFeatureRepository,
    SqliteProjectRepository,
    SqliteSectionRepository,
    SqliteTaskRepository,
    SqliteTemplateRepository,
)
from taskvault.db.repositories.base import RepositoryProvider
from taskvault.export.decorators import (
    ExportAwareFeatureRepository,
    ExportAwareProjectRepository,
    ExportAwareSectionRepository,
    ExportAwareTaskRepository,
)
from taskvault.export.scope import ExportScope
from taskvault.export.service import MarkdownExportService

logger = logging.getLogger("taskvault.db")


class SqliteRepositoryProvider:
    """Base repositories sharing one aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self._projects = SqliteProjectRepository(db)
        self._features = SqliteFeatureRepository(db)
        self._tasks = SqliteTaskRepository(db)
        self._sections = SqliteSectionRepository(db)
        self._templates = SqliteTemplateRepository(db)
        self._dependencies = SqliteDependencyRepository(db)

    def project_repository(self):
        return self._projects

    def feature_repository(self):
        return self._features

    def task_repository(self):
        return self._tasks

    def section_repository(self):
        return self._sections

    def template_repository(self):
        return self._templates

    def dependency_repository(self):
        return self._dependencies


class ExportAwareRepositoryProvider:
    """Wraps the mirrored repositories of ``base``; templates and dependencies pass through."""

    def __init__(self, base: RepositoryProvider, export_service: MarkdownExportService, scope: ExportScope):
        self.base = base
        self._projects = ExportAwareProjectRepository(
            base.project_repository(),
            base.feature_repository(),
            base.task_repository(),
            export_service,
            scope,
        )
        self._features = ExportAwareFeatureRepository(
            base.feature_repository(), base.task_repository(), export_service, scope
        )
        self._tasks = ExportAwareTaskRepository(base.task_repository(), export_service, scope)
        self._sections = ExportAwareSectionRepository(base.section_repository(), export_service, scope)

    def project_repository(self):
        return self._projects

    def feature_repository(self):
        return self._features

    def task_repository(self):
        return self._tasks

    def section_repository(self):
        return self._sections

    def template_repository(self):
        return self.base.template_repository()

    def dependency_repository(self):
        return self.base.dependency_repository()


def build_repository_provider(
    db: aiosqlite.Connection,
    export_config: MarkdownExportConfig,
) -> tuple[RepositoryProvider, MarkdownExportService | None, ExportScope | None]:
    """Build the provider callers should use.

    With mirroring enabled the returned provider is export-aware; the export
    service itself reads through the bare SQLite provider so exports never
    schedule further exports.
    """
    base = SqliteRepositoryProvider(db)
    if not export_config.enabled:
        logger.info("Markdown export disabled (TASKVAULT_MD_AUTO_EXPORT=false)")
        return base, None, None

    export_service = MarkdownExportService(base, export_config.vault_path)
    scope = ExportScope()
    logger.info(f"Markdown export enabled, vault at {export_config.vault_path}")
    return ExportAwareRepositoryProvider(base, export_service, scope), export_service, scope
