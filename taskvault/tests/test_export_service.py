import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import aiosqlite

from taskvault.db.factory import SqliteRepositoryProvider
from taskvault.db.result import Success
from taskvault.db.sqlite_migrations import run_migrations
from taskvault.export.service import MarkdownExportService
from taskvault.export.sync_state import STATE_FILE_NAME, SyncStateStore
from taskvault.models import Feature, Project, Section, Task


class MarkdownExportServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.vault = Path(self._tmp.name) / "md"
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repos = SqliteRepositoryProvider(self.db)
        self.service = MarkdownExportService(self.repos, self.vault)

        await self.repos.project_repository().create(Project(id="p-1", name="Apollo"))
        await self.repos.feature_repository().create(Feature(id="f-1", projectId="p-1", name="Auth"))
        await self.repos.task_repository().create(
            Task(id="t-1", projectId="p-1", featureId="f-1", title="Login", status="in-progress")
        )

    async def asyncTearDown(self) -> None:
        await self.db.close()
        self._tmp.cleanup()

    def _file(self, relative: str) -> Path:
        return self.vault / relative

    async def test_export_task_writes_file_and_records_path(self) -> None:
        await self.repos.section_repository().create(
            Section(entityType="task", entityId="t-1", title="Plan", content="Ship it")
        )

        await self.service.export_task("t-1")

        target = self._file("Apollo/Auth/Login.md")
        self.assertTrue(target.exists())
        content = target.read_text(encoding="utf-8")
        self.assertIn("# Login", content)
        self.assertIn("## Plan", content)
        self.assertEqual(self.service.sync_state.get_path("t-1"), "Apollo/Auth/Login.md")

    async def test_task_inherits_project_through_feature(self) -> None:
        await self.repos.task_repository().create(Task(id="t-2", featureId="f-1", title="Logout"))
        await self.service.export_task("t-2")
        self.assertTrue(self._file("Apollo/Auth/Logout.md").exists())

    async def test_status_move_removes_stale_file(self) -> None:
        await self.service.export_task("t-1")
        task = (await self.repos.task_repository().get_by_id("t-1")).data
        await self.repos.task_repository().update(task.model_copy(update={"status": "completed"}))

        await self.service.export_task("t-1")

        self.assertFalse(self._file("Apollo/Auth/Login.md").exists())
        self.assertTrue(self._file("Apollo/Auth/Completed/Login.md").exists())
        self.assertEqual(self.service.sync_state.get_path("t-1"), "Apollo/Auth/Completed/Login.md")

    async def test_rename_prunes_empty_directories(self) -> None:
        await self.repos.task_repository().create(Task(id="t-solo", title="Solo", status="completed"))
        await self.service.export_task("t-solo")
        self.assertTrue(self._file("Completed/Solo.md").exists())

        task = (await self.repos.task_repository().get_by_id("t-solo")).data
        await self.repos.task_repository().update(task.model_copy(update={"status": "pending"}))
        await self.service.export_task("t-solo")

        self.assertTrue(self._file("Solo.md").exists())
        self.assertFalse(self._file("Completed").exists())
        self.assertTrue(self._file(STATE_FILE_NAME).exists())

    async def test_feature_rename_cascades_to_tasks(self) -> None:
        await self.service.export_feature("f-1")
        self.assertTrue(self._file("Apollo/Auth/_feature.md").exists())
        self.assertTrue(self._file("Apollo/Auth/Login.md").exists())

        feature = (await self.repos.feature_repository().get_by_id("f-1")).data
        await self.repos.feature_repository().update(feature.model_copy(update={"name": "Identity"}))
        await self.service.export_feature("f-1")

        self.assertTrue(self._file("Apollo/Identity/_feature.md").exists())
        self.assertTrue(self._file("Apollo/Identity/Login.md").exists())
        self.assertFalse(self._file("Apollo/Auth").exists())

    async def test_project_export_cascades_on_first_export(self) -> None:
        await self.repos.task_repository().create(Task(id="t-3", projectId="p-1", title="Direct"))

        await self.service.export_project("p-1")

        self.assertTrue(self._file("Apollo/_project.md").exists())
        self.assertTrue(self._file("Apollo/Auth/_feature.md").exists())
        self.assertTrue(self._file("Apollo/Auth/Login.md").exists())
        self.assertTrue(self._file("Apollo/Direct.md").exists())
        project_doc = self._file("Apollo/_project.md").read_text(encoding="utf-8")
        self.assertIn("[[Auth/_feature]]", project_doc)

    async def test_on_entity_deleted_removes_file_and_entry(self) -> None:
        await self.service.export_task("t-1")
        await self.service.on_entity_deleted("t-1")

        self.assertFalse(self._file("Apollo/Auth/Login.md").exists())
        self.assertIsNone(self.service.sync_state.get_path("t-1"))
        self.assertIsNone(SyncStateStore(self.vault).get_path("t-1"))

    async def test_delete_of_unknown_entity_is_a_no_op(self) -> None:
        await self.service.on_entity_deleted("never-exported")
        self.assertEqual(len(self.service.sync_state), 0)

    async def test_missing_entity_is_skipped_without_raising(self) -> None:
        with self.assertLogs("taskvault.export", level="WARNING"):
            await self.service.export_task("missing")
        self.assertIsNone(self.service.sync_state.get_path("missing"))

    async def test_write_failure_is_logged_not_raised(self) -> None:
        # A regular file where the project folder should be makes every write under it fail.
        self.vault.mkdir(parents=True)
        self._file("Apollo").write_text("blocker", encoding="utf-8")

        with self.assertLogs("taskvault.export", level="WARNING") as logs:
            await self.service.export_task("t-1")

        self.assertTrue(any("t-1" in line for line in logs.output))
        self.assertIsNone(self.service.sync_state.get_path("t-1"))

    async def test_shared_path_is_not_deleted_while_claimed(self) -> None:
        await self.repos.task_repository().create(Task(id="t-dup", projectId="p-1", featureId="f-1", title="Login"))
        await self.service.export_task("t-1")
        await self.service.export_task("t-dup")

        await self.service.on_entity_deleted("t-1")

        self.assertTrue(self._file("Apollo/Auth/Login.md").exists())

    async def test_notify_parent_exports_resolves_project_through_feature(self) -> None:
        await self.service.notify_parent_exports("f-1", None)
        self.assertTrue(self._file("Apollo/Auth/_feature.md").exists())
        self.assertTrue(self._file("Apollo/_project.md").exists())
        feature_doc = self._file("Apollo/Auth/_feature.md").read_text(encoding="utf-8")
        self.assertIn("[[Login]]", feature_doc)

    async def test_full_export_is_idempotent_and_prunes_orphans(self) -> None:
        first = await self.service.full_export()
        self.assertEqual((first["projects"], first["features"], first["tasks"]), (1, 1, 1))
        self.assertTrue(first["complete"])
        snapshot = sorted(p.relative_to(self.vault).as_posix() for p in self.vault.rglob("*.md"))

        await self.service.sync_state.record_export("gone", "task", "Gone.md")
        self._file("Gone.md").write_text("stale", encoding="utf-8")

        second = await self.service.full_export()
        self.assertEqual(second["removed"], 1)
        self.assertFalse(self._file("Gone.md").exists())
        self.assertEqual(
            sorted(p.relative_to(self.vault).as_posix() for p in self.vault.rglob("*.md")),
            snapshot,
        )
        self.assertEqual(
            snapshot,
            ["Apollo/Auth/Login.md", "Apollo/Auth/_feature.md", "Apollo/_project.md"],
        )


    async def test_full_export_keeps_entities_written_during_the_rebuild(self) -> None:
        tasks = self.repos.task_repository()
        list_all = tasks.list_all

        async def list_then_write(limit=None):
            listed = await list_all(limit)
            # A write lands after the listing but before pruning starts.
            await tasks.create(Task(id="t-new", title="Fresh"))
            await self.service.export_task("t-new")
            return listed

        with patch.object(tasks, "list_all", list_then_write):
            summary = await self.service.full_export()

        self.assertTrue(summary["complete"])
        self.assertEqual(summary["removed"], 0)
        self.assertTrue(self._file("Fresh.md").exists())
        self.assertEqual(self.service.sync_state.get_path("t-new"), "Fresh.md")

    async def test_full_export_never_prunes_an_entity_the_store_still_has(self) -> None:
        await self.service.export_feature("f-1")
        features = self.repos.feature_repository()
        list_all = features.list_all

        async def list_missing_auth(limit=None):
            listed = await list_all(limit)
            return Success([f for f in listed.data if f.id != "f-1"])

        with patch.object(features, "list_all", list_missing_auth):
            summary = await self.service.full_export()

        self.assertEqual(summary["removed"], 0)
        self.assertTrue(self._file("Apollo/Auth/_feature.md").exists())
        self.assertEqual(self.service.sync_state.get_path("f-1"), "Apollo/Auth/_feature.md")

    async def test_entity_locks_are_released_after_use(self) -> None:
        await asyncio.gather(self.service.export_task("t-1"), self.service.export_task("t-1"))
        await self.service.export_feature("f-1")
        await self.service.on_entity_deleted("t-1")

        self.assertEqual(len(self.service._locks), 0)


if __name__ == "__main__":
    unittest.main()
