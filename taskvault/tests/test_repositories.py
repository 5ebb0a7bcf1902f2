import unittest

import aiosqlite

from taskvault.db.repositories import (
    SqliteDependencyRepository,
    SqliteFeatureRepository,
    SqliteProjectRepository,
    SqliteSectionRepository,
    SqliteTaskRepository,
    SqliteTemplateRepository,
)
from taskvault.db.result import ErrorCode
from taskvault.db.sqlite_migrations import run_migrations
from taskvault.models import Dependency, Feature, Project, Section, Task, Template


class RepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.projects = SqliteProjectRepository(self.db)
        self.features = SqliteFeatureRepository(self.db)
        self.tasks = SqliteTaskRepository(self.db)
        self.sections = SqliteSectionRepository(self.db)
        self.templates = SqliteTemplateRepository(self.db)
        self.dependencies = SqliteDependencyRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_task_round_trip_and_update(self) -> None:
        created = await self.tasks.create(Task(id="t-1", title="Write docs", tags=["docs"], complexity=2))
        self.assertTrue(created.ok)

        fetched = await self.tasks.get_by_id("t-1")
        self.assertTrue(fetched.ok)
        self.assertEqual(fetched.data.title, "Write docs")
        self.assertEqual(fetched.data.tags, ["docs"])
        self.assertEqual(fetched.data.complexity, 2)

        updated = await self.tasks.update(fetched.data.model_copy(update={"status": "completed"}))
        self.assertTrue(updated.ok)
        self.assertEqual((await self.tasks.get_by_id("t-1")).data.status, "completed")

    async def test_missing_entities_report_not_found(self) -> None:
        result = await self.tasks.get_by_id("nope")
        self.assertFalse(result.ok)
        self.assertTrue(result.is_not_found)

        result = await self.projects.update(Project(id="nope", name="Ghost"))
        self.assertEqual(result.error.code, ErrorCode.NOT_FOUND)

        result = await self.features.delete("nope")
        self.assertTrue(result.is_not_found)

    async def test_unknown_parent_is_a_validation_error(self) -> None:
        result = await self.tasks.create(Task(title="Orphan", featureId="missing-feature"))
        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, ErrorCode.VALIDATION_ERROR)

    async def test_duplicate_id_is_a_conflict(self) -> None:
        await self.projects.create(Project(id="p-1", name="Apollo"))
        result = await self.projects.create(Project(id="p-1", name="Apollo again"))
        self.assertEqual(result.error.code, ErrorCode.CONFLICT)

    async def test_project_delete_cascades_to_children_and_sections(self) -> None:
        await self.projects.create(Project(id="p-1", name="Apollo"))
        await self.features.create(Feature(id="f-1", projectId="p-1", name="Auth"))
        await self.tasks.create(Task(id="t-1", projectId="p-1", featureId="f-1", title="Login"))
        await self.tasks.create(Task(id="t-2", projectId="p-1", title="Direct"))
        await self.sections.create(Section(id="s-1", entityType="task", entityId="t-1", title="Notes"))
        await self.sections.create(Section(id="s-2", entityType="feature", entityId="f-1", title="Notes"))

        result = await self.projects.delete("p-1")
        self.assertTrue(result.ok)
        self.assertTrue(result.data)

        self.assertTrue((await self.features.get_by_id("f-1")).is_not_found)
        self.assertTrue((await self.tasks.get_by_id("t-1")).is_not_found)
        self.assertTrue((await self.tasks.get_by_id("t-2")).is_not_found)
        self.assertTrue((await self.sections.get_by_id("s-1")).is_not_found)
        self.assertTrue((await self.sections.get_by_id("s-2")).is_not_found)

    async def test_child_listings(self) -> None:
        await self.projects.create(Project(id="p-1", name="Apollo"))
        await self.features.create(Feature(id="f-1", projectId="p-1", name="Auth"))
        await self.tasks.create(Task(id="t-1", projectId="p-1", featureId="f-1", title="B"))
        await self.tasks.create(Task(id="t-2", featureId="f-1", title="A"))
        await self.tasks.create(Task(id="t-3", projectId="p-1", title="C"))

        by_feature = await self.tasks.list_by_feature("f-1")
        self.assertEqual([t.id for t in by_feature.data], ["t-2", "t-1"])
        by_project = await self.tasks.list_by_project("p-1")
        self.assertEqual({t.id for t in by_project.data}, {"t-1", "t-3"})
        features = await self.features.list_by_project("p-1")
        self.assertEqual([f.id for f in features.data], ["f-1"])

    async def test_section_ordering_and_reorder(self) -> None:
        await self.tasks.create(Task(id="t-1", title="Login"))
        for ordinal, section_id in enumerate(["s-a", "s-b", "s-c"]):
            await self.sections.create(
                Section(id=section_id, entityType="task", entityId="t-1", title=section_id, ordinal=ordinal)
            )

        result = await self.sections.reorder("task", "t-1", ["s-c", "s-a", "s-b"])
        self.assertTrue(result.ok)
        listed = await self.sections.list_for_entity("task", "t-1")
        self.assertEqual([s.id for s in listed.data], ["s-c", "s-a", "s-b"])

        result = await self.sections.reorder("task", "t-1", ["s-a", "s-b"])
        self.assertEqual(result.error.code, ErrorCode.VALIDATION_ERROR)

    async def test_section_update_keeps_owner(self) -> None:
        await self.sections.create(Section(id="s-1", entityType="task", entityId="t-1", title="Old"))
        result = await self.sections.update(
            Section(id="s-1", entityType="feature", entityId="other", title="New")
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.data.title, "New")
        self.assertEqual(result.data.entityType, "task")
        self.assertEqual(result.data.entityId, "t-1")

    async def test_templates_and_dependencies(self) -> None:
        await self.templates.create(Template(id="tpl-1", name="Bug report", targetEntityType="task"))
        await self.templates.create(Template(id="tpl-2", name="Epic", targetEntityType="feature"))
        task_templates = await self.templates.list_all("task")
        self.assertEqual([t.id for t in task_templates.data], ["tpl-1"])

        await self.tasks.create(Task(id="t-1", title="A"))
        await self.tasks.create(Task(id="t-2", title="B"))
        created = await self.dependencies.create(Dependency(id="d-1", fromTaskId="t-1", toTaskId="t-2"))
        self.assertTrue(created.ok)
        self.assertEqual([d.id for d in (await self.dependencies.list_for_task("t-2")).data], ["d-1"])

        await self.tasks.delete("t-1")
        self.assertTrue((await self.dependencies.get_by_id("d-1")).is_not_found)


if __name__ == "__main__":
    unittest.main()
