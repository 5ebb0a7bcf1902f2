import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from taskvault.export.sync_state import STATE_FILE_NAME, SyncStateStore


class SyncStateStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.vault = Path(self._tmp.name) / "md"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_fresh_store_is_empty(self) -> None:
        store = SyncStateStore(self.vault)
        self.assertFalse(store.has_state())
        self.assertIsNone(store.get_path("missing"))
        self.assertEqual(len(store), 0)

    async def test_recorded_paths_survive_a_new_instance(self) -> None:
        store = SyncStateStore(self.vault)
        await store.record_export("t-1", "task", "P/F/T.md")
        await store.record_export("f-1", "feature", "P/F/_feature.md")

        reloaded = SyncStateStore(self.vault)
        self.assertTrue(reloaded.has_state())
        self.assertEqual(reloaded.get_path("t-1"), "P/F/T.md")
        self.assertEqual(reloaded.get_path("f-1"), "P/F/_feature.md")
        self.assertEqual(reloaded.entries()["f-1"].entityType, "feature")

    async def test_record_overwrites_previous_path(self) -> None:
        store = SyncStateStore(self.vault)
        await store.record_export("t-1", "task", "Old.md")
        await store.record_export("t-1", "task", "New.md")
        self.assertEqual(store.get_path("t-1"), "New.md")
        self.assertEqual(len(store), 1)

    async def test_remove_entry(self) -> None:
        store = SyncStateStore(self.vault)
        await store.record_export("t-1", "task", "T.md")
        await store.remove_entry("t-1")
        await store.remove_entry("never-recorded")
        self.assertIsNone(store.get_path("t-1"))
        self.assertIsNone(SyncStateStore(self.vault).get_path("t-1"))

    async def test_file_is_pretty_printed_with_expected_layout(self) -> None:
        store = SyncStateStore(self.vault)
        await store.record_export("p-1", "project", "P/_project.md")

        raw = (self.vault / STATE_FILE_NAME).read_text(encoding="utf-8")
        self.assertIn('\n  "version": "1.0"', raw)
        payload = json.loads(raw)
        self.assertEqual(payload["version"], "1.0")
        self.assertTrue(payload["lastSync"])
        entry = payload["entities"]["p-1"]
        self.assertEqual(entry["path"], "P/_project.md")
        self.assertEqual(entry["entityType"], "project")
        self.assertTrue(entry["lastModified"])
        self.assertFalse((self.vault / (STATE_FILE_NAME + ".tmp")).exists())

    async def test_corrupted_file_loads_as_empty_but_counts_as_present(self) -> None:
        self.vault.mkdir(parents=True)
        (self.vault / STATE_FILE_NAME).write_text("{not json", encoding="utf-8")

        store = SyncStateStore(self.vault)
        self.assertTrue(store.has_state())
        self.assertEqual(len(store), 0)
        self.assertIsNone(store.get_path("anything"))

        await store.record_export("t-1", "task", "T.md")
        self.assertEqual(SyncStateStore(self.vault).get_path("t-1"), "T.md")

    async def test_concurrent_mutations_are_all_persisted(self) -> None:
        store = SyncStateStore(self.vault)
        for i in range(10):
            await store.record_export(f"old-{i}", "task", f"Old {i}.md")

        await asyncio.gather(
            *(store.record_export(f"t-{i}", "task", f"Task {i}.md") for i in range(50)),
            *(store.remove_entry(f"old-{i}") for i in range(0, 10, 2)),
        )

        expected = {f"t-{i}": f"Task {i}.md" for i in range(50)}
        expected.update({f"old-{i}": f"Old {i}.md" for i in range(1, 10, 2)})
        reloaded = SyncStateStore(self.vault)
        self.assertEqual({k: v.path for k, v in reloaded.entries().items()}, expected)

    async def test_unknown_fields_are_ignored(self) -> None:
        self.vault.mkdir(parents=True)
        (self.vault / STATE_FILE_NAME).write_text(
            json.dumps({
                "version": "1.0",
                "lastSync": "2024-01-01T00:00:00Z",
                "futureField": {"x": 1},
                "entities": {
                    "t-1": {"path": "T.md", "entityType": "task", "lastModified": "", "checksum": "abc"},
                },
            }),
            encoding="utf-8",
        )
        store = SyncStateStore(self.vault)
        self.assertEqual(store.get_path("t-1"), "T.md")


if __name__ == "__main__":
    unittest.main()
