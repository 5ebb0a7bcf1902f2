import asyncio
import unittest

from taskvault.export.scope import ExportScope


class ExportScopeTests(unittest.IsolatedAsyncioTestCase):
    async def test_launch_tracks_until_done(self) -> None:
        scope = ExportScope()
        gate = asyncio.Event()
        done: list[str] = []

        async def work() -> None:
            await gate.wait()
            done.append("ran")

        scope.launch(work(), "work")
        self.assertEqual(scope.pending, 1)
        gate.set()
        await scope.join()

        self.assertEqual(done, ["ran"])
        self.assertEqual(scope.pending, 0)

    async def test_join_waits_for_work_scheduled_while_joining(self) -> None:
        scope = ExportScope()
        done: list[str] = []

        async def child() -> None:
            done.append("child")

        async def parent() -> None:
            await asyncio.sleep(0)
            scope.launch(child(), "child")
            done.append("parent")

        scope.launch(parent(), "parent")
        await scope.join()

        self.assertEqual(done, ["parent", "child"])

    async def test_failures_are_logged(self) -> None:
        scope = ExportScope()

        async def boom() -> None:
            raise RuntimeError("boom")

        with self.assertLogs("taskvault.export", level="WARNING") as logs:
            scope.launch(boom(), "boom")
            await scope.join()

        self.assertIn("taskvault-boom", logs.output[0])

    async def test_drain_cancels_work_past_the_timeout(self) -> None:
        scope = ExportScope()
        started = asyncio.Event()

        async def forever() -> None:
            started.set()
            await asyncio.sleep(3600)

        task = scope.launch(forever(), "forever")
        await started.wait()
        await scope.drain(timeout=0.05)

        self.assertTrue(task.cancelled())
        self.assertEqual(scope.pending, 0)

    async def test_closed_scope_drops_new_work(self) -> None:
        scope = ExportScope()
        await scope.drain(timeout=1)

        async def never() -> None:
            raise AssertionError("should not run")

        self.assertIsNone(scope.launch(never(), "late"))
        self.assertEqual(scope.pending, 0)


if __name__ == "__main__":
    unittest.main()
