"""Tests of the background task manager"""

# pyright: basic

import asyncio
import unittest

from tutorchat.background_task_manager import (
    active_tasks,
    drain_tasks,
    schedule_task,
)


class TestBackgroundTasks(unittest.IsolatedAsyncioTestCase):

    async def test_drain(self):
        done: list[int] = []

        async def job(n: int) -> None:
            await asyncio.sleep(0.01 * n)
            done.append(n)

        for n in (3, 1, 2):
            schedule_task(job(n))
        await drain_tasks()

        self.assertEqual(sorted(done), [1, 2, 3])
        self.assertFalse([t for t in active_tasks if not t.done()])

    async def test_error_callback(self):
        errors: list[Exception] = []

        async def failing() -> None:
            raise ValueError("boom")

        schedule_task(failing(), error_callback=errors.append)
        await drain_tasks()

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], ValueError)

    async def test_error_logged(self):
        async def failing() -> None:
            raise ValueError("boom")

        with self.assertLogs(
            "tutorchat.background_task_manager", level="ERROR"
        ):
            schedule_task(failing())
            await drain_tasks()

    async def test_tasks_scheduled_while_draining(self):
        done: list[str] = []

        async def second() -> None:
            done.append("second")

        async def first() -> None:
            done.append("first")
            schedule_task(second())

        schedule_task(first())
        await drain_tasks()

        self.assertEqual(done, ["first", "second"])


if __name__ == "__main__":
    unittest.main()
