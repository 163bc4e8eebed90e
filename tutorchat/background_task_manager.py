"""
Defines a generic infrastructure to manage fire-and-forget background
tasks.

Transcript writes are scheduled here so that the response to the
student is never held back by the store. The tasks are tracked, and
may be awaited with `drain_tasks` at shutdown (and in tests, before
inspecting the stores).

Example:
    ```python
    import asyncio
    from tutorchat.background_task_manager import schedule_task

    async def background_job(data: str) -> None:
        await asyncio.sleep(1)
        logger.info(f"Processed: {data}")

    # Schedule the coroutine execution
    schedule_task(background_job("some data"))
    ```
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Module-level collection of task objects.
active_tasks: set[asyncio.Task[None]] = set()


def schedule_task(
    coro: Coroutine[Any, Any, None],
    error_callback: Callable[[Exception], None] | None = None,
) -> asyncio.Task[None]:
    """
    Schedules a fire-and-forget background task.

    Args:
        coro: The coroutine to schedule.
        error_callback: Optional callback to handle exceptions raised
            by the coroutine. Called when the task fails, with the
            exception as argument. If not provided, the exception is
            logged.

    Returns:
        The scheduled asyncio Task.
    """
    task: asyncio.Task[None] = asyncio.create_task(coro)
    active_tasks.add(task)

    def handle_completion(t: asyncio.Task[None]) -> None:
        try:
            # This raises if the task failed with an exception
            t.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            if error_callback:
                error_callback(e)
            else:
                logger.error(f"Background task failed: {e}")
        finally:
            active_tasks.discard(t)

    task.add_done_callback(handle_completion)
    return task


async def drain_tasks() -> None:
    """Await all the pending tasks of the running event loop,
    including tasks scheduled while draining."""

    loop = asyncio.get_running_loop()
    while True:
        tasks: list[asyncio.Task[None]] = [
            t
            for t in active_tasks
            if not t.done() and t.get_loop() is loop
        ]
        if not tasks:
            return
        logger.debug(
            f"Awaiting {len(tasks)} pending background tasks..."
        )
        # failures were already reported by handle_completion
        await asyncio.gather(*tasks, return_exceptions=True)
