"""
Fire-and-forget task runner.

Side effects that must never fail or slow down the request that triggered
them (welcome notifications, login fraud checks, OTP SMS, reset emails)
are submitted here. Each task runs on the event loop; its exception is
logged with the task name and dropped.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """
    Holds references to running side-effect tasks until they finish.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> asyncio.Task:
        """
        Schedule ``func(*args, **kwargs)`` without awaiting it.

        Args:
            name: Label used in logs when the task fails
            func: Coroutine function to run

        Returns:
            The scheduled task
        """
        task = asyncio.create_task(self._run(name, func, *args, **kwargs), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        try:
            await func(*args, **kwargs)
        except asyncio.CancelledError:
            logger.info(f"Background task '{name}' cancelled")
            raise
        except Exception as e:
            logger.exception(f"Background task '{name}' failed: {e}")

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for outstanding tasks; cancel whatever is still running after ``timeout``."""
        if not self._tasks:
            return

        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} background tasks on drain")
            await asyncio.gather(*pending, return_exceptions=True)
