"""Supervised detached tasks.

Work spawned here is never awaited by the caller that launched it, and
its errors never propagate: each task runs inside its own error-logging
boundary. ``drain`` lets an owner wait for outstanding work at shutdown.
"""
import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Registry of detached tasks with logging supervision."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """Launch ``coro`` detached. Must be called from a running loop."""
        task = asyncio.ensure_future(self._supervise(coro, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _supervise(self, coro: Awaitable[Any], name: str) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.warning("BACKGROUND_TASK_CANCELLED", extra={"task_name": name})
            raise
        except Exception as e:
            self.failures += 1
            logger.error(
                "BACKGROUND_TASK_FAILED",
                extra={
                    "task_name": name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

    async def drain(self, timeout_seconds: Optional[float] = None) -> int:
        """Wait for outstanding tasks; cancel whatever is left at the timeout.

        Returns:
            Number of tasks cancelled
        """
        if not self._tasks:
            return 0
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "BACKGROUND_TASKS_CANCELLED_ON_DRAIN",
                extra={"count": len(still_running)}
            )
        return len(still_running)
