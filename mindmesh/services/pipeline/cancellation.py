"""Cooperative cancellation for pipeline stages.

A CancellationToken fires when the caller cancels it explicitly or when
its deadline passes. External stages race their call against the token;
when the token wins, the in-flight call is cancelled and the stage
degrades to its deterministic fallback instead of hanging.
"""
import asyncio
import logging
import time
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageCancelled(Exception):
    """The cancellation token fired before the stage's call completed."""

    def __init__(self, reason: str):
        super().__init__(f"Stage cancelled: {reason}")
        self.reason = reason


class CancellationToken:
    """Caller-controlled cancel signal with an optional deadline."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        """Initialize token.

        Args:
            timeout_seconds: Fires automatically this long after creation
        """
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        # Created on first race() so a token can be built outside a running loop
        self._event: Optional[asyncio.Event] = None
        self._fired = False
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled_by_caller") -> None:
        if self._fired:
            return
        self._fired = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        logger.info("PIPELINE_CANCELLATION_REQUESTED", extra={"reason": reason})

    @property
    def cancelled(self) -> bool:
        if self._fired:
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline_exceeded")
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            StageCancelled: The token fired; the awaitable was cancelled
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise StageCancelled(self._reason)

        if self._event is None:
            self._event = asyncio.Event()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        if not self.cancelled:
            self.cancel("deadline_exceeded")
        raise StageCancelled(self._reason)


def _consume_result(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug(
            "CANCELLED_STAGE_CALL_FAILED",
            extra={"error": str(task.exception())}
        )
