"""Tests for CancellationToken and BackgroundTasks."""
import asyncio

import pytest

from mindmesh.services.pipeline import (
    BackgroundTasks,
    CancellationToken,
    StageCancelled,
)


@pytest.mark.asyncio
class TestCancellationToken:
    """Tests for racing calls against the token."""

    async def test_returns_result_when_not_cancelled(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.race(work()) == 42
        assert token.cancelled is False

    async def test_cancel_interrupts_inflight_call(self):
        """The in-flight call is cancelled when the token fires."""
        token = CancellationToken()
        started = asyncio.Event()
        interrupted = asyncio.Event()

        async def slow():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.set()
                raise

        async def cancel_soon():
            await started.wait()
            token.cancel("user_left")

        asyncio.ensure_future(cancel_soon())
        with pytest.raises(StageCancelled) as exc_info:
            await token.race(slow())

        assert exc_info.value.reason == "user_left"
        await asyncio.wait_for(interrupted.wait(), timeout=1)

    async def test_deadline(self):
        token = CancellationToken(timeout_seconds=0.05)

        with pytest.raises(StageCancelled) as exc_info:
            await token.race(asyncio.sleep(5))

        assert exc_info.value.reason == "deadline_exceeded"
        assert token.cancelled is True

    async def test_already_cancelled_does_not_start_call(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        async def work():
            calls.append(1)

        with pytest.raises(StageCancelled):
            await token.race(work())
        assert calls == []

    async def test_call_errors_propagate(self):
        token = CancellationToken()

        async def broken():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await token.race(broken())

    async def test_cancel_is_idempotent(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.reason == "first"


class TestCancellationTokenConfig:
    """Tests for token construction."""

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            CancellationToken(timeout_seconds=0)

    def test_remaining_without_deadline(self):
        assert CancellationToken().remaining() is None

    def test_token_built_outside_running_loop(self):
        """A token created before any loop runs can race inside a new loop."""
        token = CancellationToken(timeout_seconds=5)

        async def work():
            return "done"

        assert asyncio.run(token.race(work())) == "done"

    def test_cancel_before_loop_starts(self):
        token = CancellationToken()
        token.cancel("client_closed")

        with pytest.raises(StageCancelled) as exc_info:
            asyncio.run(token.race(asyncio.sleep(5)))

        assert exc_info.value.reason == "client_closed"


@pytest.mark.asyncio
class TestBackgroundTasks:
    """Tests for supervised detached tasks."""

    async def test_spawn_runs_detached(self):
        tasks = BackgroundTasks()
        done = asyncio.Event()

        async def work():
            done.set()

        tasks.spawn(work(), name="work")
        assert tasks.pending == 1

        await asyncio.wait_for(done.wait(), timeout=1)
        await tasks.drain()
        assert tasks.pending == 0

    async def test_failure_is_logged_not_raised(self):
        """A failing detached task never propagates its exception."""
        tasks = BackgroundTasks()

        async def broken():
            raise RuntimeError("embedding service down")

        task = tasks.spawn(broken(), name="broken")
        await tasks.drain()

        assert task.result() is None
        assert tasks.failures == 1

    async def test_drain_cancels_after_timeout(self):
        tasks = BackgroundTasks()
        tasks.spawn(asyncio.sleep(10), name="slow")

        cancelled = await tasks.drain(timeout_seconds=0.01)

        assert cancelled == 1
        assert tasks.pending == 0

    async def test_drain_with_nothing_pending(self):
        assert await BackgroundTasks().drain() == 0
