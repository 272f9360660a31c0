"""Unit tests for the work queue."""
import asyncio
import logging
import time

import pytest

from similarity_service.core.exceptions import QueueClosedError, QueueFullError
from similarity_service.services.work_queue import WorkQueue, WorkResult


@pytest.mark.unit
class TestWorkQueue:

    @pytest.mark.asyncio
    async def test_tasks_run_in_order_without_overlap(self):
        queue = WorkQueue(max_queue_size=10, max_concurrent=1, max_retries=0, base_delay=0)
        spans = []

        def make_work(name):
            async def work():
                started = time.monotonic()
                await asyncio.sleep(0.01)
                spans.append((name, started, time.monotonic()))
                return name
            return work

        results = await asyncio.gather(*(queue.enqueue(n, make_work(n)) for n in ("T1", "T2", "T3")))
        await queue.close()

        assert [r.result for r in results] == ["T1", "T2", "T3"]
        assert [s[0] for s in spans] == ["T1", "T2", "T3"]
        for previous, current in zip(spans, spans[1:]):
            assert previous[2] <= current[1]

    @pytest.mark.asyncio
    async def test_full_queue_rejects_immediately(self):
        queue = WorkQueue(max_queue_size=2, max_concurrent=1, max_retries=0, base_delay=0)
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        running = queue.submit("running", blocker)
        await asyncio.sleep(0)  # let the worker pick up the first task
        queued = [queue.submit(f"pending-{i}", blocker) for i in range(2)]

        assert not queue.has_capacity()
        with pytest.raises(QueueFullError):
            queue.submit("overflow", blocker)
        with pytest.raises(QueueFullError):
            queue.ensure_capacity()

        release.set()
        await asyncio.gather(running, *queued)
        await queue.close()

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        queue = WorkQueue(max_queue_size=5, max_concurrent=1, max_retries=3, base_delay=0.001)
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise RuntimeError("transient")
            return "ok"

        result = await queue.enqueue("flaky", flaky)
        await queue.close()

        assert isinstance(result, WorkResult)
        assert result.result == "ok"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_propagate(self):
        queue = WorkQueue(max_queue_size=5, max_concurrent=1, max_retries=3, base_delay=0.001)
        attempts = 0

        async def broken():
            nonlocal attempts
            attempts += 1
            raise ValueError("permanent")

        with pytest.raises(ValueError, match="permanent"):
            await queue.enqueue("broken", broken)

        # The queue keeps serving work after a failure
        follow_up = await queue.enqueue("next", self._value("after"))
        await queue.close()

        assert attempts == 4
        assert follow_up.result == "after"

    @pytest.mark.asyncio
    async def test_retry_backoff_doubles(self, caplog):
        caplog.set_level(logging.WARNING, logger="similarity_service.services.work_queue")
        queue = WorkQueue(max_queue_size=5, max_concurrent=1, max_retries=2, base_delay=0.01)

        async def broken():
            raise RuntimeError("embedding API down")

        with pytest.raises(RuntimeError):
            await queue.enqueue("broken", broken)
        await queue.close()

        retries = [r.getMessage() for r in caplog.records if "retry" in r.getMessage()]
        assert len(retries) == 2
        assert "retry 1/2 in 0.01s" in retries[0]
        assert "retry 2/2 in 0.02s" in retries[1]

    def test_queue_size_must_be_positive(self):
        with pytest.raises(ValueError, match="max_queue_size"):
            WorkQueue(max_queue_size=0, max_concurrent=1, max_retries=0, base_delay=0)

    @pytest.mark.asyncio
    async def test_status(self):
        queue = WorkQueue(max_queue_size=3, max_concurrent=1, max_retries=0, base_delay=0)
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        first = queue.submit("a", blocker)
        await asyncio.sleep(0)
        second = queue.submit("b", blocker)

        status = queue.status()
        assert status.processing == 1
        assert status.pending == 1
        assert status.available == 0
        assert status.remaining_capacity == 2
        assert status.max_queue_size == 3

        release.set()
        await asyncio.gather(first, second)
        await queue.close()

    @pytest.mark.asyncio
    async def test_close_fails_pending_and_rejects_new_work(self):
        queue = WorkQueue(max_queue_size=3, max_concurrent=1, max_retries=0, base_delay=0)
        never = asyncio.Event()

        async def blocker():
            await never.wait()

        running = queue.submit("running", blocker)
        await asyncio.sleep(0)
        pending = queue.submit("pending", blocker)

        await queue.close()

        with pytest.raises(QueueClosedError):
            await running
        with pytest.raises(QueueClosedError):
            await pending
        with pytest.raises(QueueClosedError):
            queue.submit("late", blocker)

    @staticmethod
    def _value(value):
        async def work():
            return value
        return work
