"""
Bounded FIFO lane for embedding + detection jobs.

Jobs hit shared storage and a rate-limited embedding API, so they run
strictly one at a time in arrival order. A full queue rejects new work
immediately instead of blocking the caller.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from similarity_service.core.config import settings
from similarity_service.core.exceptions import QueueClosedError, QueueFullError

logger = logging.getLogger(__name__)


@dataclass
class WorkResult:
    task_id: str
    result: Any
    attempts: int
    processing_time_ms: float


@dataclass
class QueueStatus:
    pending: int
    processing: int
    available: int
    remaining_capacity: int
    max_queue_size: int


@dataclass
class _QueuedTask:
    task_id: str
    work: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    attempts: int = 0


class WorkQueue:
    """
    Single-owner async work queue with retry and exponential backoff.

    Construct once per process and share it; workers start on first use
    (or on ``start()``) inside the running event loop.
    """

    def __init__(
        self,
        max_queue_size: int = None,
        max_concurrent: int = None,
        max_retries: int = None,
        base_delay: float = None,
    ):
        self.max_queue_size = max_queue_size if max_queue_size is not None else settings.WORK_QUEUE_MAX_SIZE
        self.max_concurrent = max_concurrent or settings.WORK_QUEUE_MAX_CONCURRENT
        self.max_retries = max_retries if max_retries is not None else settings.WORK_QUEUE_MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else settings.WORK_QUEUE_BASE_DELAY_SECONDS
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be at least 1, got {self.max_queue_size}")
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._in_flight = 0
        self._closed = False

    async def start(self):
        self._ensure_started()

    def _ensure_started(self):
        if self._closed:
            raise QueueClosedError("Work queue is closed")
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        if not self._workers:
            loop = asyncio.get_running_loop()
            self._workers = [
                loop.create_task(self._worker(i), name=f"similarity-worker-{i}")
                for i in range(self.max_concurrent)
            ]
            logger.info(f"Work queue started with {self.max_concurrent} worker(s)")

    def has_capacity(self) -> bool:
        pending = self._queue.qsize() if self._queue is not None else 0
        return not self._closed and pending < self.max_queue_size

    def ensure_capacity(self):
        if self._closed:
            raise QueueClosedError("Work queue is closed")
        if not self.has_capacity():
            raise QueueFullError("Too many pending similarity detection requests")

    def submit(self, task_id: str, work: Callable[[], Awaitable[Any]]) -> asyncio.Future:
        """
        Queue ``work`` without waiting for it.

        Args:
            task_id: Identifier used in logs and the WorkResult
            work: Zero-argument coroutine function; called again on retry

        Returns:
            Future resolved with a WorkResult, or failed with the last error
            once retries are exhausted

        Raises:
            QueueFullError: Pending tasks are at max_queue_size
        """
        self._ensure_started()
        future = asyncio.get_running_loop().create_future()
        try:
            self._queue.put_nowait(_QueuedTask(task_id=task_id, work=work, future=future))
        except asyncio.QueueFull:
            logger.warning(f"Work queue full ({self.max_queue_size} pending), rejecting task {task_id}")
            raise QueueFullError("Too many pending similarity detection requests") from None
        logger.debug(f"Task {task_id} queued ({self._queue.qsize()} pending)")
        return future

    async def enqueue(self, task_id: str, work: Callable[[], Awaitable[Any]]) -> WorkResult:
        """Queue ``work`` and wait for its result."""
        return await self.submit(task_id, work)

    def status(self) -> QueueStatus:
        pending = self._queue.qsize() if self._queue is not None else 0
        return QueueStatus(
            pending=pending,
            processing=self._in_flight,
            available=self.max_concurrent - self._in_flight,
            remaining_capacity=max(0, self.max_queue_size - pending),
            max_queue_size=self.max_queue_size,
        )

    async def close(self):
        """Stop workers and fail everything still queued."""
        self._closed = True
        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self._queue is not None:
            while not self._queue.empty():
                task = self._queue.get_nowait()
                if not task.future.done():
                    task.future.set_exception(QueueClosedError("Work queue closed before task ran"))
        logger.info("Work queue closed")

    async def _worker(self, worker_id: int):
        while True:
            task = await self._queue.get()
            self._in_flight += 1
            try:
                await self._run(task)
            except asyncio.CancelledError:
                if not task.future.done():
                    task.future.set_exception(QueueClosedError("Work queue closed while task was running"))
                raise
            finally:
                self._in_flight -= 1
                self._queue.task_done()

    async def _run(self, task: _QueuedTask):
        started = time.monotonic()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            before_sleep=lambda state: self._log_retry(task, state),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    task.attempts = attempt.retry_state.attempt_number
                    result = await task.work()
        except Exception as e:
            logger.error(f"Task {task.task_id} failed after {self.max_retries} retries: {e}")
            if not task.future.done():
                task.future.set_exception(e)
            return

        processing_time_ms = (time.monotonic() - started) * 1000
        logger.debug(f"Task {task.task_id} completed in {processing_time_ms:.0f}ms")
        if not task.future.done():
            task.future.set_result(
                WorkResult(
                    task_id=task.task_id,
                    result=result,
                    attempts=task.attempts,
                    processing_time_ms=processing_time_ms,
                )
            )

    def _log_retry(self, task: _QueuedTask, state: RetryCallState):
        logger.warning(
            f"Task {task.task_id} failed, retry {state.attempt_number}/{self.max_retries} "
            f"in {state.next_action.sleep:.2f}s: {state.outcome.exception()}"
        )
