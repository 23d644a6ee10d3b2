"""Bounded pool of asyncio consumers for a ``JobQueue``.

Each of the ``concurrency`` slots loops: claim a job, run the processor under
``job_timeout``, then mark the job completed or failed. One extra maintenance
task promotes delayed retries and requeues stalled jobs. ``close`` stops
claiming and waits for jobs already in flight; it never cancels them.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from sentinel.core.exceptions import DispatchError, WorkerError
from sentinel.queue.job_queue import Job, JobQueue, JobState

logger = structlog.get_logger()

Processor = Callable[[Job], Awaitable[Any]]


class WorkerPool:
    """Consume one queue with ``concurrency`` slots.

    ``on_completed(job, result)`` and ``on_failed(job, error, state)`` are
    listeners: an exception raised by one is logged and does not affect the
    job or the slot. ``on_error(error)`` receives broker failures and
    unexpected slot errors; the slot backs off and keeps consuming.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: Processor,
        concurrency: int = 5,
        job_timeout: float = 30.0,
        lock_ms: int = 60_000,
        poll_interval: float = 0.5,
        on_completed: Callable[[Job, Any], Any] | None = None,
        on_failed: Callable[[Job, WorkerError, JobState], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if job_timeout * 1000 >= lock_ms:
            raise ValueError("job_timeout must be shorter than the job lock")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.job_timeout = job_timeout
        self.lock_ms = lock_ms
        self.poll_interval = poll_interval
        self.on_completed = on_completed
        self.on_failed = on_failed
        self.on_error = on_error
        self._closing = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._closing.is_set()

    async def start(self) -> None:
        if self._tasks:
            return
        self._closing.clear()
        self._tasks = [
            asyncio.create_task(self._consume(slot), name=f"{self.queue.name}-worker-{slot}")
            for slot in range(self.concurrency)
        ]
        self._tasks.append(
            asyncio.create_task(self._maintain(), name=f"{self.queue.name}-maintenance")
        )
        logger.info("worker_pool_started", queue=self.queue.name, concurrency=self.concurrency)

    async def run(self) -> None:
        """Start the pool and block until ``close`` is called."""
        await self.start()
        await self._closing.wait()
        await self._drain()

    def stop(self) -> None:
        """Ask the pool to stop; safe to call from a signal handler."""
        self._closing.set()

    async def close(self) -> None:
        """Stop claiming new jobs and wait for in-flight ones to finish."""
        self.stop()
        await self._drain()

    async def _drain(self) -> None:
        tasks, self._tasks = self._tasks, []
        if tasks:
            await asyncio.gather(*tasks)
            logger.info("worker_pool_stopped", queue=self.queue.name)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, but wake up early when the pool is closing."""
        try:
            await asyncio.wait_for(self._closing.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _report(self, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("worker_error_listener_failed", queue=self.queue.name)

    def _notify(self, hook_name: str, hook: Callable[..., Any] | None, job: Job, *args) -> None:
        if hook is None:
            return
        try:
            hook(job, *args)
        except Exception:
            logger.exception("job_hook_failed", queue=self.queue.name, job_id=job.id, hook=hook_name)

    async def _consume(self, slot: int) -> None:
        while not self._closing.is_set():
            try:
                job = await self.queue.claim(self.lock_ms)
            except DispatchError as e:
                self._report(e)
                await self._sleep(self.poll_interval * 2)
                continue

            if job is None:
                await self._sleep(self.poll_interval)
                continue

            try:
                await self._process(job, slot)
            except DispatchError as e:
                # The job stays in active and will be requeued once its lock expires
                logger.error("job_settle_failed", queue=self.queue.name, job_id=job.id)
                self._report(e)
                await self._sleep(self.poll_interval)
            except Exception as e:
                logger.exception("worker_slot_error", queue=self.queue.name, job_id=job.id, slot=slot)
                self._report(e)
                await self._sleep(self.poll_interval)

    async def _process(self, job: Job, slot: int) -> None:
        log = logger.bind(queue=self.queue.name, job_id=job.id, job_name=job.name, slot=slot)
        log.info("job_processing", attempt=job.attempts_made + 1, data=job.data)
        try:
            result = await asyncio.wait_for(self.processor(job), timeout=self.job_timeout)
        except Exception as e:
            if isinstance(e, WorkerError):
                error = e
            else:
                if isinstance(e, asyncio.TimeoutError):
                    error = WorkerError(f"job timed out after {self.job_timeout}s")
                else:
                    error = WorkerError(f"{type(e).__name__}: {e}")
                error.__cause__ = e

            state = await self.queue.fail(job, error)
            if state is JobState.DEAD:
                log.error("job_dead", attempts=job.attempts_made, error=error.message)
            else:
                log.warning("job_failed", attempts=job.attempts_made, error=error.message)
            self._notify("on_failed", self.on_failed, job, error, state)
            return

        await self.queue.complete(job, result)
        log.info("job_completed", result=result)
        self._notify("on_completed", self.on_completed, job, result)

    async def _maintain(self) -> None:
        while not self._closing.is_set():
            try:
                await self.queue.promote_delayed()
                await self.queue.requeue_stalled()
            except DispatchError as e:
                self._report(e)
            await self._sleep(self.poll_interval)
