"""Durable job queue on Redis.

Layout, all keys under ``sentinel:{queue}:``:

    id          INCR counter for job ids
    job:{id}    hash with the job payload and bookkeeping
    wait        list of ready job ids (LPUSH in, LMOVE out from the right)
    active      list of job ids currently owned by a consumer
    delayed     zset of job ids waiting for their backoff, scored by ready time
    completed   zset of completed job ids (only when remove_on_complete=False)
    dead        zset of job ids that exhausted their attempts

Delivery is at-least-once. ``claim`` moves one id from ``wait`` to ``active``
with a single LMOVE, so a given enqueue is owned by one consumer at a time.
A consumer that dies leaves its job in ``active`` until the lock deadline
passes, after which ``requeue_stalled`` hands it to another consumer. A job
that keeps stalling is moved to ``dead`` instead of being redelivered forever.
"""

import json
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from sentinel.core.exceptions import DispatchError, NotFoundError

logger = structlog.get_logger()

KEY_PREFIX = "sentinel"
STALLED_REASON = "job stalled more than allowable limit"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ms_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class JobState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"


@dataclass
class BackoffPolicy:
    type: str = "exponential"  # exponential, fixed
    delay_ms: int = 2000

    def delay_for(self, attempts_made: int) -> int:
        """Delay before the next attempt, given how many attempts already failed."""
        if self.type == "fixed":
            return self.delay_ms
        return self.delay_ms * 2 ** max(attempts_made - 1, 0)


@dataclass
class JobOptions:
    attempts: int = 3
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    remove_on_complete: bool = True
    remove_on_fail: bool = False

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | None) -> "JobOptions":
        if not raw:
            return cls()
        data = json.loads(raw)
        backoff = BackoffPolicy(**data.pop("backoff", {}))
        return cls(backoff=backoff, **data)


@dataclass
class Job:
    id: str
    name: str
    data: dict
    options: JobOptions
    state: JobState = JobState.QUEUED
    attempts_made: int = 0
    timestamp: int = 0
    processed_on: int | None = None
    finished_on: int | None = None
    failed_reason: str | None = None

    @classmethod
    def from_hash(cls, job_id: str, raw: dict[str, str]) -> "Job":
        def _int(name: str) -> int | None:
            value = raw.get(name)
            return int(value) if value not in (None, "") else None

        return cls(
            id=job_id,
            name=raw.get("name", ""),
            data=json.loads(raw.get("data") or "{}"),
            options=JobOptions.from_json(raw.get("opts")),
            state=JobState(raw.get("state", JobState.QUEUED.value)),
            attempts_made=_int("attempts_made") or 0,
            timestamp=_int("timestamp") or 0,
            processed_on=_int("processed_on"),
            finished_on=_int("finished_on"),
            failed_reason=raw.get("failed_reason") or None,
        )

    @property
    def finished_at(self) -> datetime | None:
        return _ms_to_datetime(self.finished_on)


@dataclass
class JobCounts:
    waiting: int
    active: int
    delayed: int
    completed: int
    dead: int


class JobQueue:
    """Producer and consumer operations for one named queue.

    ``on_error`` receives broker-level failures (Redis unreachable, timeouts).
    Those are also raised to the caller as ``DispatchError``; failures of a
    job's own processing go through ``fail`` instead.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        name: str,
        default_options: JobOptions | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        owns_client: bool = False,
        max_stalled_count: int = 1,
    ) -> None:
        self.redis = redis
        self.name = name
        self.default_options = default_options or JobOptions()
        self.on_error = on_error
        self.max_stalled_count = max_stalled_count
        self._owns_client = owns_client

    @classmethod
    def from_url(
        cls,
        url: str,
        name: str,
        default_options: JobOptions | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        socket_timeout: float = 5.0,
        max_stalled_count: int = 1,
    ) -> "JobQueue":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(
            client,
            name,
            default_options,
            on_error,
            owns_client=True,
            max_stalled_count=max_stalled_count,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.redis.aclose()

    # ── Keys ───────────────────────────────────────────

    def _key(self, suffix: str) -> str:
        return f"{KEY_PREFIX}:{self.name}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    @contextmanager
    def _broker_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            logger.error("queue_broker_error", queue=self.name, operation=operation, error=str(e))
            if self.on_error is not None:
                self.on_error(e)
            raise DispatchError(f"{operation} failed on queue {self.name}: {e}") from e

    # ── Producer ───────────────────────────────────────

    async def add(self, name: str, data: dict, options: JobOptions | None = None) -> Job:
        """Persist a job and make it available to consumers."""
        opts = options or self.default_options
        now = _now_ms()
        with self._broker_errors("add"):
            job_id = str(await self.redis.incr(self._key("id")))
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._job_key(job_id),
                    mapping={
                        "name": name,
                        "data": json.dumps(data),
                        "opts": opts.to_json(),
                        "state": JobState.QUEUED.value,
                        "attempts_made": 0,
                        "timestamp": now,
                    },
                )
                pipe.lpush(self._key("wait"), job_id)
                await pipe.execute()

        return Job(id=job_id, name=name, data=data, options=opts, timestamp=now)

    # ── Consumer ───────────────────────────────────────

    async def claim(self, lock_ms: int) -> Job | None:
        """Take the oldest waiting job, or None when the queue is empty."""
        with self._broker_errors("claim"):
            job_id = await self.redis.lmove(
                self._key("wait"), self._key("active"), "RIGHT", "LEFT"
            )
            if job_id is None:
                return None

            job_key = self._job_key(job_id)
            raw = await self.redis.hgetall(job_key)
            if not raw:
                # Already finished by an earlier owner of a stalled copy
                await self.redis.lrem(self._key("active"), 0, job_id)
                return None

            now = _now_ms()
            await self.redis.hset(
                job_key,
                mapping={
                    "state": JobState.PROCESSING.value,
                    "processed_on": now,
                    "locked_until": now + lock_ms,
                },
            )

        job = Job.from_hash(job_id, raw)
        job.state = JobState.PROCESSING
        job.processed_on = now
        return job

    async def complete(self, job: Job, result: Any = None) -> None:
        now = _now_ms()
        with self._broker_errors("complete"):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._key("active"), 0, job.id)
                if job.options.remove_on_complete:
                    pipe.delete(self._job_key(job.id))
                else:
                    pipe.hset(
                        self._job_key(job.id),
                        mapping={
                            "state": JobState.COMPLETED.value,
                            "finished_on": now,
                            "return_value": json.dumps(result, default=str),
                        },
                    )
                    pipe.hdel(self._job_key(job.id), "locked_until")
                    pipe.zadd(self._key("completed"), {job.id: now})
                await pipe.execute()
        job.state = JobState.COMPLETED
        job.finished_on = now

    async def fail(self, job: Job, error: Exception) -> JobState:
        """Record a failed attempt.

        Returns ``JobState.FAILED`` when the job waits in ``delayed`` for
        another attempt (``promote_delayed`` turns it back into ``queued``),
        ``JobState.DEAD`` when its attempts are exhausted.
        """
        now = _now_ms()
        reason = str(error) or type(error).__name__
        job_key = self._job_key(job.id)
        with self._broker_errors("fail"):
            attempts_made = await self.redis.hincrby(job_key, "attempts_made", 1)
            job.attempts_made = attempts_made
            job.failed_reason = reason

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._key("active"), 0, job.id)
                if attempts_made < job.options.attempts:
                    delay = job.options.backoff.delay_for(attempts_made)
                    pipe.hset(
                        job_key,
                        mapping={"state": JobState.FAILED.value, "failed_reason": reason},
                    )
                    pipe.hdel(job_key, "locked_until")
                    pipe.zadd(self._key("delayed"), {job.id: now + delay})
                    job.state = JobState.FAILED
                else:
                    self._bury(pipe, job.id, reason, now, remove=job.options.remove_on_fail)
                    job.state = JobState.DEAD
                await pipe.execute()

        if job.state is JobState.DEAD:
            job.finished_on = now
        return job.state

    def _bury(self, pipe, job_id: str, reason: str, now: int, remove: bool) -> None:
        """Queue the commands that make a job terminally dead."""
        job_key = self._job_key(job_id)
        if remove:
            pipe.delete(job_key)
            return
        pipe.hset(
            job_key,
            mapping={"state": JobState.DEAD.value, "failed_reason": reason, "finished_on": now},
        )
        pipe.hdel(job_key, "locked_until")
        pipe.zadd(self._key("dead"), {job_id: now})

    # ── Maintenance ────────────────────────────────────

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose backoff has elapsed back to ``wait``."""
        promoted = 0
        with self._broker_errors("promote_delayed"):
            due = await self.redis.zrangebyscore(self._key("delayed"), "-inf", _now_ms())
            for job_id in due:
                # ZREM decides the winner when several pools promote at once
                if await self.redis.zrem(self._key("delayed"), job_id):
                    async with self.redis.pipeline(transaction=True) as pipe:
                        pipe.hset(self._job_key(job_id), "state", JobState.QUEUED.value)
                        pipe.lpush(self._key("wait"), job_id)
                        await pipe.execute()
                    promoted += 1
        return promoted

    async def requeue_stalled(self) -> int:
        """Return jobs whose consumer lost its lock to ``wait``.

        A job that stalls more than ``max_stalled_count`` times is treated as
        poison and goes straight to ``dead``. Returns the number requeued.
        """
        requeued = 0
        now = _now_ms()
        with self._broker_errors("requeue_stalled"):
            for job_id in await self.redis.lrange(self._key("active"), 0, -1):
                job_key = self._job_key(job_id)
                state, locked_until, opts = await self.redis.hmget(
                    job_key, ["state", "locked_until", "opts"]
                )
                if state is None:
                    await self.redis.lrem(self._key("active"), 0, job_id)
                    continue
                if locked_until is None or int(locked_until) >= now:
                    continue
                if not await self.redis.lrem(self._key("active"), 1, job_id):
                    continue

                stalled = await self.redis.hincrby(job_key, "stalled_count", 1)
                async with self.redis.pipeline(transaction=True) as pipe:
                    if stalled > self.max_stalled_count:
                        options = JobOptions.from_json(opts)
                        self._bury(
                            pipe, job_id, STALLED_REASON, now, remove=options.remove_on_fail
                        )
                    else:
                        pipe.hset(job_key, "state", JobState.QUEUED.value)
                        pipe.hdel(job_key, "locked_until")
                        pipe.lpush(self._key("wait"), job_id)
                    await pipe.execute()

                if stalled > self.max_stalled_count:
                    logger.error("job_stalled_dead", queue=self.name, job_id=job_id, stalls=stalled)
                else:
                    logger.warning("job_stalled", queue=self.name, job_id=job_id, stalls=stalled)
                    requeued += 1
        return requeued

    # ── Inspection ─────────────────────────────────────

    async def ping(self) -> bool:
        with self._broker_errors("ping"):
            return bool(await self.redis.ping())

    async def get_job(self, job_id: str) -> Job | None:
        with self._broker_errors("get_job"):
            raw = await self.redis.hgetall(self._job_key(job_id))
        return Job.from_hash(job_id, raw) if raw else None

    async def get_job_counts(self) -> JobCounts:
        with self._broker_errors("get_job_counts"):
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.llen(self._key("wait"))
                pipe.llen(self._key("active"))
                pipe.zcard(self._key("delayed"))
                pipe.zcard(self._key("completed"))
                pipe.zcard(self._key("dead"))
                waiting, active, delayed, completed, dead = await pipe.execute()
        return JobCounts(
            waiting=waiting, active=active, delayed=delayed, completed=completed, dead=dead
        )

    async def dead_count(self) -> int:
        with self._broker_errors("dead_count"):
            return await self.redis.zcard(self._key("dead"))

    async def list_dead(self, limit: int = 50) -> list[Job]:
        """Most recently failed first."""
        with self._broker_errors("list_dead"):
            job_ids = await self.redis.zrevrange(self._key("dead"), 0, limit - 1)
        jobs = []
        for job_id in job_ids:
            job = await self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def retry_dead(self, job_id: str) -> Job:
        """Replay a dead job with a fresh attempt budget."""
        with self._broker_errors("retry_dead"):
            if not await self.redis.zrem(self._key("dead"), job_id):
                raise NotFoundError("Dead job")
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._job_key(job_id),
                    mapping={"state": JobState.QUEUED.value, "attempts_made": 0},
                )
                pipe.hdel(self._job_key(job_id), "finished_on", "stalled_count")
                pipe.lpush(self._key("wait"), job_id)
                await pipe.execute()
        logger.info("dead_job_replayed", queue=self.name, job_id=job_id)
        job = await self.get_job(job_id)
        if job is None:
            raise NotFoundError("Dead job")
        return job
