"""Durable alert job queue and its consumer pool."""

from sentinel.queue.job_queue import (
    BackoffPolicy,
    Job,
    JobCounts,
    JobOptions,
    JobQueue,
    JobState,
)
from sentinel.queue.worker_pool import WorkerPool

__all__ = [
    "BackoffPolicy",
    "Job",
    "JobCounts",
    "JobOptions",
    "JobQueue",
    "JobState",
    "WorkerPool",
]
