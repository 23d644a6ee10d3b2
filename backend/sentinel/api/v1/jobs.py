"""Operator view of the alert queue: counts, dead jobs, replay."""

from fastapi import APIRouter, Depends, Query

from sentinel.api.deps import get_queue
from sentinel.queue.job_queue import Job, JobQueue
from sentinel.schemas.job import DeadJobResponse, JobCountsResponse

router = APIRouter()


def _dead_job_response(job: Job) -> DeadJobResponse:
    return DeadJobResponse(
        id=job.id,
        name=job.name,
        data=job.data,
        attempts_made=job.attempts_made,
        max_attempts=job.options.attempts,
        failed_reason=job.failed_reason,
        finished_on=job.finished_at,
    )


@router.get("/counts", response_model=JobCountsResponse)
async def job_counts(queue: JobQueue = Depends(get_queue)):
    """Number of jobs per state; ``dead`` is the count to alert on."""
    counts = await queue.get_job_counts()
    return JobCountsResponse(**vars(counts))


@router.get("/dead", response_model=list[DeadJobResponse])
async def list_dead_jobs(
    limit: int = Query(50, ge=1, le=500),
    queue: JobQueue = Depends(get_queue),
):
    """Jobs that exhausted their attempts, most recent first."""
    return [_dead_job_response(job) for job in await queue.list_dead(limit)]


@router.post("/dead/{job_id}/retry", response_model=DeadJobResponse)
async def retry_dead_job(job_id: str, queue: JobQueue = Depends(get_queue)):
    """Put a dead job back in the queue with a fresh attempt budget."""
    return _dead_job_response(await queue.retry_dead(job_id))
