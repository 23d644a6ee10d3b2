"""Alert worker: evaluates spending thresholds for "new-transaction" jobs."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentinel.config import Settings
from sentinel.queue.job_queue import Job, JobQueue
from sentinel.queue.worker_pool import Processor, WorkerPool
from sentinel.schemas.alert import AlertEvent, AlertJob
from sentinel.services.alert_service import AlertService

logger = structlog.get_logger()


def make_alert_processor(
    session_factory: async_sessionmaker[AsyncSession],
    evaluation_timeout: float = 5.0,
    on_alert: Callable[[AlertEvent], Any] | None = None,
) -> Processor:
    """Build the job processor. Each job gets its own database session."""

    async def process_alert_job(job: Job) -> dict:
        payload = AlertJob.model_validate(job.data)
        async with session_factory() as session:
            service = AlertService(session)
            event = await asyncio.wait_for(
                service.check_and_trigger_alert(payload.user_id, payload.category),
                timeout=evaluation_timeout,
            )

        if event is None:
            logger.info(
                "alert_not_triggered",
                job_id=job.id,
                transaction_id=payload.transaction_id,
            )
            return {"alert_triggered": False, "message": None}

        if on_alert is not None:
            on_alert(event)
        return {
            "alert_triggered": True,
            "message": event.message,
            "total_spent": str(event.total_spent),
        }

    return process_alert_job


def create_alert_worker(
    queue: JobQueue,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    on_alert: Callable[[AlertEvent], Any] | None = None,
    **pool_kwargs,
) -> WorkerPool:
    processor = make_alert_processor(
        session_factory,
        evaluation_timeout=settings.persistence_timeout,
        on_alert=on_alert,
    )
    return WorkerPool(
        queue,
        processor,
        concurrency=settings.alert_worker_concurrency,
        job_timeout=settings.alert_job_timeout,
        lock_ms=settings.alert_job_lock_ms,
        poll_interval=settings.worker_poll_interval,
        **pool_kwargs,
    )
