"""Shared API dependencies."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.config import settings
from sentinel.core.database import get_db
from sentinel.queue.job_queue import JobQueue
from sentinel.services.alert_service import AlertService
from sentinel.services.classification_service import ClassificationGateway
from sentinel.services.transaction_service import TransactionService, alert_job_options

__all__ = [
    "get_alert_service",
    "get_db",
    "get_gateway",
    "get_queue",
    "get_transaction_service",
]


def get_queue(request: Request) -> JobQueue:
    """The alert queue opened by the application lifespan."""
    return request.app.state.alert_queue


def get_gateway(request: Request) -> ClassificationGateway:
    return request.app.state.classification_gateway


def get_transaction_service(
    db: AsyncSession = Depends(get_db),
    gateway: ClassificationGateway = Depends(get_gateway),
    queue: JobQueue = Depends(get_queue),
) -> TransactionService:
    return TransactionService(
        db,
        gateway,
        queue,
        persistence_timeout=settings.persistence_timeout,
        job_options=alert_job_options(settings),
    )


def get_alert_service(db: AsyncSession = Depends(get_db)) -> AlertService:
    return AlertService(db)
