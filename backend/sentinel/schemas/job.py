"""Operator-facing views of the alert queue."""

from datetime import datetime

from sentinel.schemas.base import CamelModel


class JobCountsResponse(CamelModel):
    waiting: int
    active: int
    delayed: int
    completed: int
    dead: int


class DeadJobResponse(CamelModel):
    id: str
    name: str
    data: dict
    attempts_made: int
    max_attempts: int
    failed_reason: str | None = None
    finished_on: datetime | None = None
