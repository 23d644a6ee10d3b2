"""Health check tests."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

import sentinel.main
from sentinel.config import Settings


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_readiness_check(client, session_factory, monkeypatch):
    monkeypatch.setattr(sentinel.main, "async_session_factory", session_factory)
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["redis"] == "ok"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"x-request-id": "abc123"})
    assert response.headers["x-request-id"] == "abc123"


@pytest.mark.asyncio
async def test_startup_creates_schema(tmp_path, queue, monkeypatch):
    fresh_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")
    opened = {}

    def _from_url(url, name, **kwargs):
        opened.update(kwargs)
        return queue

    monkeypatch.setattr(sentinel.main, "engine", fresh_engine)
    monkeypatch.setattr(sentinel.main.JobQueue, "from_url", _from_url)
    monkeypatch.setattr(
        sentinel.main, "settings", Settings(alert_job_attempts=4, alert_job_backoff_ms=100)
    )

    async with sentinel.main.lifespan(sentinel.main.app):
        async with fresh_engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert {"users", "transactions", "alert_rules"} <= set(tables)
        assert opened["default_options"].attempts == 4
        assert opened["default_options"].backoff.delay_ms == 100
