"""Shared test fixtures."""

import asyncio

import pytest
from fakeredis import aioredis as fake_aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from sentinel.core.database import create_session_factory, get_db, init_models
from sentinel.core.exceptions import ClassificationFailure
from sentinel.main import app
from sentinel.queue.job_queue import BackoffPolicy, JobOptions, JobQueue
from sentinel.schemas.classification import ClassificationResult
from sentinel.services.llm_provider import LLMProviderBase


class FakeProvider(LLMProviderBase):
    """Scripted provider: each call pops the next response (str) or raises it (Exception)."""

    model = "fake-model"

    def __init__(self, *responses, delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls = []

    async def complete(self, system_prompt, user_message, temperature=0.3, max_tokens=50):
        self.calls.append(user_message)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class StubGateway:
    """Gateway double that returns a fixed classification."""

    def __init__(self, category: str = "Food", confidence: float = 0.9):
        self.result = ClassificationResult(category=category, confidence=confidence)
        self.calls = []

    async def classify(self, description: str) -> ClassificationResult:
        self.calls.append(description)
        return self.result


class FailingProvider(FakeProvider):
    def __init__(self):
        super().__init__(ClassificationFailure("provider down"))


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sentinel.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def job_options():
    """Same shape as production options, with millisecond backoff."""
    return JobOptions(attempts=3, backoff=BackoffPolicy(type="exponential", delay_ms=10))


@pytest.fixture
def broker_errors():
    return []


@pytest.fixture
def queue(redis, job_options, broker_errors):
    return JobQueue(redis, "test-alerts", default_options=job_options, on_error=broker_errors.append)


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
async def client(session_factory, queue, gateway):
    """Async test client for the FastAPI app, wired to the test database and queue."""

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.state.alert_queue = queue
    app.state.classification_gateway = gateway
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
