"""Pytest fixtures for unit and integration tests."""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskflow.main import app
from taskflow.models.base import Base
from taskflow.services.container import build_container
from taskflow.services.notification_scheduler import NotificationScheduler
from taskflow.services.task_orchestrator import TaskOrchestrator
from tests.fakes import FakeClock, FakePresenter, FakeTimers, InMemoryTaskRepository

# One shared in-memory SQLite connection per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---- fakes ----


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def presenter() -> FakePresenter:
    return FakePresenter()


@pytest.fixture
def repo(clock) -> InMemoryTaskRepository:
    return InMemoryTaskRepository(clock)


@pytest.fixture
def scheduler(presenter, timers, clock, repo) -> NotificationScheduler:
    return NotificationScheduler(presenter, timers, clock=clock, task_source=repo.find_all)


@pytest.fixture
def orchestrator(repo, scheduler, clock) -> TaskOrchestrator:
    orch = TaskOrchestrator(repo, scheduler, clock=clock)
    scheduler.on_fired = orch.record_notification
    return orch


# ---- HTTP ----


@pytest.fixture
def services(session_factory, presenter, timers):
    return build_container(session_factory, presenter=presenter, timers=timers)


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client backed by the in-memory database and fake timers."""
    app.state.services = services
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.state.services = None
