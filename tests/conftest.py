"""Shared pytest fixtures for service, repository and API tests."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlink.config import Settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.dependencies import ServiceManager
from shortlink.link_service import LinkService
from shortlink.main import app
from shortlink.repository import InMemoryLinkRepository, LinkRepository
from shortlink.sql_repository import SQLLinkRepository


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlink-test.db'}",
        EXPIRY_SWEEP_INTERVAL_SECONDS=0,
        STORAGE_TIMEOUT_SECONDS=10.0,
        BASE_URL="http://sho.rt",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def memory_repository() -> InMemoryLinkRepository:
    return InMemoryLinkRepository()


@pytest_asyncio.fixture
async def sql_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest_asyncio.fixture
async def sql_repository(sql_engine: AsyncEngine, settings: Settings) -> SQLLinkRepository:
    return SQLLinkRepository(create_session_factory(sql_engine), timeout=settings.STORAGE_TIMEOUT_SECONDS)


@pytest.fixture(params=["memory", "sql"])
def repository(request: pytest.FixtureRequest) -> LinkRepository:
    """Run a test against both repository adapters."""
    if request.param == "memory":
        return request.getfixturevalue("memory_repository")
    return request.getfixturevalue("sql_repository")


@pytest.fixture
def service(repository: LinkRepository, settings: Settings) -> LinkService:
    return LinkService.from_settings(repository, settings)


@pytest.fixture
def memory_service(memory_repository: InMemoryLinkRepository, settings: Settings) -> LinkService:
    return LinkService.from_settings(memory_repository, settings)


@pytest_asyncio.fixture
async def client(settings: Settings, memory_repository: InMemoryLinkRepository) -> AsyncGenerator[AsyncClient, None]:
    manager = ServiceManager(settings, memory_repository)
    await manager.initialize()
    previous = app.state.service_manager
    app.state.service_manager = manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.service_manager = previous
    await manager.cleanup()
