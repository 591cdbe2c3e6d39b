"""Shared test fixtures for pytest.

We set minimal env defaults (e.g. SECRET_KEY) early so importing modules
that instantiate settings succeeds without needing an external .env file.
The database URL points at in-memory SQLite so importing `main` never
needs a running Postgres.
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from dependencies.analysis import get_checkpoint_store, get_provider_client
from main import app
from models import Base
from services.analysis.checkpoints import CheckpointStore
from tests.fixtures.analysis_fixtures import (
    SAMPLE_JSON,
    ScriptedProvider,
    make_settings,
    make_token,
    provider_client_for,
    split_text,
)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def settings():
    return make_settings()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite with the full schema; one connection shared by all sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def checkpoint_store(session_factory, settings) -> CheckpointStore:
    return CheckpointStore(session_factory, settings)


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    """Provider replaying the sample analysis in 40-character deltas."""
    return ScriptedProvider(split_text(SAMPLE_JSON, 40))


@pytest_asyncio.fixture
async def async_client(
    checkpoint_store: CheckpointStore,
    scripted_provider: ScriptedProvider,
    settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client wired to a SQLite-backed store and the scripted provider."""
    provider_client = provider_client_for(scripted_provider, settings)
    app.dependency_overrides[get_checkpoint_store] = lambda: checkpoint_store
    app.dependency_overrides[get_provider_client] = lambda: provider_client
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"Authorization": f"Bearer {make_token()}"},
    ) as client:
        yield client
    app.dependency_overrides.pop(get_checkpoint_store, None)
    app.dependency_overrides.pop(get_provider_client, None)
