"""
Pytest configuration and shared fixtures for PromptIQ tests.
"""
import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from promptiq.api.deps import get_upstream_service
from promptiq.core.auth import CurrentUser, JWTHandler
from promptiq.core.config import Settings, get_settings
from promptiq.core.database import Base, get_db
from promptiq.main import app
from promptiq.services.upstream_service import UpstreamService


# Test database URL - in-memory SQLite
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture(scope="function")
async def upstream(settings: Settings) -> AsyncGenerator[UpstreamService, None]:
    """Upstream client for one test; pair with ``respx`` to fake the provider."""
    service = UpstreamService(settings)
    yield service
    await service.close()


@pytest_asyncio.fixture(scope="function")
async def test_app(db_session: AsyncSession, upstream: UpstreamService) -> FastAPI:
    """Create a test FastAPI application with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_upstream_service] = lambda: upstream
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


# ============== Auth Fixtures ==============

@pytest.fixture
def make_token(settings: Settings):
    """Factory for bearer tokens."""
    def _make_token(user_id: str = "user-1", email: str | None = "user@example.com") -> str:
        handler = JWTHandler.from_settings(settings)
        return handler.create_access_token(CurrentUser(id=user_id, email=email))
    return _make_token


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def other_auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('user-2', 'other@example.com')}"}


# ============== Stream Fixtures ==============

@pytest.fixture
def sse_chunk():
    """Factory for one ``data:`` frame of a streamed completion."""
    def _sse_chunk(
        content: str | None = None,
        model: str | None = None,
        usage: dict[str, int] | None = None,
    ) -> bytes:
        payload: dict[str, Any] = {"choices": []}
        if content is not None:
            payload["choices"] = [{"index": 0, "delta": {"content": content}}]
        if model is not None:
            payload["model"] = model
        if usage is not None:
            payload["usage"] = usage
        return f"data: {json.dumps(payload)}\n\n".encode()
    return _sse_chunk


@pytest.fixture
def done_frame() -> bytes:
    return b"data: [DONE]\n\n"
