"""Shared pytest fixtures for analytics service tests."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings
from app.core.database import Base
from app.core.identity import ACCOUNT_HEADER
from app.main import create_app

TEST_ACCOUNT = "acct-test"


@pytest.fixture
def app() -> FastAPI:
    """Fresh application per test (own in-memory result cache)."""
    return create_app()


@pytest.fixture
async def client(app: FastAPI):
    """Async HTTP client for endpoint tests, authenticated as TEST_ACCOUNT."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={ACCOUNT_HEADER: TEST_ACCOUNT},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client(app: FastAPI):
    """Async HTTP client that sends no account header."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    """Async database session for integration tests.

    Creates all tables, yields a session, truncates and disposes after.
    Requires PostgreSQL (see DATABASE_URL).
    """
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()

    async with engine.begin() as conn:
        await conn.execute(text("TRUNCATE data_record, period_rollup RESTART IDENTITY"))

    await engine.dispose()
