from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import itweek.models  # noqa: F401
from itweek.db import Base, get_session

SQLITE_URL = "sqlite+aiosqlite://"


def _memory_engine():
    return create_async_engine(
        SQLITE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def run_db() -> Callable[[Callable[[async_sessionmaker], Awaitable[Any]]], Any]:
    """Run `scenario(session_factory)` against a fresh in-memory schema."""

    def runner(scenario: Callable[[async_sessionmaker], Awaitable[Any]]) -> Any:
        async def _main() -> Any:
            engine = _memory_engine()
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                return await scenario(factory)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return runner


@pytest.fixture
def client():
    from itweek.main import app

    engine = _memory_engine()
    factory = async_sessionmaker(engine, expire_on_commit=False)
    schema_ready = False

    async def _session_override():
        nonlocal schema_ready
        if not schema_ready:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            schema_ready = True
        async with factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
