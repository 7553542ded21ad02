"""Fixtures for repository tests against a real PostgreSQL database.

Environment variables:
    TEST_DATABASE_URL: URL of a disposable database. Tables are dropped and
        recreated around every test.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from filenest.db import to_async_url
from filenest.db.models import Base


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a freshly created schema."""
    engine = create_async_engine(to_async_url(os.environ["TEST_DATABASE_URL"]))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
