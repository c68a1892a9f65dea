"""Pytest fixtures for the SQLAlchemy grant store tests."""

from __future__ import annotations

from importlib.util import find_spec
from typing import TYPE_CHECKING

SQLALCHEMY_AVAILABLE = find_spec("sqlalchemy") is not None and find_spec("aiosqlite") is not None


def pytest_ignore_collect(collection_path, config) -> bool:  # noqa: ARG001
    return not SQLALCHEMY_AVAILABLE


if SQLALCHEMY_AVAILABLE:
    import pytest_asyncio
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from sqlalchemy.pool import StaticPool

    from grantkeeper.alchemy import AlchemyGrantStore, Base

    if TYPE_CHECKING:
        from collections.abc import AsyncGenerator

        from sqlalchemy.ext.asyncio import AsyncEngine

    @pytest_asyncio.fixture
    async def alchemy_engine() -> AsyncGenerator[AsyncEngine, None]:
        """Create an isolated in-memory SQLite engine with the grant tables.

        StaticPool shares one connection, so the schema lives for the whole test.
        """
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    @pytest_asyncio.fixture
    async def alchemy_session_factory(alchemy_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(alchemy_engine, class_=AsyncSession, expire_on_commit=False)

    @pytest_asyncio.fixture
    async def alchemy_store(alchemy_session_factory: async_sessionmaker[AsyncSession]) -> AlchemyGrantStore:
        return AlchemyGrantStore(alchemy_session_factory)
