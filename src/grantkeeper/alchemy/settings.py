from __future__ import annotations

import os
from functools import cached_property
from typing import Annotated, Literal

from pydantic import Field, PositiveInt, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from grantkeeper.alchemy.base import Base
from grantkeeper.alchemy.store import AlchemyGrantStore
from grantkeeper.core.exceptions import ConfigurationError


class PostgresSettings(BaseSettings):
    """Read from GRANTKEEPER_POSTGRES_* variables, e.g. GRANTKEEPER_POSTGRES_HOST."""

    model_config = SettingsConfigDict(env_prefix="GRANTKEEPER_POSTGRES_", extra="ignore")

    type: Literal["postgres"] = "postgres"
    host: str
    port: PositiveInt = 5432
    database: str
    username: str
    password: SecretStr
    echo: bool = False

    def url(self) -> URL:
        return URL.create(
            "postgresql+asyncpg",
            username=self.username,
            password=self.password.get_secret_value(),
            host=self.host,
            port=self.port,
            database=self.database,
        )


class SqliteSettings(BaseSettings):
    """Read from GRANTKEEPER_SQLITE_* variables, e.g. GRANTKEEPER_SQLITE_DATABASE=grants.db."""

    model_config = SettingsConfigDict(env_prefix="GRANTKEEPER_SQLITE_", extra="ignore")

    type: Literal["sqlite"] = "sqlite"
    database: str
    echo: bool = False

    def url(self) -> URL:
        return URL.create("sqlite+aiosqlite", database=self.database)


class DatabaseSettings(BaseSettings):
    """Where the persisted grant tables live.

    GRANTKEEPER_DATABASE_TYPE picks the dialect ("sqlite" by default); the
    dialect's own variables supply the connection details.

    Example usage:
        db = DatabaseSettings.from_env()
        await db.create_tables()
        store = db.create_store()
    """

    model_config = SettingsConfigDict(env_prefix="GRANTKEEPER_DATABASE_", extra="ignore")

    dialect: Annotated[PostgresSettings | SqliteSettings, Field(discriminator="type")]

    @classmethod
    def from_env(cls) -> DatabaseSettings:
        """Load the dialect named by GRANTKEEPER_DATABASE_TYPE.

        Raises:
            ConfigurationError: If GRANTKEEPER_DATABASE_TYPE names an unsupported database.
        """
        db_type = os.getenv("GRANTKEEPER_DATABASE_TYPE", "sqlite")

        match db_type:
            case "postgres":
                return cls(dialect=PostgresSettings())  # type: ignore[call-arg]
            case "sqlite":
                return cls(dialect=SqliteSettings())  # type: ignore[call-arg]
            case _:
                msg = f"Unsupported database type: {db_type!r}"
                raise ConfigurationError(msg)

    @cached_property
    def engine(self) -> AsyncEngine:
        return create_async_engine(self.dialect.url(), echo=self.dialect.echo)

    @cached_property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def create_store(self) -> AlchemyGrantStore:
        return AlchemyGrantStore(self.session_maker)

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
