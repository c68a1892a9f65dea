"""SQLAlchemy 2.0 persistence for grants and device codes.

- Base: Declarative base with dataclass mapping and a naming convention
- Models: PersistedGrant, DeviceFlowCode
- Types: DateTimeUTC (timezone-aware datetime storage)
- AlchemyGrantStore: the store the token cleanup sweeps

Usage:
    from grantkeeper.alchemy import DatabaseSettings

    db = DatabaseSettings.from_env()
    await db.create_tables()
    store = db.create_store()
"""

from grantkeeper.alchemy.base import Base
from grantkeeper.alchemy.models import DeviceFlowCode, PersistedGrant
from grantkeeper.alchemy.settings import DatabaseSettings, PostgresSettings, SqliteSettings
from grantkeeper.alchemy.store import AlchemyGrantStore
from grantkeeper.alchemy.types import DateTimeUTC

__all__ = [
    "AlchemyGrantStore",
    "Base",
    "DatabaseSettings",
    "DateTimeUTC",
    "DeviceFlowCode",
    "PersistedGrant",
    "PostgresSettings",
    "SqliteSettings",
]
