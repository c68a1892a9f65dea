import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from grantkeeper import CallbackNotificationSink, CleanupSettings, GrantProtocol, TokenCleanup
from grantkeeper.alchemy import AlchemyGrantStore, DatabaseSettings, PersistedGrant

logger = logging.getLogger("examples.cleanup")

db = DatabaseSettings(dialect={"type": "sqlite", "database": "./grantkeeper_example.db"})


async def seed(store: AlchemyGrantStore, count: int = 20) -> None:
    now = datetime.now(UTC)
    for i in range(count):
        await store.store_grant(
            PersistedGrant(
                key=uuid4().hex,
                type="refresh_token",
                client_id="example-client",
                subject_id=f"user-{i}",
                creation_time=now - timedelta(days=1),
                expiration=now + timedelta(seconds=-30 if i % 2 else 30),
                data="{}",
            ),
        )


def audit(grants: Sequence[GrantProtocol]) -> None:
    for grant in grants:
        logger.info("Removed %s %s for %s", grant.type, grant.key, grant.subject_id)


async def main() -> None:
    await db.create_tables()
    store = db.create_store()
    await seed(store)

    settings = CleanupSettings(enabled=True, interval=timedelta(seconds=1), batch_size=4)
    async with TokenCleanup(store, settings, notification=CallbackNotificationSink(callback=audit)):
        await asyncio.sleep(3)

    await db.engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
