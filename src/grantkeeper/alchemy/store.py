from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import Delete, Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from grantkeeper.alchemy.models import DeviceFlowCode, PersistedGrant
from grantkeeper.core.exceptions import StoreError
from grantkeeper.protocols import GrantStoreProtocol, RecordKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class AlchemyGrantStore(GrantStoreProtocol):
    """Persisted grant and device code store on an async SQLAlchemy engine.

    Every operation runs in its own session and transaction, so a sweep never
    holds a transaction open between batches. Sessions always use
    ``expire_on_commit=False`` so returned rows stay readable after commit.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        grant_model: type[PersistedGrant] = PersistedGrant,
        device_code_model: type[DeviceFlowCode] = DeviceFlowCode,
    ) -> None:
        self.session_maker = session_maker
        self.grant_model = grant_model
        self.device_code_model = device_code_model

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_maker(expire_on_commit=False) as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            msg = f"Grant store operation failed: {exc}"
            raise StoreError(msg) from exc

    def _model(self, kind: RecordKind) -> type[PersistedGrant] | type[DeviceFlowCode]:
        match kind:
            case RecordKind.GRANTS:
                return self.grant_model
            case RecordKind.DEVICE_CODES:
                return self.device_code_model

    async def query_expired(
        self,
        kind: RecordKind,
        cutoff: datetime,
        limit: int,
    ) -> Sequence[PersistedGrant | DeviceFlowCode]:
        model = self._model(kind)
        stmt = (
            select(model)
            .where(model.expiration.is_not(None), model.expiration <= cutoff)
            .order_by(model.expiration)
            .limit(limit)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def delete_by_keys(self, kind: RecordKind, keys: Sequence[str]) -> int:
        if not keys:
            return 0

        model = self._model(kind)
        key_column = getattr(model, kind.key_attribute)
        stmt = delete(model).where(key_column.in_(keys))
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def count(self, kind: RecordKind) -> int:
        model = self._model(kind)
        async with self._transaction() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    async def store_grant(self, grant: PersistedGrant) -> PersistedGrant:
        async with self._transaction() as session:
            return await session.merge(grant)

    async def get_grant(self, key: str) -> PersistedGrant | None:
        async with self._transaction() as session:
            return await session.get(self.grant_model, key)

    async def get_all_grants(
        self,
        *,
        subject_id: str,
        client_id: str | None = None,
        type: str | None = None,  # noqa: A002
    ) -> Sequence[PersistedGrant]:
        stmt = self._filter_grants(select(self.grant_model), subject_id=subject_id, client_id=client_id, type=type)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def remove_grant(self, key: str) -> bool:
        return await self.delete_by_keys(RecordKind.GRANTS, [key]) > 0

    async def remove_all_grants(
        self,
        *,
        subject_id: str,
        client_id: str | None = None,
        type: str | None = None,  # noqa: A002
    ) -> int:
        stmt = self._filter_grants(delete(self.grant_model), subject_id=subject_id, client_id=client_id, type=type)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    def _filter_grants[S: (Select, Delete)](
        self,
        stmt: S,
        *,
        subject_id: str,
        client_id: str | None,
        type: str | None,  # noqa: A002
    ) -> S:
        stmt = stmt.where(self.grant_model.subject_id == subject_id)
        if client_id is not None:
            stmt = stmt.where(self.grant_model.client_id == client_id)
        if type is not None:
            stmt = stmt.where(self.grant_model.type == type)
        return stmt

    async def store_device_code(self, code: DeviceFlowCode) -> DeviceFlowCode:
        async with self._transaction() as session:
            return await session.merge(code)

    async def find_by_device_code(self, device_code: str) -> DeviceFlowCode | None:
        async with self._transaction() as session:
            return await session.get(self.device_code_model, device_code)

    async def find_by_user_code(self, user_code: str) -> DeviceFlowCode | None:
        async with self._transaction() as session:
            return await self._newest_by_user_code(session, user_code)

    async def update_by_user_code(
        self,
        user_code: str,
        *,
        data: str,
        subject_id: str | None = None,
    ) -> DeviceFlowCode | None:
        async with self._transaction() as session:
            code = await self._newest_by_user_code(session, user_code)
            if code is None:
                return None
            code.data = data
            code.subject_id = subject_id
            return code

    async def remove_by_device_code(self, device_code: str) -> bool:
        return await self.delete_by_keys(RecordKind.DEVICE_CODES, [device_code]) > 0

    async def _newest_by_user_code(self, session: AsyncSession, user_code: str) -> DeviceFlowCode | None:
        stmt = (
            select(self.device_code_model)
            .where(self.device_code_model.user_code == user_code)
            .order_by(self.device_code_model.creation_time.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
