from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from grantkeeper.protocols import GrantStoreProtocol, RecordKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from grantkeeper.protocols import ExpiringRecord


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, kw_only=True)
class MemoryGrant:
    key: str
    type: str
    client_id: str
    data: str
    subject_id: str | None = None
    session_id: str | None = None
    description: str | None = None
    creation_time: datetime = field(default_factory=_utcnow)
    expiration: datetime | None = None
    consumed_time: datetime | None = None


@dataclass(slots=True, kw_only=True)
class MemoryDeviceFlowCode:
    device_code: str
    user_code: str
    client_id: str
    data: str
    subject_id: str | None = None
    session_id: str | None = None
    description: str | None = None
    creation_time: datetime = field(default_factory=_utcnow)
    expiration: datetime | None = None


class InMemoryGrantStore(GrantStoreProtocol):
    def __init__(self) -> None:
        self._grants: dict[str, MemoryGrant] = {}
        self._device_codes: dict[str, MemoryDeviceFlowCode] = {}

    def _records(self, kind: RecordKind) -> dict[str, MemoryGrant] | dict[str, MemoryDeviceFlowCode]:
        match kind:
            case RecordKind.GRANTS:
                return self._grants
            case RecordKind.DEVICE_CODES:
                return self._device_codes

    async def query_expired(
        self,
        kind: RecordKind,
        cutoff: datetime,
        limit: int,
    ) -> list[ExpiringRecord]:
        expired = [
            record
            for record in self._records(kind).values()
            if record.expiration is not None and record.expiration <= cutoff
        ]
        expired.sort(key=lambda record: record.expiration)  # type: ignore[arg-type, return-value]
        return expired[:limit]

    async def delete_by_keys(self, kind: RecordKind, keys: Sequence[str]) -> int:
        records = self._records(kind)
        deleted = 0
        for key in keys:
            if records.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def count(self, kind: RecordKind) -> int:
        return len(self._records(kind))

    async def store_grant(self, grant: MemoryGrant) -> MemoryGrant:
        self._grants[grant.key] = grant
        return grant

    async def get_grant(self, key: str) -> MemoryGrant | None:
        return self._grants.get(key)

    async def get_all_grants(
        self,
        *,
        subject_id: str,
        client_id: str | None = None,
        type: str | None = None,  # noqa: A002
    ) -> list[MemoryGrant]:
        return list(self._filter_grants(subject_id=subject_id, client_id=client_id, type=type))

    async def remove_grant(self, key: str) -> bool:
        return self._grants.pop(key, None) is not None

    async def remove_all_grants(
        self,
        *,
        subject_id: str,
        client_id: str | None = None,
        type: str | None = None,  # noqa: A002
    ) -> int:
        keys = [grant.key for grant in self._filter_grants(subject_id=subject_id, client_id=client_id, type=type)]
        return await self.delete_by_keys(RecordKind.GRANTS, keys)

    def _filter_grants(
        self,
        *,
        subject_id: str,
        client_id: str | None,
        type: str | None,  # noqa: A002
    ) -> Iterable[MemoryGrant]:
        for grant in self._grants.values():
            if grant.subject_id != subject_id:
                continue
            if client_id is not None and grant.client_id != client_id:
                continue
            if type is not None and grant.type != type:
                continue
            yield grant

    async def store_device_code(self, code: MemoryDeviceFlowCode) -> MemoryDeviceFlowCode:
        self._device_codes[code.device_code] = code
        return code

    async def find_by_device_code(self, device_code: str) -> MemoryDeviceFlowCode | None:
        return self._device_codes.get(device_code)

    async def find_by_user_code(self, user_code: str) -> MemoryDeviceFlowCode | None:
        matches = [code for code in self._device_codes.values() if code.user_code == user_code]
        if not matches:
            return None
        return max(matches, key=lambda code: code.creation_time)

    async def update_by_user_code(
        self,
        user_code: str,
        *,
        data: str,
        subject_id: str | None = None,
    ) -> MemoryDeviceFlowCode | None:
        existing = await self.find_by_user_code(user_code)
        if existing is None:
            return None
        updated = replace(existing, data=data, subject_id=subject_id)
        self._device_codes[updated.device_code] = updated
        return updated

    async def remove_by_device_code(self, device_code: str) -> bool:
        return self._device_codes.pop(device_code, None) is not None
