from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from grantkeeper.protocols.models import DeviceFlowCodeProtocol, GrantProtocol

type ExpiringRecord = GrantProtocol | DeviceFlowCodeProtocol


class RecordKind(StrEnum):
    GRANTS = "grants"
    DEVICE_CODES = "device_codes"

    @property
    def key_attribute(self) -> str:
        match self:
            case RecordKind.GRANTS:
                return "key"
            case RecordKind.DEVICE_CODES:
                return "device_code"

    def key_of(self, record: ExpiringRecord) -> str:
        return getattr(record, self.key_attribute)


@runtime_checkable
class GrantStoreProtocol(Protocol):
    """The two operations the sweeper needs from a store.

    ``delete_by_keys`` skips keys that no longer exist instead of raising and
    returns how many rows it actually removed.
    """

    async def query_expired(
        self,
        kind: RecordKind,
        cutoff: datetime,
        limit: int,
    ) -> Sequence[ExpiringRecord]: ...

    async def delete_by_keys(self, kind: RecordKind, keys: Sequence[str]) -> int: ...
