from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from grantkeeper.protocols.models import GrantProtocol


@runtime_checkable
class OperationalStoreNotificationProtocol(Protocol):
    async def persisted_grants_removed(self, grants: Sequence[GrantProtocol]) -> bool | None: ...
