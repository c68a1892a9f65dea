from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from grantkeeper.protocols import GrantProtocol, OperationalStoreNotificationProtocol

type RemovedGrantsCallback = Callable[[Sequence[GrantProtocol]], bool | None | Awaitable[bool | None]]


class NullNotificationSink(OperationalStoreNotificationProtocol):
    async def persisted_grants_removed(self, grants: Sequence[GrantProtocol]) -> bool | None:  # noqa: ARG002
        return True


@dataclass(frozen=True, slots=True, kw_only=True)
class CallbackNotificationSink(OperationalStoreNotificationProtocol):
    """Adapt a plain function or coroutine function into a notification sink.

    The callback receives each batch of removed grants; it may return a bool
    (``False`` marks the batch as not delivered) or nothing at all.
    """

    callback: RemovedGrantsCallback

    async def persisted_grants_removed(self, grants: Sequence[GrantProtocol]) -> bool | None:
        result = self.callback(grants)
        if inspect.isawaitable(result):
            result = await result
        return result
