from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime


@runtime_checkable
class GrantProtocol(Protocol):
    key: str
    type: str
    subject_id: str | None
    session_id: str | None
    client_id: str
    description: str | None
    creation_time: datetime
    expiration: datetime | None
    consumed_time: datetime | None
    data: str


@runtime_checkable
class DeviceFlowCodeProtocol(Protocol):
    device_code: str
    user_code: str
    subject_id: str | None
    session_id: str | None
    client_id: str
    description: str | None
    creation_time: datetime
    expiration: datetime | None
    data: str
