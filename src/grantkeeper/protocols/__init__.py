"""Protocol interfaces shared by the stores and the sweeper."""

from grantkeeper.protocols.models import DeviceFlowCodeProtocol, GrantProtocol
from grantkeeper.protocols.notification import OperationalStoreNotificationProtocol
from grantkeeper.protocols.store import ExpiringRecord, GrantStoreProtocol, RecordKind

__all__ = [
    "DeviceFlowCodeProtocol",
    "ExpiringRecord",
    "GrantProtocol",
    "GrantStoreProtocol",
    "OperationalStoreNotificationProtocol",
    "RecordKind",
]
