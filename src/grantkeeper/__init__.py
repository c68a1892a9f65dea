"""Grantkeeper - persisted grant storage and expired token cleanup."""

from grantkeeper.cleanup import (
    CallbackNotificationSink,
    NullNotificationSink,
    SweeperState,
    SweepResult,
    TokenCleanup,
)
from grantkeeper.core.exceptions import ConfigurationError, GrantKeeperException, StoreError
from grantkeeper.core.settings import CleanupSettings
from grantkeeper.protocols import (
    DeviceFlowCodeProtocol,
    GrantProtocol,
    GrantStoreProtocol,
    OperationalStoreNotificationProtocol,
    RecordKind,
)
from grantkeeper.storage.memory import InMemoryGrantStore, MemoryDeviceFlowCode, MemoryGrant

__version__ = "0.1.0"

__all__ = [
    "CallbackNotificationSink",
    "CleanupSettings",
    "ConfigurationError",
    "DeviceFlowCodeProtocol",
    "GrantKeeperException",
    "GrantProtocol",
    "GrantStoreProtocol",
    "InMemoryGrantStore",
    "MemoryDeviceFlowCode",
    "MemoryGrant",
    "NullNotificationSink",
    "OperationalStoreNotificationProtocol",
    "RecordKind",
    "StoreError",
    "SweepResult",
    "SweeperState",
    "TokenCleanup",
    "__version__",
]

try:
    from grantkeeper.alchemy import AlchemyGrantStore, DatabaseSettings
except ImportError:
    pass
else:
    __all__.extend(["AlchemyGrantStore", "DatabaseSettings"])
