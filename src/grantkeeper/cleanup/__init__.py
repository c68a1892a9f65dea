"""Expired grant and device code cleanup."""

from grantkeeper.cleanup.notification import CallbackNotificationSink, NullNotificationSink, RemovedGrantsCallback
from grantkeeper.cleanup.sweeper import Clock, SweeperState, SweepResult, TokenCleanup

__all__ = [
    "CallbackNotificationSink",
    "Clock",
    "NullNotificationSink",
    "RemovedGrantsCallback",
    "SweepResult",
    "SweeperState",
    "TokenCleanup",
]
