from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Self

from grantkeeper.cleanup.notification import NullNotificationSink
from grantkeeper.protocols import RecordKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from grantkeeper.core.settings import CleanupSettings
    from grantkeeper.protocols import (
        ExpiringRecord,
        GrantProtocol,
        GrantStoreProtocol,
        OperationalStoreNotificationProtocol,
    )

logger = logging.getLogger(__name__)

type Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SweeperState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(slots=True, kw_only=True)
class SweepResult:
    cutoff: datetime
    removed: dict[RecordKind, int] = field(default_factory=dict)
    batches: dict[RecordKind, int] = field(default_factory=dict)
    failed_kinds: list[RecordKind] = field(default_factory=list)
    skipped: bool = False
    interrupted: bool = False

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())


class TokenCleanup:
    """Periodically removes expired grants and device codes from a store.

    One background task per instance runs the schedule: wait ``startup_delay``,
    then sweep, then wait ``interval``, until ``stop()`` is awaited. A sweep
    drains each enabled record kind in batches of at most ``batch_size``
    records, deleting by key, and forwards every deleted grant batch to the
    notification sink.

    Failures never leave the background task: a store error ends the current
    kind for this sweep and a sink error is logged and ignored. Stopping is
    cooperative; an in-flight batch always finishes its delete first.
    """

    def __init__(
        self,
        store: GrantStoreProtocol,
        settings: CleanupSettings,
        *,
        notification: OperationalStoreNotificationProtocol | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self.notification = notification if notification is not None else NullNotificationSink()
        self._clock = clock
        self._state = SweeperState.STOPPED
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._sweeping = False

    @property
    def state(self) -> SweeperState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SweeperState.RUNNING

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        if self._task is not None and self._task.done():
            self._on_task_done(self._task)
        if self._state is not SweeperState.STOPPED:
            logger.debug("Token cleanup already %s", self._state)
            return

        if not self.settings.enabled:
            logger.info("Token cleanup is disabled, not starting")
            return

        self._stop_event.clear()
        self._state = SweeperState.RUNNING
        self._task = asyncio.create_task(self._run(), name="grantkeeper-token-cleanup")
        self._task.add_done_callback(self._on_task_done)
        logger.info(
            "Started token cleanup: interval=%s batch_size=%d",
            self.settings.interval,
            self.settings.batch_size,
        )

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return

        self._state = SweeperState.STOPPING
        self._stop_event.set()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not task.cancelled() or (current is not None and current.cancelling()):
                raise
        finally:
            if self._task is task:
                self._task = None
                self._state = SweeperState.STOPPED
                logger.info("Stopped token cleanup")

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        # Still RUNNING here means the task was cancelled from outside, not by stop().
        if self._task is not task or self._state is not SweeperState.RUNNING:
            return
        self._task = None
        self._state = SweeperState.STOPPED
        logger.warning("Token cleanup task ended without stop(), marking it stopped")

    async def sweep(self) -> SweepResult:
        """Run one full sweep over every enabled record kind.

        Returns a skipped result without touching the store when another sweep
        on this instance is still in flight.
        """
        cutoff = self._clock()
        if self._sweeping:
            logger.debug("Sweep already in progress, skipping")
            return SweepResult(cutoff=cutoff, skipped=True)

        self._sweeping = True
        try:
            result = SweepResult(cutoff=cutoff)
            for kind in self._enabled_kinds():
                if self._stopping:
                    result.interrupted = True
                    break
                await self._drain(kind, result)
                if result.interrupted:
                    break
        finally:
            self._sweeping = False

        if result.total_removed or result.failed_kinds:
            logger.info(
                "Sweep removed %d expired records (%s), failed kinds: %s",
                result.total_removed,
                ", ".join(f"{kind}={count}" for kind, count in result.removed.items()),
                [str(kind) for kind in result.failed_kinds] or "none",
            )
        return result

    @property
    def _stopping(self) -> bool:
        return self._state is SweeperState.STOPPING

    def _enabled_kinds(self) -> list[RecordKind]:
        kinds = []
        if self.settings.clean_grants:
            kinds.append(RecordKind.GRANTS)
        if self.settings.clean_device_codes:
            kinds.append(RecordKind.DEVICE_CODES)
        return kinds

    async def _run(self) -> None:
        if await self._wait(self.settings.startup_delay):
            return

        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Token cleanup sweep failed")

            if await self._wait(self.settings.interval):
                return

    async def _wait(self, delay: timedelta) -> bool:
        """Sleep for ``delay``; return True if a stop was requested meanwhile."""
        if self._stop_event.is_set():
            return True
        if delay <= timedelta(0):
            return False

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay.total_seconds())
        except TimeoutError:
            return False
        return True

    async def _drain(self, kind: RecordKind, result: SweepResult) -> None:
        batch_size = self.settings.batch_size
        removed = 0
        batches = 0

        while True:
            if batches and self._stopping:
                result.interrupted = True
                break

            try:
                records = await self.store.query_expired(kind, result.cutoff, batch_size)
                if not records:
                    break
                deleted = await self.store.delete_by_keys(kind, [kind.key_of(record) for record in records])
            except Exception:
                logger.exception("Failed to remove expired %s", kind)
                result.failed_kinds.append(kind)
                break

            batches += 1
            removed += deleted
            logger.debug("Removed %d expired %s in batch %d", deleted, kind, batches)

            if kind is RecordKind.GRANTS:
                await self._notify(records)

            if len(records) < batch_size:
                break
            if batches >= self.settings.max_batches:
                logger.warning(
                    "Stopped draining %s after %d full batches, any remainder waits for the next sweep",
                    kind,
                    batches,
                )
                break

        result.removed[kind] = removed
        result.batches[kind] = batches

    async def _notify(self, grants: Sequence[ExpiringRecord]) -> None:
        removed: list[GrantProtocol] = list(grants)  # type: ignore[arg-type]
        try:
            delivered = await self.notification.persisted_grants_removed(removed)
        except Exception:
            logger.exception("Notification of %d removed grants failed", len(removed))
            return

        if delivered is False:
            logger.warning("Notification sink rejected %d removed grants", len(removed))
