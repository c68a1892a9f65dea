from datetime import timedelta

import pytest

from __tests__.fixtures.doubles import RecordingNotificationSink, SpyStore
from __tests__.fixtures.records import NOW, fixed_clock, memory_device_code, memory_grant, mixed_grant_fields
from grantkeeper.cleanup import TokenCleanup
from grantkeeper.core.settings import CleanupSettings
from grantkeeper.protocols import RecordKind
from grantkeeper.storage.memory import MemoryGrant


async def seed_mixed_grants(store: SpyStore) -> list[MemoryGrant]:
    grants = [MemoryGrant(**fields) for fields in mixed_grant_fields()]  # type: ignore[arg-type]
    for grant in grants:
        await store.store_grant(grant)
    return grants


def make_cleanup(store: SpyStore, sink: RecordingNotificationSink | None = None, **settings: object) -> TokenCleanup:
    return TokenCleanup(
        store,
        CleanupSettings(**settings),  # type: ignore[arg-type]
        notification=sink,
        clock=fixed_clock,
    )


@pytest.mark.asyncio
async def test_sweep_removes_expired_grants_in_batches() -> None:
    store = SpyStore()
    sink = RecordingNotificationSink()
    grants = await seed_mixed_grants(store)
    expired_keys = {grant.key for grant in grants if grant.expiration <= NOW}  # type: ignore[operator]

    result = await make_cleanup(store, sink, batch_size=5).sweep()

    assert len(expired_keys) == 34
    assert await store.count(RecordKind.GRANTS) == 66
    assert result.removed[RecordKind.GRANTS] == 34
    assert result.batches[RecordKind.GRANTS] == 7
    assert result.failed_kinds == []
    assert not result.skipped
    assert not result.interrupted

    assert len(sink.calls) == 7
    assert all(len(batch) <= 5 for batch in sink.calls)
    assert sorted(sink.keys) == sorted(expired_keys)


@pytest.mark.asyncio
async def test_sweep_leaves_unexpired_and_non_expiring_grants() -> None:
    store = SpyStore()
    keep_future = memory_grant(1, expiration=NOW + timedelta(seconds=1))
    keep_forever = memory_grant(2, expiration=None)
    at_cutoff = memory_grant(3, expiration=NOW)
    for grant in (keep_future, keep_forever, at_cutoff):
        await store.store_grant(grant)

    await make_cleanup(store).sweep()

    assert await store.get_grant(keep_future.key) is not None
    assert await store.get_grant(keep_forever.key) is not None
    assert await store.get_grant(at_cutoff.key) is None


@pytest.mark.asyncio
async def test_second_sweep_finds_nothing() -> None:
    store = SpyStore()
    sink = RecordingNotificationSink()
    await seed_mixed_grants(store)
    cleanup = make_cleanup(store, sink, batch_size=5)

    first = await cleanup.sweep()
    calls_after_first = len(sink.calls)
    second = await cleanup.sweep()

    assert first.total_removed == 34
    assert second.total_removed == 0
    assert second.batches[RecordKind.GRANTS] == 0
    assert len(sink.calls) == calls_after_first
    assert await store.count(RecordKind.GRANTS) == 66


@pytest.mark.asyncio
async def test_delete_calls_never_exceed_batch_size() -> None:
    store = SpyStore()
    await seed_mixed_grants(store)

    await make_cleanup(store, batch_size=3).sweep()

    grant_deletes = [keys for kind, keys in store.deletes if kind is RecordKind.GRANTS]
    assert grant_deletes
    assert all(len(keys) <= 3 for keys in grant_deletes)
    assert sum(len(keys) for keys in grant_deletes) == 34


@pytest.mark.asyncio
async def test_cutoff_is_captured_once_per_sweep() -> None:
    store = SpyStore()
    await seed_mixed_grants(store)
    ticks = [NOW, NOW + timedelta(days=30)]

    cleanup = TokenCleanup(store, CleanupSettings(batch_size=5), clock=lambda: ticks.pop(0))
    result = await cleanup.sweep()

    assert result.cutoff == NOW
    assert {cutoff for _, cutoff, _ in store.queries} == {NOW}
    assert await store.count(RecordKind.GRANTS) == 66
    assert len(ticks) == 1


@pytest.mark.asyncio
async def test_device_codes_are_removed_without_notification() -> None:
    store = SpyStore()
    sink = RecordingNotificationSink()
    for _ in range(3):
        await store.store_device_code(memory_device_code(expiration=NOW - timedelta(minutes=1)))
    for _ in range(2):
        await store.store_device_code(memory_device_code(expiration=NOW + timedelta(minutes=5)))
    await store.store_device_code(memory_device_code(expiration=None))

    result = await make_cleanup(store, sink, batch_size=2).sweep()

    assert result.removed[RecordKind.DEVICE_CODES] == 3
    assert result.batches[RecordKind.DEVICE_CODES] == 2
    assert await store.count(RecordKind.DEVICE_CODES) == 3
    assert sink.calls == []


@pytest.mark.asyncio
async def test_disabled_kinds_are_not_swept() -> None:
    store = SpyStore()
    await seed_mixed_grants(store)
    await store.store_device_code(memory_device_code(expiration=NOW - timedelta(minutes=1)))

    result = await make_cleanup(store, clean_grants=False).sweep()

    assert RecordKind.GRANTS not in result.removed
    assert result.removed[RecordKind.DEVICE_CODES] == 1
    assert await store.count(RecordKind.GRANTS) == 100
    assert all(kind is RecordKind.DEVICE_CODES for kind, _, _ in store.queries)


@pytest.mark.asyncio
async def test_max_batches_bounds_a_single_sweep() -> None:
    store = SpyStore()
    await seed_mixed_grants(store)
    cleanup = make_cleanup(store, batch_size=5, max_batches=2)

    first = await cleanup.sweep()
    second = await cleanup.sweep()

    assert first.removed[RecordKind.GRANTS] == 10
    assert first.batches[RecordKind.GRANTS] == 2
    assert second.removed[RecordKind.GRANTS] == 10
    assert await store.count(RecordKind.GRANTS) == 80


@pytest.mark.asyncio
async def test_batch_bound_warning_only_after_a_full_final_batch(caplog: pytest.LogCaptureFixture) -> None:
    store = SpyStore()
    for i in range(7):
        await store.store_grant(memory_grant(i, expiration=NOW - timedelta(hours=1)))

    with caplog.at_level("WARNING", logger="grantkeeper.cleanup.sweeper"):
        drained = await make_cleanup(store, batch_size=5, max_batches=2).sweep()

    assert drained.batches[RecordKind.GRANTS] == 2
    assert "Stopped draining" not in caplog.text

    await seed_mixed_grants(store)
    with caplog.at_level("WARNING", logger="grantkeeper.cleanup.sweeper"):
        bounded = await make_cleanup(store, batch_size=5, max_batches=2).sweep()

    assert bounded.removed[RecordKind.GRANTS] == 10
    assert "Stopped draining grants after 2 full batches" in caplog.text


@pytest.mark.asyncio
async def test_repeated_sweeps_eventually_remove_everything_expired() -> None:
    store = SpyStore()
    await seed_mixed_grants(store)
    cleanup = make_cleanup(store, batch_size=5, max_batches=3)

    for _ in range(3):
        await cleanup.sweep()

    assert await store.count(RecordKind.GRANTS) == 66
    remaining = await store.query_expired(RecordKind.GRANTS, NOW, 100)
    assert remaining == []


@pytest.mark.asyncio
async def test_query_failure_only_aborts_that_kind(caplog: pytest.LogCaptureFixture) -> None:
    store = SpyStore()
    await seed_mixed_grants(store)
    await store.store_device_code(memory_device_code(expiration=NOW - timedelta(minutes=1)))
    store.query_errors[RecordKind.GRANTS] = ConnectionError("database unavailable")

    with caplog.at_level("ERROR", logger="grantkeeper.cleanup.sweeper"):
        result = await make_cleanup(store).sweep()

    assert result.failed_kinds == [RecordKind.GRANTS]
    assert result.removed[RecordKind.GRANTS] == 0
    assert result.removed[RecordKind.DEVICE_CODES] == 1
    assert await store.count(RecordKind.GRANTS) == 100
    assert "Failed to remove expired grants" in caplog.text


@pytest.mark.asyncio
async def test_delete_failure_aborts_kind_without_notification() -> None:
    store = SpyStore()
    sink = RecordingNotificationSink()
    await seed_mixed_grants(store)
    store.delete_errors[RecordKind.GRANTS] = ConnectionError("connection reset")

    result = await make_cleanup(store, sink, batch_size=5).sweep()

    assert result.failed_kinds == [RecordKind.GRANTS]
    assert result.batches[RecordKind.GRANTS] == 0
    assert sink.calls == []
    assert await store.count(RecordKind.GRANTS) == 100


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_delete(caplog: pytest.LogCaptureFixture) -> None:
    store = SpyStore()
    sink = RecordingNotificationSink(error=RuntimeError("audit log offline"))
    await seed_mixed_grants(store)

    with caplog.at_level("ERROR", logger="grantkeeper.cleanup.sweeper"):
        result = await make_cleanup(store, sink, batch_size=5).sweep()

    assert result.removed[RecordKind.GRANTS] == 34
    assert result.failed_kinds == []
    assert len(sink.calls) == 7
    assert await store.count(RecordKind.GRANTS) == 66
    assert "Notification of 5 removed grants failed" in caplog.text


@pytest.mark.asyncio
async def test_rejected_notification_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    store = SpyStore()
    sink = RecordingNotificationSink(result=False)
    await store.store_grant(memory_grant(expiration=NOW - timedelta(hours=1)))

    with caplog.at_level("WARNING", logger="grantkeeper.cleanup.sweeper"):
        result = await make_cleanup(store, sink).sweep()

    assert result.removed[RecordKind.GRANTS] == 1
    assert "Notification sink rejected 1 removed grants" in caplog.text


@pytest.mark.asyncio
async def test_record_removed_between_query_and_delete_is_harmless() -> None:
    class ConsumingStore(SpyStore):
        async def delete_by_keys(self, kind, keys):
            self._grants.pop(keys[0], None)
            return await super().delete_by_keys(kind, keys)

    store = ConsumingStore()
    for i in range(3):
        await store.store_grant(memory_grant(i, expiration=NOW - timedelta(hours=1)))

    result = await make_cleanup(store).sweep()

    assert result.removed[RecordKind.GRANTS] == 2
    assert result.failed_kinds == []
    assert await store.count(RecordKind.GRANTS) == 0
