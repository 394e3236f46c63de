from __future__ import annotations

import asyncio

import pytest
from pymongo.errors import ConnectionFailure, NetworkTimeout, ServerSelectionTimeoutError

from shop_api.core import metrics
from shop_api.core.sequence import AllocatorState, SequenceAllocator
from tests.fakes import FakeCollection


class FrozenClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _degraded(key: str, path: str) -> float:
    value = metrics.REGISTRY.get_sample_value(
        "sequence_degraded_allocations_total", {"sequence_key": key, "path": path}
    )
    return value or 0.0


@pytest.fixture
def counters() -> FakeCollection:
    return FakeCollection("counters")


@pytest.fixture
def resources() -> FakeCollection:
    return FakeCollection("things")


@pytest.mark.asyncio
async def test_concurrent_allocations_are_unique_and_gapless(counters, resources) -> None:
    allocator = SequenceAllocator(counters, {"x": resources})
    await allocator.ensure("x", 1)

    results = await asyncio.gather(*(allocator.allocate("x") for _ in range(50)))

    assert sorted(results) == list(range(2, 52))
    assert await allocator.current("x") == 51
    assert _degraded("x", "store_unavailable") == 0
    assert _degraded("x", "increment_failed") == 0


@pytest.mark.asyncio
async def test_ensure_never_resets_an_advanced_counter(counters) -> None:
    allocator = SequenceAllocator(counters)
    await allocator.ensure("x", 1)
    assert await allocator.allocate("x") == 2

    await allocator.ensure("x", 1)

    assert await allocator.current("x") == 2
    assert await allocator.allocate("x") == 3


@pytest.mark.asyncio
async def test_set_sequence_continues_after_seeded_value(counters) -> None:
    allocator = SequenceAllocator(counters)
    await allocator.ensure("x", 1)

    await allocator.set_sequence("x", 6)

    assert await allocator.allocate("x") == 7


@pytest.mark.asyncio
async def test_absent_counter_is_created_by_ensure(counters) -> None:
    allocator = SequenceAllocator(counters)
    assert await allocator.current("productId") is None

    await allocator.ensure("productId", 1)

    assert counters.docs[0]["_id"] == "productId"
    assert counters.docs[0]["sequence_value"] == 1
    assert await allocator.allocate("productId") == 2


@pytest.mark.asyncio
async def test_increment_failure_recovers_from_max_existing_id(counters, resources) -> None:
    resources.docs.extend([{"id": 7}, {"id": 41}, {"id": 3}])
    allocator = SequenceAllocator(counters, {"x": resources})
    await allocator.ensure("x", 1)
    counters.fail_on["find_one_and_update"] = ServerSelectionTimeoutError("timed out")

    assert await allocator.allocate("x") == 42
    # nothing was reserved in the counter
    assert await allocator.current("x") == 1
    assert _degraded("x", "increment_failed") == 1


@pytest.mark.asyncio
async def test_missing_counter_document_is_recreated_from_max_id(counters, resources) -> None:
    resources.docs.append({"id": 9})
    allocator = SequenceAllocator(counters, {"x": resources})

    first, second = await allocator.allocate("x"), await allocator.allocate("x")

    assert (first, second) == (10, 11)
    assert await allocator.current("x") == 11
    assert _degraded("x", "increment_failed") == 0
    assert metrics.REGISTRY.get_sample_value("sequence_allocations_total", {"sequence_key": "x"}) == 2


@pytest.mark.asyncio
async def test_counter_deleted_after_startup_resumes_regular_allocation(counters, resources) -> None:
    allocator = SequenceAllocator(counters, {"x": resources})
    await allocator.ensure("x", 1)
    resources.docs.extend([{"id": 2}, {"id": 3}])
    counters.docs.clear()

    results = await asyncio.gather(*(allocator.allocate("x") for _ in range(5)))

    assert sorted(results) == [4, 5, 6, 7, 8]
    assert await allocator.current("x") == 8


@pytest.mark.asyncio
async def test_missing_counter_is_not_recreated_when_scan_fails(counters, resources) -> None:
    resources.fail_on["find_one"] = ConnectionFailure("down")
    allocator = SequenceAllocator(counters, {"x": resources}, clock=FrozenClock(1_700_000_042.0))

    assert await allocator.allocate("x") == 42
    assert counters.docs == []
    assert _degraded("x", "increment_failed") == 1


@pytest.mark.asyncio
async def test_recovery_scan_on_empty_collection_starts_at_one(counters, resources) -> None:
    allocator = SequenceAllocator(counters, {"x": resources})
    counters.fail_on["find_one_and_update"] = NetworkTimeout("slow")

    assert await allocator.allocate("x") == 1


@pytest.mark.asyncio
async def test_clock_fallback_when_increment_and_scan_fail(counters, resources) -> None:
    clock = FrozenClock(1_700_123_456.7)
    allocator = SequenceAllocator(counters, {"x": resources}, clock=clock)
    await allocator.ensure("x", 1)
    counters.fail_on["find_one_and_update"] = ConnectionFailure("down")
    resources.fail_on["find_one"] = ConnectionFailure("down")

    first = await allocator.allocate("x")
    second = await allocator.allocate("x")

    assert first == 123_456
    assert 0 < first < 1_000_000
    # same second, same value: the documented collision weakness
    assert second == first
    assert _degraded("x", "increment_failed") == 2


@pytest.mark.asyncio
async def test_clock_fallback_uses_real_time_by_default(counters, resources) -> None:
    allocator = SequenceAllocator(counters, {"x": resources})
    counters.fail_on["find_one_and_update"] = ConnectionFailure("down")
    resources.fail_on["find_one"] = ConnectionFailure("down")

    value = await allocator.allocate("x")

    assert 0 < value < 1_000_000


@pytest.mark.asyncio
async def test_clock_fallback_never_returns_zero() -> None:
    allocator = SequenceAllocator(clock=FrozenClock(3_000_000.0))
    assert await allocator.allocate("x") == 1


@pytest.mark.asyncio
async def test_unbound_allocator_uses_clock_without_touching_store() -> None:
    allocator = SequenceAllocator(clock=FrozenClock(1_000_042.0))
    assert allocator.state is AllocatorState.UNINITIALIZED

    assert await allocator.allocate("x") == 42
    assert _degraded("x", "store_unavailable") == 1


@pytest.mark.asyncio
async def test_failed_allocator_skips_increment_and_scans(counters, resources) -> None:
    resources.docs.append({"id": 5})
    allocator = SequenceAllocator(counters, {"x": resources})
    allocator.mark_failed("bootstrap failed")

    assert await allocator.allocate("x") == 6
    assert "find_one_and_update" not in counters.calls
    assert _degraded("x", "store_unavailable") == 1


@pytest.mark.asyncio
async def test_ensure_failure_marks_failed_and_success_recovers(counters) -> None:
    allocator = SequenceAllocator(counters)
    counters.fail_on["update_one"] = ConnectionFailure("down")

    with pytest.raises(ConnectionFailure):
        await allocator.ensure("x", 1)
    assert allocator.state is AllocatorState.FAILED

    del counters.fail_on["update_one"]
    await allocator.ensure("x", 1)
    assert allocator.state is AllocatorState.READY
    assert await allocator.allocate("x") == 2


@pytest.mark.asyncio
async def test_degraded_value_can_collide_with_later_counter_value(counters, resources) -> None:
    resources.docs.append({"id": 1})
    allocator = SequenceAllocator(counters, {"x": resources})
    await allocator.ensure("x", 1)

    counters.fail_on["find_one_and_update"] = ConnectionFailure("blip")
    degraded = await allocator.allocate("x")
    del counters.fail_on["find_one_and_update"]
    recovered = await allocator.allocate("x")

    assert degraded == recovered == 2


@pytest.mark.asyncio
async def test_non_integer_counter_value_is_degraded(counters, resources) -> None:
    counters.docs.append({"_id": "x", "sequence_value": 6.5})
    resources.docs.append({"id": 12})
    allocator = SequenceAllocator(counters, {"x": resources})

    assert await allocator.allocate("x") == 13
    assert _degraded("x", "increment_failed") == 1
