"""Unit tests for the in-memory counter store."""

import asyncio
from unittest.mock import Mock

import pytest

from nerix_gateway.adapters.rate_limit.in_memory import InMemoryCounterStore


def test_counts_up_within_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    first = asyncio.run(store.increment("k", 60))
    second = asyncio.run(store.increment("k", 60))

    assert first.count == 1
    assert second.count == 2
    assert second.reset_at == 1060.0


def test_window_is_anchored_at_first_hit() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    asyncio.run(store.increment("k", 60))
    clock.return_value = 1030.0
    entry = asyncio.run(store.increment("k", 60))

    assert entry.count == 2
    assert entry.reset_at == 1060.0


def test_resets_after_window_elapses() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    asyncio.run(store.increment("k", 10))
    asyncio.run(store.increment("k", 10))

    clock.return_value = 1010.0
    entry = asyncio.run(store.increment("k", 10))
    assert entry.count == 1
    assert entry.reset_at == 1020.0


def test_isolated_by_key() -> None:
    store = InMemoryCounterStore(clock=Mock(return_value=1000.0))

    asyncio.run(store.increment("k1", 60))
    asyncio.run(store.increment("k1", 60))

    assert asyncio.run(store.increment("k2", 60)).count == 1


def test_get_and_reset() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    assert asyncio.run(store.get("k")) is None
    asyncio.run(store.increment("k", 60))
    assert asyncio.run(store.get("k")).count == 1

    asyncio.run(store.reset("k"))
    assert asyncio.run(store.get("k")) is None

    asyncio.run(store.increment("k", 60))
    clock.return_value = 1061.0
    assert asyncio.run(store.get("k")) is None


def test_sweeps_expired_keys() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock, sweep_every=3)

    asyncio.run(store.increment("a", 10))
    asyncio.run(store.increment("b", 10))
    clock.return_value = 1020.0
    asyncio.run(store.increment("c", 10))

    assert len(store) == 1


def test_concurrent_increments_observe_distinct_counts() -> None:
    store = InMemoryCounterStore(clock=Mock(return_value=1000.0))

    async def hammer() -> list[int]:
        entries = await asyncio.gather(*(store.increment("k", 60) for _ in range(20)))
        return sorted(e.count for e in entries)

    assert asyncio.run(hammer()) == list(range(1, 21))


def test_invalid_args() -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        asyncio.run(store.increment("", 60))

    with pytest.raises(ValueError):
        asyncio.run(store.increment("k", 0))

    with pytest.raises(ValueError):
        InMemoryCounterStore(sweep_every=0)
