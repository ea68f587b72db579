"""Unit tests for the Redis counter store against a mocked client."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from nerix_gateway.adapters.rate_limit.redis_store import _INCREMENT_LUA, RedisCounterStore
from nerix_gateway.core.errors import CounterStoreError


@pytest.fixture
def client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def store(client: AsyncMock) -> RedisCounterStore:
    return RedisCounterStore(client, clock=Mock(return_value=1000.0))


def test_increment_runs_script_with_window_in_ms(store: RedisCounterStore, client: AsyncMock) -> None:
    client.eval.return_value = [3, 42000]

    entry = asyncio.run(store.increment("nerix:ratelimit:moderate:ip:1.2.3.4", 60))

    client.eval.assert_awaited_once_with(_INCREMENT_LUA, 1, "nerix:ratelimit:moderate:ip:1.2.3.4", 60000)
    assert entry.count == 3
    assert entry.reset_at == pytest.approx(1042.0)


def test_increment_wraps_redis_errors(store: RedisCounterStore, client: AsyncMock) -> None:
    client.eval.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(CounterStoreError) as exc_info:
        asyncio.run(store.increment("k", 60))

    assert exc_info.value.code == "RATE_LIMIT_UNAVAILABLE"
    assert exc_info.value.details["backend"] == "redis"


def test_get_returns_none_for_missing_key(store: RedisCounterStore, client: AsyncMock) -> None:
    client.eval.return_value = [0, -2]

    assert asyncio.run(store.get("k")) is None


def test_get_returns_active_counter(store: RedisCounterStore, client: AsyncMock) -> None:
    client.eval.return_value = [4, 1500]

    entry = asyncio.run(store.get("k"))

    assert entry is not None
    assert entry.count == 4
    assert entry.reset_at == pytest.approx(1001.5)


def test_reset_deletes_key(store: RedisCounterStore, client: AsyncMock) -> None:
    asyncio.run(store.reset("k"))

    client.delete.assert_awaited_once_with("k")


def test_ping_reports_failures_as_false(store: RedisCounterStore, client: AsyncMock) -> None:
    client.ping.return_value = True
    assert asyncio.run(store.ping()) is True

    client.ping.side_effect = RedisConnectionError("down")
    assert asyncio.run(store.ping()) is False


def test_close_releases_client(store: RedisCounterStore, client: AsyncMock) -> None:
    asyncio.run(store.close())

    client.aclose.assert_awaited_once()
