"""
Tests for the Redis-backed stores and the Redis client's circuit breaker.
Redis itself is replaced by an in-process fake of the client wrapper.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from circuitbreaker import CircuitBreakerError
from redis.exceptions import ConnectionError

from ratewatch.client import RedisClient
from ratewatch.errors import StoreError
from ratewatch.metrics import get_store_errors_counter
from ratewatch.schemas import RateLimitStore
from ratewatch.stores.redis_store import (
    SLIDING_WINDOW_LUA,
    RedisSlidingWindowStore,
    RedisStore,
)

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
async def test_allows_then_exceeds(store_cls, fake_redis, clock):
    store = store_cls(window_ms=1000, max_requests=2, client=fake_redis)
    assert isinstance(store, RateLimitStore)

    results = [await store.record_request("1.2.3.4") for _ in range(3)]

    assert [r.total_hits for r in results] == [1, 2, 3]
    assert [r.exceeded for r in results] == [False, False, True]


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
async def test_keys_are_prefixed(store_cls, fake_redis, clock):
    store = store_cls(window_ms=1000, max_requests=2, client=fake_redis, prefix="test:")

    await store.record_request("abc")

    _, keys, _ = fake_redis.calls[0]
    assert keys == ["test:abc"]


async def test_fixed_window_resets_at_window_boundary(fake_redis, clock):
    store = RedisStore(window_ms=1000, max_requests=2, client=fake_redis)
    start = clock.now_ms

    first = await store.record_request("k")
    clock.advance(600)
    second = await store.record_request("k")

    assert first.reset_time == start + 1000
    assert second.reset_time == start + 1000

    clock.advance(400)
    third = await store.record_request("k")
    # Fixed window: a brand new window opens, earlier hits are forgotten together
    assert third.total_hits == 1
    assert third.reset_time == clock.now_ms + 1000


async def test_sliding_window_expires_hits_individually(fake_redis, clock):
    store = RedisSlidingWindowStore(window_ms=1000, max_requests=2, client=fake_redis)
    start = clock.now_ms

    await store.record_request("k")
    clock.advance(600)
    await store.record_request("k")
    clock.advance(400)
    info = await store.record_request("k")

    assert info.total_hits == 2
    assert info.reset_time == start + 600 + 1000


async def test_sliding_window_sends_now_window_and_unique_member(fake_redis, clock):
    store = RedisSlidingWindowStore(window_ms=1000, max_requests=2, client=fake_redis)

    await store.record_request("k")
    await store.record_request("k")

    (script, _, args_a), (_, _, args_b) = fake_redis.calls
    assert script == SLIDING_WINDOW_LUA
    assert args_a[:2] == [clock.now_ms, 1000]
    assert args_a[2] != args_b[2]


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
async def test_decrement_and_reset(store_cls, fake_redis, clock):
    store = store_cls(window_ms=1000, max_requests=5, client=fake_redis)
    await store.record_request("k")
    await store.record_request("k")

    await store.decrement("k")
    assert (await store.record_request("k")).total_hits == 2

    await store.reset("k")
    assert (await store.record_request("k")).total_hits == 1

    await store.decrement("missing")
    assert (await store.record_request("missing")).total_hits == 1


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
async def test_cleanup_and_shutdown_are_noops(store_cls, fake_redis, clock):
    store = store_cls(window_ms=1000, max_requests=5, client=fake_redis)

    await store.cleanup()
    store.shutdown()
    store.shutdown()

    assert fake_redis.calls == []


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
async def test_redis_failure_surfaces_as_store_error(store_cls, broken_redis):
    store = store_cls(window_ms=1000, max_requests=5, client=broken_redis)
    errors = get_store_errors_counter().labels(store=store.store_name)
    before = errors._value.get()

    with pytest.raises(StoreError) as exc_info:
        await store.record_request("k")
    with pytest.raises(StoreError):
        await store.reset("k")

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert exc_info.value.store == store.store_name
    assert errors._value.get() == before + 2


async def test_client_eval_passes_keys_and_args():
    redis = MagicMock()
    redis.eval = AsyncMock(return_value=[1, 1000])
    client = RedisClient(redis=redis)

    result = await client.eval("return 1", ["k"], [1000, "m"])

    assert result == [1, 1000]
    redis.eval.assert_awaited_once_with("return 1", 1, "k", 1000, "m")


async def test_circuit_opens_after_threshold():
    redis = MagicMock()
    redis.eval = AsyncMock(side_effect=ConnectionError("Shard down"))
    client = RedisClient(redis=redis, failure_threshold=2, recovery_timeout=30)

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await client.eval("return 1", ["k"], [])

    with pytest.raises(CircuitBreakerError):
        await client.eval("return 1", ["k"], [])
    assert redis.eval.await_count == 2


async def test_open_circuit_surfaces_as_store_error():
    redis = MagicMock()
    redis.eval = AsyncMock(side_effect=ConnectionError("Shard down"))
    client = RedisClient(redis=redis, failure_threshold=1, recovery_timeout=30)
    store = RedisStore(window_ms=1000, max_requests=5, client=client)

    with pytest.raises(StoreError):
        await store.record_request("k")
    with pytest.raises(StoreError) as exc_info:
        await store.record_request("k")

    assert isinstance(exc_info.value.__cause__, CircuitBreakerError)


async def test_circuits_are_independent_per_client():
    failing = MagicMock()
    failing.eval = AsyncMock(side_effect=ConnectionError("Shard down"))
    healthy = MagicMock()
    healthy.eval = AsyncMock(return_value=1)
    broken_client = RedisClient(redis=failing, failure_threshold=1)
    good_client = RedisClient(redis=healthy, failure_threshold=1)

    with pytest.raises(ConnectionError):
        await broken_client.eval("return 1", ["k"], [])

    assert await good_client.eval("return 1", ["k"], []) == 1


async def test_is_healthy_reports_ping_failures():
    redis = MagicMock()
    redis.ping = AsyncMock(side_effect=ConnectionError("down"))

    assert await RedisClient(redis=redis).is_healthy() is False


@pytest.mark.parametrize("kwargs", [
    {"window_ms": 0, "max_requests": 5},
    {"window_ms": 1000, "max_requests": 0},
])
async def test_rejects_non_positive_configuration(kwargs, fake_redis):
    with pytest.raises(ValueError):
        RedisStore(client=fake_redis, **kwargs)


@pytest.mark.parametrize("store_cls", [RedisStore, RedisSlidingWindowStore])
@pytest.mark.parametrize("max_requests", [0, True, 2.5])
async def test_rejects_invalid_max_requests(store_cls, max_requests, fake_redis):
    with pytest.raises(ValueError):
        store_cls(window_ms=1000, max_requests=max_requests, client=fake_redis)
