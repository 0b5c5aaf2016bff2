"""
Shared pytest fixtures for ratewatch tests
"""

import logging
import time
from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError

from ratewatch.alerting import BreachAlerter
from ratewatch.schemas import AlertingOptions
from ratewatch.stores.memory_store import WindowedCounter
from ratewatch.stores.redis_store import (
    FIXED_WINDOW_DECREMENT_LUA,
    FIXED_WINDOW_LUA,
    SLIDING_WINDOW_DECREMENT_LUA,
    SLIDING_WINDOW_LUA,
)


class Clock:
    """Controllable stand-in for time.time, in milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms

    def time(self) -> float:
        return self.now_ms / 1000


@pytest.fixture
def clock():
    """Patch time.time so stores and alerters see a frozen, steppable clock"""
    fake = Clock()
    with patch("time.time", side_effect=fake.time):
        yield fake


@pytest.fixture
def counter():
    """WindowedCounter allowing 2 requests per second, no background sweep"""
    store = WindowedCounter(window_ms=1000, max_requests=2, auto_cleanup=False)
    yield store
    store.shutdown()


@pytest.fixture
def alerts():
    """List collecting every AlertData passed to a custom handler"""
    return []


@pytest.fixture
def alerter(alerts):
    """BreachAlerter with threshold 5, no console output, collecting alerts"""
    manager = BreachAlerter(
        AlertingOptions(threshold=5, window_ms=60000, console_log=False, handler=alerts.append)
    )
    yield manager
    manager.clear()


@pytest.fixture
def alert_caplog(caplog):
    caplog.set_level(logging.WARNING, logger="ratewatch")
    return caplog


class FakeRedisClient:
    """
    In-process stand-in for RedisClient that runs the store scripts in Python.
    Times come from time.time so the clock fixture applies.
    """

    def __init__(self):
        self.counters: dict[str, int] = {}
        self.expiry: dict[str, int] = {}
        self.zsets: dict[str, list[tuple[int, str]]] = {}
        self.calls: list[tuple[str, list[str], list]] = []

    @staticmethod
    def _now() -> int:
        return int(time.time() * 1000)

    def _expire_counters(self, key: str) -> None:
        if key in self.expiry and self.expiry[key] <= self._now():
            self.counters.pop(key, None)
            self.expiry.pop(key, None)

    async def eval(self, script, keys, args):
        key = keys[0]
        self.calls.append((script, keys, args))
        if script == FIXED_WINDOW_LUA:
            self._expire_counters(key)
            self.counters[key] = self.counters.get(key, 0) + 1
            if key not in self.expiry:
                self.expiry[key] = self._now() + int(args[0])
            return [self.counters[key], self.expiry[key] - self._now()]
        if script == FIXED_WINDOW_DECREMENT_LUA:
            self._expire_counters(key)
            if self.counters.get(key, 0) > 0:
                self.counters[key] -= 1
                return self.counters[key]
            return 0
        if script == SLIDING_WINDOW_LUA:
            now, window, member = int(args[0]), int(args[1]), args[2]
            entries = [e for e in self.zsets.get(key, []) if e[0] > now - window]
            entries.append((now, member))
            entries.sort()
            self.zsets[key] = entries
            return [len(entries), entries[0][0]]
        if script == SLIDING_WINDOW_DECREMENT_LUA:
            entries = self.zsets.get(key, [])
            if entries:
                entries.pop()
            return len(entries)
        raise AssertionError(f"unexpected script for {key}")

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.counters.pop(key, None) is not None:
                removed += 1
            if self.zsets.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def shutdown(self):
        pass


class BrokenRedisClient:
    """RedisClient stand-in whose every command fails like an unreachable server"""

    async def eval(self, script, keys, args):
        raise ConnectionError("Redis down")

    async def delete(self, *keys):
        raise ConnectionError("Redis down")


@pytest.fixture
def fake_redis():
    return FakeRedisClient()


@pytest.fixture
def broken_redis():
    return BrokenRedisClient()
