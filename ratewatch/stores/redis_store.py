"""
* Rate limit stores backed by a shared Redis
* Both run one Lua script per call so each update is atomic across processes

RedisStore is a fixed window counter: the first hit opens a window of
window_ms and every hit until it expires counts against it. Around a window
boundary up to 2 * max_requests can pass. Use RedisSlidingWindowStore when
the exact sliding behaviour of the in-memory counter is needed.
"""
import logging
import time
import uuid

from circuitbreaker import CircuitBreakerError
from redis.exceptions import RedisError

from ratewatch.client import RedisClient
from ratewatch.config import RateWatchConfig
from ratewatch.duration import parse_ms
from ratewatch.errors import StoreError
from ratewatch.metrics import record_metrics
from ratewatch.schemas import RateLimitInfo

logger = logging.getLogger(__name__)

FIXED_WINDOW_LUA = """
local key = KEYS[1]
local window = tonumber(ARGV[1])
local count = redis.call('INCR', key)
local ttl = redis.call('PTTL', key)
if ttl < 0 then
    redis.call('PEXPIRE', key, window)
    ttl = window
end
return {count, ttl}
"""

FIXED_WINDOW_DECREMENT_LUA = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current > 0 then
    return redis.call('DECR', KEYS[1])
end
return 0
"""

SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local member = ARGV[3]
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
redis.call('ZADD', key, now, member)
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
redis.call('PEXPIRE', key, window)
return {count, tonumber(oldest[2])}
"""

SLIDING_WINDOW_DECREMENT_LUA = """
redis.call('ZPOPMAX', KEYS[1])
return redis.call('ZCARD', KEYS[1])
"""

_STORE_ERRORS = (RedisError, CircuitBreakerError, OSError)


class _RedisStoreBase:
    store_name = "redis"

    def __init__(
        self,
        window_ms: int | str,
        max_requests: int,
        client: RedisClient | None = None,
        prefix: str = RateWatchConfig.REDIS_KEY_PREFIX,
    ):
        window_ms = parse_ms(window_ms)
        if window_ms <= 0:
            raise ValueError("window_ms must be a positive duration")
        if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests <= 0:
            raise ValueError("max_requests must be a positive integer")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.prefix = prefix
        self._owns_client = client is None
        self._client = client or RedisClient()

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def _run(self, script: str, key: str, *args):
        try:
            return await self._client.eval(script, [self._key(key)], list(args))
        except _STORE_ERRORS as e:
            record_metrics("store_error", store=self.store_name)
            logger.error(f"[{self.store_name}] Redis eval error: {e} | key={key}")
            raise StoreError(f"{self.store_name} unavailable: {e}", store=self.store_name) from e

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except _STORE_ERRORS as e:
            record_metrics("store_error", store=self.store_name)
            raise StoreError(f"{self.store_name} unavailable: {e}", store=self.store_name) from e

    async def cleanup(self) -> None:
        # Keys carry a PEXPIRE, Redis evicts them on its own
        return None

    def shutdown(self) -> None:
        return None

    async def aclose(self) -> None:
        """Close the Redis connection if this store created it."""
        if self._owns_client:
            await self._client.shutdown()


class RedisStore(_RedisStoreBase):
    """Fixed window counter shared across processes through Redis."""

    store_name = "redis_fixed_window"

    async def record_request(self, key: str) -> RateLimitInfo:
        now = int(time.time() * 1000)
        count, ttl = await self._run(FIXED_WINDOW_LUA, key, self.window_ms)
        count, ttl = int(count), int(ttl)
        return RateLimitInfo(
            total_hits=count,
            reset_time=now + ttl,
            exceeded=count > self.max_requests,
        )

    async def decrement(self, key: str) -> None:
        await self._run(FIXED_WINDOW_DECREMENT_LUA, key)


class RedisSlidingWindowStore(_RedisStoreBase):
    """Sliding log of request timestamps kept in a Redis sorted set."""

    store_name = "redis_sliding_window"

    async def record_request(self, key: str) -> RateLimitInfo:
        now = int(time.time() * 1000)
        # Unique member so hits in the same millisecond are all counted
        member = f"{now}-{uuid.uuid4()}"
        logger.debug(
            f"[{self.store_name}] EVAL args: key={key} now(ms)={now} window(ms)={self.window_ms} member={member}"
        )
        count, oldest = await self._run(SLIDING_WINDOW_LUA, key, now, self.window_ms, member)
        count = int(count)
        oldest = int(oldest) if oldest is not None else now
        return RateLimitInfo(
            total_hits=count,
            reset_time=oldest + self.window_ms,
            exceeded=count > self.max_requests,
        )

    async def decrement(self, key: str) -> None:
        await self._run(SLIDING_WINDOW_DECREMENT_LUA, key)
