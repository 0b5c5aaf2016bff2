"""
Redis client initialization and configuration for the shared counter stores.

Follows best practices for:
- Lazy connection setup
- Timeout handling
- Circuit breaking per client instance
- Tracing of every command
"""

import logging
from typing import Any

from circuitbreaker import CircuitBreaker
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ratewatch.config import RateWatchConfig

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)


class RedisClient:
    """
    Redis client wrapper used by the Redis-backed stores.

    Handles:
    - Connection creation from URL or host/port settings
    - A circuit breaker that fails fast after repeated Redis errors
    - OpenTelemetry spans around each command
    """

    def __init__(
        self,
        redis: Redis | None = None,
        failure_threshold: int = RateWatchConfig.CIRCUIT_BREAKER["failure_threshold"],
        recovery_timeout: int = RateWatchConfig.CIRCUIT_BREAKER["recovery_timeout"],
    ):
        self._client = redis
        self._owns_client = redis is None
        self._breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=RedisError,
            name=f"ratewatch-redis-{id(self)}",
        )
        self._guarded_eval = self._breaker(self._eval)
        self._guarded_delete = self._breaker(self._delete)

    async def get_client(self) -> Redis:
        """Return the underlying client, connecting on first use."""
        if self._client is None:
            if RateWatchConfig.REDIS_URL:
                self._client = Redis.from_url(
                    RateWatchConfig.REDIS_URL,
                    socket_timeout=RateWatchConfig.REDIS_SOCKET_TIMEOUT,
                    socket_connect_timeout=RateWatchConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
                )
            else:
                self._client = Redis(
                    host=RateWatchConfig.REDIS_HOST,
                    port=RateWatchConfig.REDIS_PORT,
                    db=RateWatchConfig.REDIS_DB,
                    password=RateWatchConfig.REDIS_PASSWORD,
                    socket_timeout=RateWatchConfig.REDIS_SOCKET_TIMEOUT,
                    socket_connect_timeout=RateWatchConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
                )
        return self._client

    async def eval(self, script: str, keys: list[str], args: list[Any]) -> Any:
        """Run a Lua script atomically, failing fast while the circuit is open."""
        return await self._guarded_eval(script, keys, args)

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys."""
        return await self._guarded_delete(*keys)

    async def _eval(self, script: str, keys: list[str], args: list[Any]) -> Any:
        with tracer.start_as_current_span("redis.eval") as span:
            span.set_attribute("redis.keys", keys)
            try:
                result = await (await self.get_client()).eval(script, len(keys), *keys, *args)
                span.set_status(StatusCode.OK)
                return result
            except Exception as e:
                span.record_exception(e)
                span.set_status(StatusCode.ERROR)
                raise

    async def _delete(self, *keys: str) -> int:
        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.keys", list(keys))
            try:
                result = await (await self.get_client()).delete(*keys)
                span.set_status(StatusCode.OK)
                return result
            except (RedisError, TimeoutError) as e:
                span.record_exception(e)
                span.set_status(StatusCode.ERROR)
                logger.error(f"Redis delete failed for keys {keys}: {str(e)}")
                raise

    async def is_healthy(self) -> bool:
        """Check if Redis connection is healthy"""
        try:
            return await (await self.get_client()).ping()
        except (RedisError, TimeoutError):
            return False

    async def shutdown(self):
        """Close the connection if this wrapper created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
