"""
Rate limiting core: sliding window counters, Redis-backed stores, breach alerting and HTTP glue.
"""
from .alerting import BreachAlerter
from .decorators import rate_limit
from .duration import parse_ms
from .errors import InvalidDurationError, RateWatchError, StoreError
from .middleware import RateLimitMiddleware
from .rate_limit import RateLimitDecision, RateLimiter
from .schemas import (
    AlertData,
    AlertingOptions,
    CounterOptions,
    RateLimitInfo,
    RateLimitOptions,
    RateLimitStore,
    RequestContext,
)
from .stores import RedisSlidingWindowStore, RedisStore, WindowedCounter

__all__ = [
    'AlertData',
    'AlertingOptions',
    'BreachAlerter',
    'CounterOptions',
    'InvalidDurationError',
    'RateLimitDecision',
    'RateLimitInfo',
    'RateLimitMiddleware',
    'RateLimitOptions',
    'RateLimitStore',
    'RateLimiter',
    'RateWatchError',
    'RedisSlidingWindowStore',
    'RedisStore',
    'RequestContext',
    'StoreError',
    'WindowedCounter',
    'parse_ms',
    'rate_limit',
]
