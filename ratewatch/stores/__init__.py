"""
Counter stores: in-process sliding window and Redis-backed alternatives.
"""
from .memory_store import WindowedCounter
from .redis_store import RedisSlidingWindowStore, RedisStore

__all__ = [
    'WindowedCounter',
    'RedisStore',
    'RedisSlidingWindowStore',
]
