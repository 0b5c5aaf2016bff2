"""Rate limiting decorator for per-route limits.

Lets a single endpoint use its own RateLimiter instead of (or on top of)
the global middleware.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ratewatch.middleware import rate_limited_response, resolve_key
from ratewatch.rate_limit import RateLimiter


P = ParamSpec("P")
T = TypeVar("T")


def rate_limit(
    limiter: RateLimiter,
) -> Callable[
    [Callable[P, Awaitable[T]]], Callable[P, Awaitable[T | Response]]
]:
    """Decorator to apply a limiter to one route.

    Args:
        limiter: Limiter holding the options and store for this route

    Returns:
        Decorated function with rate limiting

    Example:
        search_limiter = RateLimiter(RateLimitOptions(max_requests=10, window_ms="1m"))

        @router.get("/search")
        @rate_limit(search_limiter)
        async def search(request: Request):
            ...
    """

    def decorator(
        func: Callable[P, Awaitable[T]],
    ) -> Callable[P, Awaitable[T | Response]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T | Response:
            request: Request | None = None
            for arg in args:
                if isinstance(arg, Request):
                    request = arg
                    break
            if request is None:
                req_from_kwargs = kwargs.get("request")
                if isinstance(req_from_kwargs, Request):
                    request = req_from_kwargs

            if request is None:
                # No request found, skip rate limiting
                return await func(*args, **kwargs)

            key = await resolve_key(limiter, request)
            if key is None:
                return await func(*args, **kwargs)

            decision = await limiter.check(key, method=request.method, path=request.url.path)
            if not decision.allowed:
                return rate_limited_response(limiter.options, decision)

            result = await func(*args, **kwargs)
            if not decision.headers:
                return result
            if not isinstance(result, Response):
                result = JSONResponse(content=jsonable_encoder(result))
            result.headers.update(decision.headers)
            return result

        return wrapper

    return decorator
