"""Rate limiting middleware for Starlette and FastAPI applications.

Applies one RateLimiter to every request, keyed by client IP unless the
limiter options supply a key function.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ratewatch.rate_limit import RateLimitDecision, RateLimiter
from ratewatch.schemas import RateLimitOptions

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def rate_limited_response(options: RateLimitOptions, decision: RateLimitDecision) -> JSONResponse:
    """Build the rejection returned when a key is over its limit."""
    return JSONResponse(
        status_code=options.status_code,
        content={
            "error": {
                "message": options.message,
                "limit": options.max_requests,
                "current": decision.info.total_hits if decision.info else None,
                "nextReset": decision.info.reset_time if decision.info else None,
            }
        },
        headers=decision.headers,
    )


async def resolve_key(limiter: RateLimiter, request: Request) -> str | None:
    """Rate limit key for request, or None when the request should bypass limiting."""
    options = limiter.options
    try:
        if options.skip and options.skip(request):
            return None
        key_func = options.key_func or get_client_ip
        return key_func(request)
    except Exception as e:
        # A broken skip/key function must not turn into a 5xx
        logger.error(f"Rate limit key resolution failed: {e}", exc_info=True)
        return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that applies a limiter to all requests.

    Adds X-RateLimit-* headers to responses when the limiter options enable
    them, and answers over-limit requests with a JSON error.
    """

    def __init__(self, app: ASGIApp, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        key = await resolve_key(self.limiter, request)
        if key is None:
            return await call_next(request)

        decision = await self.limiter.check(key, method=request.method, path=request.url.path)
        if not decision.allowed:
            return rate_limited_response(self.limiter.options, decision)

        response = await call_next(request)
        response.headers.update(decision.headers)
        return response
