"""
Rate Limiting Utilities

Composes a counter store and an optional breach alerter with:
- Fail-open handling of store outages
- Standard X-RateLimit-* response headers
- Prometheus request metrics
"""

import logging
import math
import time
from dataclasses import dataclass, field

from ratewatch.alerting import BreachAlerter
from ratewatch.metrics import record_metrics
from ratewatch.schemas import RateLimitInfo, RateLimitOptions, RateLimitStore, RequestContext
from ratewatch.stores.memory_store import WindowedCounter

logger = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    """Outcome of one rate limit check."""

    allowed: bool
    limit: int
    info: RateLimitInfo | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def retry_after(self) -> int:
        """Seconds until the oldest counted hit leaves the window (at least 1)."""
        if self.info is None:
            return 0
        return max(1, math.ceil((self.info.reset_time - time.time() * 1000) / 1000))


class RateLimiter:
    """
    Checks requests against a store and reports breaches to an alerter.

    Without an explicit store an in-memory WindowedCounter is built from the
    options; without an explicit alerter one is built from options.alerting
    when that is set.
    """

    def __init__(
        self,
        options: RateLimitOptions | None = None,
        store: RateLimitStore | None = None,
        alerter: BreachAlerter | None = None,
    ):
        self.options = options or RateLimitOptions()
        self.store = store or WindowedCounter.from_options(self.options.counter_options())
        if alerter is None and self.options.alerting is not None:
            alerter = BreachAlerter(self.options.alerting)
        self.alerter = alerter

    async def check(self, key: str, method: str = "UNKNOWN", path: str = "UNKNOWN") -> RateLimitDecision:
        """
        Record a request for key and decide whether it may proceed.

        Any failure while counting or alerting is logged and the request is
        allowed, so the limiter never turns its own faults into rejections.
        """
        limit = self.options.max_requests
        try:
            info = await self.store.record_request(key)
            decision = RateLimitDecision(allowed=not info.exceeded, limit=limit, info=info)
            if self.options.headers:
                decision.headers = self.headers_for(info)

            if info.exceeded:
                decision.headers["Retry-After"] = str(decision.retry_after)
                logger.warning(
                    "Rate limit exceeded",
                    extra={"key": key, "path": path, "limit": limit, "hits": info.total_hits},
                )
                record_metrics("request", outcome="limited")
                if self.alerter is not None:
                    await self.alerter.record_breach(key, RequestContext(method=method, path=path))
            else:
                record_metrics("request", outcome="allowed")
            return decision

        except Exception as e:
            logger.error(
                "Rate limit error",
                extra={"error": str(e), "key": key},
                exc_info=True,
            )
            record_metrics("request", outcome="error")
            # Fail open while the store is unavailable
            return RateLimitDecision(allowed=True, limit=limit)

    def headers_for(self, info: RateLimitInfo) -> dict[str, str]:
        limit = self.options.max_requests
        return {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(max(0, limit - info.total_hits)),
            "X-RateLimit-Reset": str(math.ceil(info.reset_time / 1000)),
        }

    def shutdown(self) -> None:
        self.store.shutdown()
