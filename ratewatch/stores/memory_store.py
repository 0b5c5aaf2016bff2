"""
* Sliding Window Rate Limiter held in process memory
* Suitable for development or single-process deployments; counts are not shared between processes
"""
import logging
import threading
import time

from ratewatch.config import RateWatchConfig
from ratewatch.duration import parse_ms
from ratewatch.metrics import record_metrics
from ratewatch.schemas import CounterOptions, RateLimitInfo

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class _HitRecord:
    __slots__ = ("timestamps", "reset_time")

    def __init__(self, reset_time: int):
        self.timestamps: list[int] = []
        self.reset_time = reset_time


class WindowedCounter:
    """
    Per-key sliding window counter keeping a log of request timestamps.

    The window slides continuously: a hit counts until exactly window_ms
    after it was recorded. An optional daemon thread sweeps expired keys
    every cleanup_interval_ms to bound memory. The name labels its
    tracked-keys gauge, so give each counter (route, tenant) its own.
    """

    def __init__(
        self,
        window_ms: int | str,
        max_requests: int,
        auto_cleanup: bool = True,
        cleanup_interval_ms: int | str = RateWatchConfig.CLEANUP_INTERVAL_MS,
        name: str = "default",
    ):
        window_ms = parse_ms(window_ms)
        cleanup_interval_ms = parse_ms(cleanup_interval_ms)
        if window_ms <= 0:
            raise ValueError("window_ms must be a positive duration")
        if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests <= 0:
            raise ValueError("max_requests must be a positive integer")
        if cleanup_interval_ms <= 0:
            raise ValueError("cleanup_interval_ms must be a positive duration")

        self.window_ms = window_ms
        self.max_requests = max_requests
        self.name = name
        self._hits: dict[str, _HitRecord] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._cleanup_thread: threading.Thread | None = None

        if auto_cleanup:
            self._cleanup_thread = threading.Thread(
                target=self._run_cleanup,
                args=(cleanup_interval_ms / 1000,),
                name="ratewatch-cleanup",
                daemon=True,
            )
            self._cleanup_thread.start()

    @classmethod
    def from_options(cls, options: CounterOptions) -> "WindowedCounter":
        return cls(
            options.window_ms,
            options.max_requests,
            auto_cleanup=options.auto_cleanup,
            cleanup_interval_ms=options.cleanup_interval_ms,
            name=options.name,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    async def record_request(self, key: str) -> RateLimitInfo:
        """
        * Record one request for key and report whether it exceeds the limit
        Args:
            key (str): Identifier being limited (IP address, user ID, etc.)
        Returns:
            RateLimitInfo: hits in window, reset time (epoch ms), exceeded flag
        """
        now = _now_ms()
        with self._lock:
            record = self._hits.get(key)
            if record is None:
                record = _HitRecord(now + self.window_ms)
                self._hits[key] = record

            window_start = now - self.window_ms
            record.timestamps = [ts for ts in record.timestamps if ts > window_start]
            record.timestamps.append(now)

            record.reset_time = record.timestamps[0] + self.window_ms
            total_hits = len(record.timestamps)
            return RateLimitInfo(
                total_hits=total_hits,
                reset_time=record.reset_time,
                exceeded=total_hits > self.max_requests,
            )

    def get_hits(self, key: str) -> int:
        """Number of hits for key inside the current window, without recording one."""
        window_start = _now_ms() - self.window_ms
        with self._lock:
            record = self._hits.get(key)
            if record is None:
                return 0
            return sum(1 for ts in record.timestamps if ts > window_start)

    async def decrement(self, key: str) -> None:
        """Drop the most recent hit for key; no-op when there is none."""
        with self._lock:
            record = self._hits.get(key)
            if record and record.timestamps:
                record.timestamps.pop()

    async def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    async def cleanup(self) -> None:
        """Remove expired hits from every key and forget keys left empty."""
        self._sweep()

    def _sweep(self) -> int:
        window_start = _now_ms() - self.window_ms
        with self._lock:
            for key in list(self._hits):
                record = self._hits[key]
                fresh = [ts for ts in record.timestamps if ts > window_start]
                if not fresh:
                    del self._hits[key]
                elif len(fresh) != len(record.timestamps):
                    record.timestamps = fresh
            remaining = len(self._hits)
        record_metrics("tracked_keys", remaining, counter=self.name)
        return remaining

    def _run_cleanup(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                remaining = self._sweep()
                logger.debug(f"[memory_store] Sweep complete, {remaining} keys tracked")
            except Exception as e:
                logger.error(f"[memory_store] Cleanup sweep failed: {e}", exc_info=True)

    def shutdown(self) -> None:
        """Stop future sweeps. A sweep already running finishes normally."""
        self._stop.set()
        self._cleanup_thread = None
