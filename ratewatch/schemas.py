"""
Shared types: option structures, store results, alert payloads and the store protocol.
"""
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated, Any, Protocol, runtime_checkable

from pydantic import BaseModel, BeforeValidator, ConfigDict, PositiveInt, field_validator

from ratewatch.config import RateWatchConfig
from ratewatch.duration import parse_ms


@dataclass(frozen=True)
class RateLimitInfo:
    """Result of recording one request against a store."""

    total_hits: int
    reset_time: int  # epoch ms at which the oldest counted hit leaves the window
    exceeded: bool


@dataclass(frozen=True)
class RequestContext:
    method: str
    path: str


@dataclass(frozen=True)
class AlertData:
    """Payload delivered to every alert channel."""

    key: str
    breach_count: int
    timestamp: int  # epoch ms
    request: RequestContext | None = None


AlertHandler = Callable[[AlertData], Awaitable[None] | None]


@runtime_checkable
class RateLimitStore(Protocol):
    """Capability shared by the in-memory counter and the Redis-backed stores."""

    async def record_request(self, key: str) -> RateLimitInfo: ...

    async def decrement(self, key: str) -> None: ...

    async def reset(self, key: str) -> None: ...

    async def cleanup(self) -> None: ...

    def shutdown(self) -> None: ...


def _parse_window(value: Any) -> Any:
    if isinstance(value, (int, str)):
        return parse_ms(value)
    return value


# Milliseconds, or a shorthand string such as "30s" or "1m"
DurationMs = Annotated[PositiveInt, BeforeValidator(_parse_window)]


class CounterOptions(BaseModel):
    model_config = ConfigDict(validate_default=True)

    window_ms: DurationMs = RateWatchConfig.DEFAULT_WINDOW_MS
    max_requests: PositiveInt = RateWatchConfig.DEFAULT_MAX_REQUESTS
    auto_cleanup: bool = True
    cleanup_interval_ms: DurationMs = RateWatchConfig.CLEANUP_INTERVAL_MS
    name: str = "default"


class AlertingOptions(BaseModel):
    """
    Breach alerting configuration.

    threshold: breaches within window_ms that trigger one alert
    window_ms: alert window, usually longer than the rate limit window
    console_log: log a warning line for each alert
    webhook_url: POST a chat-style JSON document here
    handler: sync or async callable receiving AlertData
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_default=True)

    threshold: PositiveInt = RateWatchConfig.ALERT_THRESHOLD
    window_ms: DurationMs = RateWatchConfig.ALERT_WINDOW_MS
    console_log: bool = True
    webhook_url: str | None = None
    handler: AlertHandler | None = None

    @field_validator("webhook_url")
    @classmethod
    def empty_url_is_none(cls, v: str | None) -> str | None:
        return v or None


class RateLimitOptions(BaseModel):
    """Options for RateLimiter and the HTTP glue built on it."""

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_default=True)

    max_requests: PositiveInt = RateWatchConfig.DEFAULT_MAX_REQUESTS
    window_ms: DurationMs = RateWatchConfig.DEFAULT_WINDOW_MS
    message: str = RateWatchConfig.DEFAULT_MESSAGE
    status_code: int = RateWatchConfig.DEFAULT_STATUS_CODE
    headers: bool = True
    name: str = "default"
    alerting: AlertingOptions | None = None
    key_func: Callable[..., str] | None = None
    skip: Callable[..., bool] | None = None

    def counter_options(self) -> CounterOptions:
        return CounterOptions(window_ms=self.window_ms, max_requests=self.max_requests, name=self.name)
