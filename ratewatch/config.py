"""
Ratewatch configuration settings with store, alerting and Redis parameters.
"""

from pydantic import NonNegativeInt, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from RATEWATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RATEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis connection
    redis_url: str | None = None
    redis_host: str = "localhost"
    redis_port: PositiveInt = 6379
    redis_db: NonNegativeInt = 0
    redis_password: str | None = None
    redis_socket_timeout: PositiveFloat = 5.0
    redis_socket_connect_timeout: PositiveFloat = 2.0
    redis_key_prefix: str = "ratewatch:"

    # Circuit breaker
    redis_failure_threshold: PositiveInt = 3
    redis_recovery_timeout: PositiveInt = 30

    # Rate limiting defaults
    window_ms: PositiveInt = 60_000
    max_requests: PositiveInt = 100
    cleanup_interval_ms: PositiveInt = 5 * 60 * 1000

    # Alerting defaults
    alert_threshold: PositiveInt = 5
    alert_window_ms: PositiveInt = 60_000
    webhook_timeout: PositiveFloat = 5.0


settings = Settings()


class RateWatchConfig:
    # Redis connection settings
    REDIS_URL = settings.redis_url
    REDIS_HOST = settings.redis_host
    REDIS_PORT = settings.redis_port
    REDIS_DB = settings.redis_db
    REDIS_PASSWORD = settings.redis_password
    REDIS_SOCKET_TIMEOUT = settings.redis_socket_timeout
    REDIS_SOCKET_CONNECT_TIMEOUT = settings.redis_socket_connect_timeout
    REDIS_KEY_PREFIX = settings.redis_key_prefix

    # Circuit breaker settings
    CIRCUIT_BREAKER = {
        'failure_threshold': settings.redis_failure_threshold,  # Failures before opening
        'recovery_timeout': settings.redis_recovery_timeout,  # Seconds before a trial call
    }

    # Rate limiting settings
    DEFAULT_WINDOW_MS = settings.window_ms
    DEFAULT_MAX_REQUESTS = settings.max_requests
    CLEANUP_INTERVAL_MS = settings.cleanup_interval_ms
    DEFAULT_MESSAGE = "Too many requests, please try again later."
    DEFAULT_STATUS_CODE = 429

    # Alerting settings
    ALERT_THRESHOLD = settings.alert_threshold
    ALERT_WINDOW_MS = settings.alert_window_ms
    WEBHOOK_TIMEOUT = settings.webhook_timeout
