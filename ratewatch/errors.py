"""
Exception types raised by ratewatch.
"""


class RateWatchError(Exception):
    """Base class for ratewatch errors."""


class StoreError(RateWatchError):
    """A backing counter store failed. Callers should log and fail open."""

    def __init__(self, message: str, store: str = "unknown"):
        super().__init__(message)
        self.store = store


class InvalidDurationError(RateWatchError, ValueError):
    """A duration string could not be parsed."""

    def __init__(self, value):
        super().__init__(f"Invalid duration: {value!r} (expected e.g. 500, '30s', '1m', '2h', '1d')")
        self.value = value
