"""
Ratewatch metrics utilities for monitoring.
Prometheus collectors are created lazily through singleton getters so that
repeated imports or test runs never register the same metric twice.
"""
import logging

from prometheus_client import Counter, Gauge

logger = logging.getLogger(__name__)


def get_rate_limit_requests():
    if not hasattr(get_rate_limit_requests, "_metric"):
        get_rate_limit_requests._metric = Counter(
            "ratewatch_requests_total", "Requests checked by the rate limiter", ["outcome"]
        )
    return get_rate_limit_requests._metric


def get_alerts_counter():
    if not hasattr(get_alerts_counter, "_metric"):
        get_alerts_counter._metric = Counter(
            "ratewatch_alerts_total", "Breach alerts delivered per channel", ["channel", "status"]
        )
    return get_alerts_counter._metric


def get_store_errors_counter():
    if not hasattr(get_store_errors_counter, "_metric"):
        get_store_errors_counter._metric = Counter(
            "ratewatch_store_errors_total", "Backing store failures", ["store"]
        )
    return get_store_errors_counter._metric


def get_tracked_keys_gauge():
    if not hasattr(get_tracked_keys_gauge, "_metric"):
        get_tracked_keys_gauge._metric = Gauge(
            "ratewatch_tracked_keys", "Keys held by each in-memory counter after its last sweep", ["counter"]
        )
    return get_tracked_keys_gauge._metric


def record_metrics(event: str, value: int = 1, **labels) -> None:
    """
    * Record a ratewatch event on the matching Prometheus collector
    Args:
        event (str): One of "request", "alert", "store_error", "tracked_keys"
        value (int): Amount to add (or the gauge value for "tracked_keys")
        labels: Label values for the collector
    """
    if event == "request":
        get_rate_limit_requests().labels(**labels).inc(value)
    elif event == "alert":
        get_alerts_counter().labels(**labels).inc(value)
    elif event == "store_error":
        get_store_errors_counter().labels(**labels).inc(value)
    elif event == "tracked_keys":
        get_tracked_keys_gauge().labels(**labels).set(value)
    else:
        raise ValueError(f"Unknown metrics event: {event}")
    logger.debug(f"[metrics] Event: {event}, Value: {value}, Labels: {labels}")
