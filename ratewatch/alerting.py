"""
Breach alerting for rate limited keys.

A BreachAlerter turns the stream of "this key was just rejected" events
into edge-triggered notifications: an alert fires once every `threshold`
breaches that land within `window_ms`, never on every rejected request.

Channels, any subset of which may be enabled:
- console: one WARNING line on the `ratewatch.alerts` logger
- webhook: a chat-style JSON document POSTed with httpx (never retried)
- handler: a caller supplied sync or async callable
"""

import inspect
import logging
import threading
import time
from datetime import datetime, timezone

import httpx

from ratewatch.config import RateWatchConfig
from ratewatch.metrics import record_metrics
from ratewatch.schemas import AlertData, AlertingOptions, RequestContext

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("ratewatch.alerts")


class _BreachRecord:
    __slots__ = ("count", "recent_breaches")

    def __init__(self):
        self.count = 0
        self.recent_breaches: list[int] = []


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def build_webhook_payload(data: AlertData) -> dict:
    """Chat-notification shaped body: summary text plus one attachment."""
    fields = [
        {"title": "Key", "value": data.key, "short": True},
        {"title": "Breach Count", "value": str(data.breach_count), "short": True},
        {"title": "Time", "value": _iso(data.timestamp), "short": True},
    ]
    if data.request:
        fields.append(
            {"title": "Request", "value": f"{data.request.method} {data.request.path}", "short": True}
        )
    return {
        "text": "🚨 Rate limit breach detected!",
        "attachments": [
            {
                "title": f"Rate Limit Breach - Key: {data.key}",
                "fields": fields,
                "color": "#ff0000",
            }
        ],
    }


class BreachAlerter:
    """
    Per-key breach counter with threshold gated notifications.

    Keeps a lifetime breach count per key (only reset by clear()) and a
    log of recent breach times. When the recent log reaches the threshold
    an alert is sent and the log is emptied.
    """

    def __init__(
        self,
        options: AlertingOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
        webhook_timeout: float = RateWatchConfig.WEBHOOK_TIMEOUT,
        **overrides,
    ):
        options = options or AlertingOptions()
        if overrides:
            options = AlertingOptions(**{**options.model_dump(), **overrides})
        self.options = options
        self._http_client = http_client
        self._webhook_timeout = webhook_timeout
        self._breaches: dict[str, _BreachRecord] = {}
        self._lock = threading.Lock()

    async def record_breach(self, key: str, request: RequestContext | None = None) -> None:
        """
        Record one rate limit breach for key and alert if the threshold is reached.

        Returns once every enabled channel has been attempted. Channel
        failures are logged and never raised.
        """
        now = int(time.time() * 1000)
        alert = None
        with self._lock:
            record = self._breaches.get(key)
            if record is None:
                record = _BreachRecord()
                self._breaches[key] = record

            window_start = now - self.options.window_ms
            record.recent_breaches = [ts for ts in record.recent_breaches if ts > window_start]
            record.recent_breaches.append(now)
            record.count += 1

            if len(record.recent_breaches) >= self.options.threshold:
                alert = AlertData(key=key, breach_count=record.count, timestamp=now, request=request)
                # Start a fresh accumulation so the next alert needs `threshold` new breaches
                record.recent_breaches = []

        if alert is not None:
            await self._trigger_alert(alert)

    def breach_count(self, key: str) -> int:
        with self._lock:
            record = self._breaches.get(key)
            return record.count if record else 0

    def clear(self) -> None:
        """Forget every breach record, lifetime counts included."""
        with self._lock:
            self._breaches.clear()

    async def _trigger_alert(self, data: AlertData) -> None:
        if self.options.console_log:
            self._log_to_console(data)
        if self.options.webhook_url:
            await self._send_webhook(data)
        if self.options.handler:
            await self._call_handler(data)

    def _log_to_console(self, data: AlertData) -> None:
        request = f" Request: {data.request.method} {data.request.path}," if data.request else ""
        alert_logger.warning(
            f"[ratewatch] Rate limit breach detected! Key: {data.key}, Count: {data.breach_count},"
            f"{request} Time: {_iso(data.timestamp)}"
        )
        record_metrics("alert", channel="console", status="sent")

    async def _send_webhook(self, data: AlertData) -> None:
        payload = build_webhook_payload(data)
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.options.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._webhook_timeout) as client:
                    response = await client.post(self.options.webhook_url, json=payload)
            if not response.is_success:
                raise httpx.HTTPStatusError(
                    f"Webhook request failed with status {response.status_code}",
                    request=response.request,
                    response=response,
                )
            record_metrics("alert", channel="webhook", status="sent")
        except Exception as e:
            record_metrics("alert", channel="webhook", status="error")
            logger.error(f"Error sending webhook alert: {e}", extra={"key": data.key})

    async def _call_handler(self, data: AlertData) -> None:
        try:
            result = self.options.handler(data)
            if inspect.isawaitable(result):
                await result
            record_metrics("alert", channel="handler", status="sent")
        except Exception as e:
            record_metrics("alert", channel="handler", status="error")
            logger.error(f"Error in custom alert handler: {e}", extra={"key": data.key}, exc_info=True)
