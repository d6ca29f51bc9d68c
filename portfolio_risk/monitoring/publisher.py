"""Event publishing and alert caching.

Every event is wrapped in the envelope ``{type, data, timestamp}`` with a
unix-seconds timestamp. ``RedisEventPublisher`` routes ``risk_update`` to
the ``risk_updates`` channel and alert events to ``alerts_channel``, with
tenacity retries on connection errors. ``RedisAlertCache`` keeps
``alert:{id}`` entries with a TTL plus the ``active_alerts`` set.
``InMemoryEventPublisher`` records envelopes for tests and dry runs.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any

import redis
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from portfolio_risk.core.domain import Alert
from portfolio_risk.core.enums import EventType

logger = structlog.get_logger(__name__)

RISK_UPDATES_CHANNEL = "risk_updates"
ALERTS_CHANNEL = "alerts_channel"
ACTIVE_ALERTS_KEY = "active_alerts"
ALERT_KEY_PREFIX = "alert:"
DEFAULT_ALERT_TTL = 24 * 60 * 60

_CHANNELS = {
    EventType.RISK_UPDATE: RISK_UPDATES_CHANNEL,
    EventType.NEW_ALERT: ALERTS_CHANNEL,
    EventType.AML_ALERT: ALERTS_CHANNEL,
}


def build_envelope(event_type: EventType, data: dict[str, Any], now: float | None = None) -> dict[str, Any]:
    """Wrap *data* in the published event envelope."""
    return {
        "type": event_type.value,
        "data": data,
        "timestamp": int(now if now is not None else time.time()),
    }


class InMemoryEventPublisher:
    """Collects published envelopes in a list."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        with self._lock:
            self.events.append(build_envelope(event_type, data))

    def of_type(self, event_type: EventType) -> list[dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e["type"] == event_type.value]


class RedisEventPublisher:
    """Publishes envelopes to Redis pub/sub channels.

    Args:
        client: A synchronous ``redis.Redis`` client.
        max_retries: Attempts per publish before the error propagates.
    """

    def __init__(self, client: redis.Redis, max_retries: int = 3) -> None:
        self._redis = client
        self.max_retries = max_retries

    def publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        channel = _CHANNELS[event_type]
        payload = json.dumps(build_envelope(event_type, data), default=str)
        for attempt in Retrying(
            retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential_jitter(initial=0.1, max=2, jitter=0.5),
            reraise=True,
        ):
            with attempt:
                receivers = self._redis.publish(channel, payload)
                logger.debug(
                    "event_published",
                    channel=channel,
                    event_type=event_type.value,
                    receivers=receivers,
                    attempt=attempt.retry_state.attempt_number,
                )


class RedisAlertCache:
    """Redis-backed hot cache of alerts.

    Args:
        client: A synchronous ``redis.Redis`` client.
        ttl: Seconds an ``alert:{id}`` entry lives.
    """

    def __init__(self, client: redis.Redis, ttl: int = DEFAULT_ALERT_TTL) -> None:
        self._redis = client
        self.ttl = ttl

    def cache_alert(self, alert: Alert) -> None:
        pipe = self._redis.pipeline()
        pipe.set(f"{ALERT_KEY_PREFIX}{alert.id}", json.dumps(alert.to_dict()), ex=self.ttl)
        pipe.sadd(ACTIVE_ALERTS_KEY, alert.id)
        pipe.execute()

    def remove_active(self, alert_id: str) -> None:
        self._redis.srem(ACTIVE_ALERTS_KEY, alert_id)

    def evict(self, alert_id: str) -> None:
        pipe = self._redis.pipeline()
        pipe.delete(f"{ALERT_KEY_PREFIX}{alert_id}")
        pipe.srem(ACTIVE_ALERTS_KEY, alert_id)
        pipe.execute()
