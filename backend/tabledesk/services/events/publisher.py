"""
Notification port and its implementations.

Events are handed to a Notifier only after the unit of work that produced
them has committed. Delivery is best-effort: failures are logged and never
propagate back into the business operation.
"""

import threading
from typing import Iterable, Protocol

import redis

from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.config.settings import settings

from .domain_event import DomainEvent, EventType

logger = get_logger(__name__)


class Notifier(Protocol):
    """Anything that can deliver a domain event to interested parties."""

    def publish(self, event: DomainEvent) -> None:
        ...


class RedisNotifier:
    """
    Publishes events as JSON to Redis pub/sub channels.

    Channels:
        kitchen:{restaurant_id}  KDS screens
        waiter:{restaurant_id}   waiter devices
        session:{session_id}     guest devices of one table session
    """

    # Audiences by event type
    CHANNEL_MAP: dict[EventType, tuple[str, ...]] = {
        EventType.ORDER_CREATED: ("kitchen", "waiter", "session"),
        EventType.ORDER_STATUS_CHANGED: ("kitchen", "waiter", "session"),
        EventType.ORDER_ITEM_STATUS_CHANGED: ("kitchen", "waiter", "session"),
        EventType.SESSION_CLOSED: ("waiter", "session"),
    }

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self._url = url or settings.redis_url
        self._client = client
        self._lock = threading.Lock()

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = redis.Redis.from_url(
                        self._url,
                        decode_responses=True,
                        socket_connect_timeout=settings.redis_socket_timeout,
                        socket_timeout=settings.redis_socket_timeout,
                        health_check_interval=30,
                    )
                    logger.info("Redis notifier connected", url=self._url)
        return self._client

    def channels_for(self, event: DomainEvent) -> list[str]:
        channels = []
        for audience in self.CHANNEL_MAP.get(event.event_type, ("waiter",)):
            if audience == "session":
                if event.table_session_id is not None:
                    channels.append(f"session:{event.table_session_id}")
            else:
                channels.append(f"{audience}:{event.restaurant_id}")
        return channels

    def publish(self, event: DomainEvent) -> None:
        client = self._get_client()
        message = event.to_json()
        for channel in self.channels_for(event):
            client.publish(channel, message)
            logger.debug(
                "Event published",
                event_type=event.event_type.value,
                entity_id=event.entity_id,
                channel=channel,
            )

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


class RecordingNotifier:
    """Keeps published events in memory. Used by tests and local tooling."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class NullNotifier:
    """Drops every event (notifications disabled)."""

    def publish(self, event: DomainEvent) -> None:
        return None


def dispatch_after_commit(notifier: Notifier, events: Iterable[DomainEvent]) -> int:
    """
    Deliver events produced by a committed unit of work.

    Returns the number of events delivered. A failing delivery is logged
    and skipped so the remaining events still go out.
    """
    delivered = 0
    for event in events:
        try:
            notifier.publish(event)
            delivered += 1
        except Exception as e:
            logger.error(
                "Failed to publish event",
                event_type=event.event_type.value,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                error=str(e),
            )
    return delivered


# =============================================================================
# Singleton instance
# =============================================================================

_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Get or create the process-wide notifier."""
    global _notifier
    if _notifier is None:
        _notifier = RedisNotifier() if settings.notifications_enabled else NullNotifier()
    return _notifier


def close_notifier() -> None:
    """Release the Redis connection on shutdown."""
    global _notifier
    if isinstance(_notifier, RedisNotifier):
        _notifier.close()
    _notifier = None
