"""
Domain Event definition.
Immutable value object for order lifecycle notifications.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Event type enumeration for type safety."""

    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_ITEM_STATUS_CHANGED = "order_item.status_changed"
    SESSION_CLOSED = "session.closed"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """
    Immutable domain event.

    Attributes:
        event_type: Type of event (from EventType enum)
        entity_type: Type of entity involved ("order", "order_item", "table_session")
        entity_id: ID of the entity
        restaurant_id: Restaurant for channel routing and isolation
        actor_id: Staff member who triggered the event (None for guests and the sweep)
        table_session_id: Session the entity belongs to, if any
        payload: Additional event data (old/new status, totals...)
        timestamp: When the event occurred
    """

    event_type: EventType
    entity_type: str
    entity_id: int
    restaurant_id: int
    actor_id: int | None = None
    table_session_id: int | None = None
    payload: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "entity": {"type": self.entity_type, "id": self.entity_id},
            "restaurant_id": self.restaurant_id,
            "actor_id": self.actor_id,
            "table_session_id": self.table_session_id,
            "payload": self.payload or {},
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def order_created(order, actor_id: int | None, at: datetime) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_CREATED,
        entity_type="order",
        entity_id=order.id,
        restaurant_id=order.restaurant_id,
        actor_id=actor_id,
        table_session_id=order.table_session_id,
        payload={
            "table_id": order.table_id,
            "source": order.source,
            "status": order.status,
            "total": str(order.total),
            "item_count": len(order.items),
        },
        timestamp=at,
    )


def order_status_changed(
    order, old_status: str, new_status: str, actor_id: int | None, at: datetime
) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_STATUS_CHANGED,
        entity_type="order",
        entity_id=order.id,
        restaurant_id=order.restaurant_id,
        actor_id=actor_id,
        table_session_id=order.table_session_id,
        payload={
            "old": old_status,
            "new": new_status,
            "table_id": order.table_id,
            "waiter_id": order.waiter_id,
        },
        timestamp=at,
    )


def order_item_status_changed(
    item, order, old_status: str, new_status: str, actor_id: int | None, at: datetime
) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_ITEM_STATUS_CHANGED,
        entity_type="order_item",
        entity_id=item.id,
        restaurant_id=order.restaurant_id,
        actor_id=actor_id,
        table_session_id=order.table_session_id,
        payload={"old": old_status, "new": new_status, "order_id": order.id},
        timestamp=at,
    )


def session_closed(session, actor_id: int | None, at: datetime) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.SESSION_CLOSED,
        entity_type="table_session",
        entity_id=session.id,
        restaurant_id=session.restaurant_id,
        actor_id=actor_id,
        table_session_id=session.id,
        payload={"table_id": session.table_id},
        timestamp=at,
    )
