"""
Order and order item status transitions.

The adjacency maps live in ``tabledesk_shared.config.constants``. This module
is the only place that changes ``Order.status`` or writes
``OrderStatusHistory``: a rejected transition writes nothing, an accepted one
sets the status, appends exactly one history row and stamps ``closed_at``
when the order reaches a terminal status.
"""

from datetime import datetime

from tabledesk.models import Order, OrderItem, OrderStatusHistory
from tabledesk_shared.config.constants import (
    ORDER_ITEM_TRANSITIONS,
    ORDER_TRANSITIONS,
    TABLE_TRANSITIONS,
    OrderStatus,
    normalize_order_status,
)
from tabledesk_shared.utils.exceptions import InvalidTransitionError, ValidationError


def can_transition_order(from_status: str, to_status: str) -> bool:
    return to_status in ORDER_TRANSITIONS.get(from_status, [])


def can_transition_item(from_status: str, to_status: str) -> bool:
    return to_status in ORDER_ITEM_TRANSITIONS.get(from_status, [])


def can_transition_table(from_status: str, to_status: str) -> bool:
    return to_status in TABLE_TRANSITIONS.get(from_status, [])


def allowed_order_transitions(from_status: str) -> list[str]:
    """Statuses an order can move to next (empty for terminal statuses)."""
    return list(ORDER_TRANSITIONS.get(from_status, []))


def parse_order_status(value: str) -> str:
    """Canonical order status for user input, accepting legacy aliases."""
    status = normalize_order_status(value)
    if status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown order status '{value}'", context={"status": value})
    return status


def ensure_order_transition(from_status: str, to_status: str) -> None:
    if not can_transition_order(from_status, to_status):
        raise InvalidTransitionError("order", from_status, to_status)


def ensure_item_transition(from_status: str, to_status: str) -> None:
    if not can_transition_item(from_status, to_status):
        raise InvalidTransitionError("order item", from_status, to_status)


def ensure_table_transition(from_status: str, to_status: str) -> None:
    if not can_transition_table(from_status, to_status):
        raise InvalidTransitionError("table", from_status, to_status)


def record_initial_status(order: Order, actor_id: int | None, at: datetime) -> None:
    """First history entry, written when the order is created."""
    order.status_history.append(
        OrderStatusHistory(status=order.status, actor_id=actor_id, changed_at=at)
    )


def apply_order_transition(
    order: Order,
    new_status: str,
    actor_id: int | None,
    at: datetime,
    force: bool = False,
) -> str:
    """
    Move an order to ``new_status`` and return the previous status.

    ``force`` skips the edge check; only the end-of-day sweep uses it, to
    close orders that never reached served.
    """
    old_status = order.status
    if not force:
        ensure_order_transition(old_status, new_status)

    order.status = new_status
    order.status_history.append(
        OrderStatusHistory(status=new_status, actor_id=actor_id, changed_at=at)
    )
    if new_status in OrderStatus.CLOSED:
        order.closed_at = at
    return old_status


def apply_item_transition(item: OrderItem, new_status: str) -> str:
    """Move an item along the kitchen line and return the previous status."""
    old_status = item.status
    ensure_item_transition(old_status, new_status)
    item.status = new_status
    return old_status
