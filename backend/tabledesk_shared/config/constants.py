"""
Centralized constants for the backend application.

Usage:
    from tabledesk_shared.config.constants import Roles, OrderStatus, ORDER_TRANSITIONS

    if ctx.role in MANAGEMENT_ROLES:
        ...

    if order.status == OrderStatus.PENDING:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Actor role constants."""

    OWNER: Final[str] = "owner"
    MANAGER: Final[str] = "manager"
    WAITER: Final[str] = "waiter"
    KITCHEN: Final[str] = "kitchen"
    CASHIER: Final[str] = "cashier"
    CLIENT: Final[str] = "client"  # Guest device on the table portal

    STAFF: Final[list[str]] = [OWNER, MANAGER, WAITER, KITCHEN, CASHIER]
    ALL: Final[list[str]] = [OWNER, MANAGER, WAITER, KITCHEN, CASHIER, CLIENT]


# Role groups for common access patterns
MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.OWNER, Roles.MANAGER})
ORDER_TAKING_ROLES: Final[frozenset[str]] = frozenset({Roles.OWNER, Roles.MANAGER, Roles.WAITER})
SETTLEMENT_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.OWNER, Roles.MANAGER, Roles.CASHIER, Roles.WAITER}
)


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus:
    """Order status constants."""

    PENDING: Final[str] = "pending"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [PENDING, PREPARING, READY, SERVED, COMPLETED, CANCELLED]
    # Still moving through the kitchen; blocks session close
    IN_PIPELINE: Final[list[str]] = [PENDING, PREPARING, READY]
    # Swept at end of day
    ACTIVE: Final[list[str]] = [PENDING, PREPARING, READY, SERVED]
    # Counted in a session's amount due
    CLOSED: Final[list[str]] = [COMPLETED, CANCELLED]
    KITCHEN_VISIBLE: Final[list[str]] = [PENDING, PREPARING, READY]

    # Older clients send "in_progress" for the preparing state
    ALIASES: Final[dict[str, str]] = {"in_progress": PREPARING}


class OrderItemStatus:
    """Order item (kitchen line) status constants."""

    PENDING: Final[str] = "pending"
    COOKING: Final[str] = "cooking"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [PENDING, COOKING, READY, SERVED, CANCELLED]


class PaymentStatus:
    """Order payment status constants."""

    UNPAID: Final[str] = "unpaid"
    PARTIAL: Final[str] = "partial"
    PAID: Final[str] = "paid"
    REFUNDED: Final[str] = "refunded"

    ALL: Final[list[str]] = [UNPAID, PARTIAL, PAID, REFUNDED]


class TableStatus:
    """Physical table status constants."""

    FREE: Final[str] = "free"
    OCCUPIED: Final[str] = "occupied"
    RESERVED: Final[str] = "reserved"
    NEEDS_CLEANING: Final[str] = "needs_cleaning"

    ALL: Final[list[str]] = [FREE, OCCUPIED, RESERVED, NEEDS_CLEANING]


class SessionStatus:
    """Table session status constants."""

    WAITING_CONFIRMATION: Final[str] = "waiting-confirmation"
    ACTIVE: Final[str] = "active"
    WAITING_PAYMENT: Final[str] = "waiting-payment"
    CLOSED: Final[str] = "closed"

    ALL: Final[list[str]] = [WAITING_CONFIRMATION, ACTIVE, WAITING_PAYMENT, CLOSED]
    OPEN: Final[list[str]] = [WAITING_CONFIRMATION, ACTIVE, WAITING_PAYMENT]


class SessionStarter:
    """Who opened a table session."""

    CLIENT: Final[str] = "client"
    WAITER: Final[str] = "waiter"


class OrderSource:
    """Channel an order came in through."""

    WAITER: Final[str] = "waiter"
    PORTAL: Final[str] = "portal"
    ONLINE: Final[str] = "online"
    POS: Final[str] = "pos"

    ALL: Final[list[str]] = [WAITER, PORTAL, ONLINE, POS]
    STAFF: Final[list[str]] = [WAITER, ONLINE, POS]


class PaymentMethod:
    """Transaction payment method constants."""

    CASH: Final[str] = "cash"
    CARD: Final[str] = "card"
    TRANSFER: Final[str] = "transfer"
    ONLINE: Final[str] = "online"
    OTHER: Final[str] = "other"

    ALL: Final[list[str]] = [CASH, CARD, TRANSFER, ONLINE, OTHER]


class TransactionStatus:
    """Transaction status constants. Settlements only ever record paid."""

    PAID: Final[str] = "paid"


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states])
ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.PENDING: [
        OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED, OrderStatus.CANCELLED,
    ],
    OrderStatus.PREPARING: [
        OrderStatus.READY, OrderStatus.SERVED, OrderStatus.PENDING, OrderStatus.CANCELLED,
    ],
    OrderStatus.READY: [OrderStatus.SERVED, OrderStatus.PREPARING, OrderStatus.COMPLETED],
    OrderStatus.SERVED: [OrderStatus.COMPLETED, OrderStatus.READY],
    OrderStatus.COMPLETED: [],  # Terminal state
    OrderStatus.CANCELLED: [],  # Terminal state
}

# Valid order item status transitions
ORDER_ITEM_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderItemStatus.PENDING: [
        OrderItemStatus.COOKING, OrderItemStatus.READY,
        OrderItemStatus.SERVED, OrderItemStatus.CANCELLED,
    ],
    OrderItemStatus.COOKING: [
        OrderItemStatus.READY, OrderItemStatus.SERVED,
        OrderItemStatus.PENDING, OrderItemStatus.CANCELLED,
    ],
    OrderItemStatus.READY: [OrderItemStatus.SERVED, OrderItemStatus.COOKING],
    OrderItemStatus.SERVED: [],  # Terminal state
    OrderItemStatus.CANCELLED: [],  # Terminal state
}

# Staff-driven table status changes. Session close, item merges and the
# end-of-day sweep set table status directly.
TABLE_TRANSITIONS: Final[dict[str, list[str]]] = {
    TableStatus.FREE: [TableStatus.RESERVED, TableStatus.OCCUPIED],
    TableStatus.RESERVED: [TableStatus.OCCUPIED, TableStatus.FREE],
    TableStatus.OCCUPIED: [TableStatus.NEEDS_CLEANING],
    TableStatus.NEEDS_CLEANING: [TableStatus.FREE],
}


# =============================================================================
# Validation Limits
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99
    MAX_ITEMS_PER_ORDER: Final[int] = 100

    MAX_NOTES_LENGTH: Final[int] = 500
    MAX_REFERENCE_LENGTH: Final[int] = 120
    MAX_DEVICE_ID_LENGTH: Final[int] = 120
    MAX_TABLE_NAME_LENGTH: Final[int] = 50

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200


# =============================================================================
# Validation Helpers
# =============================================================================


def normalize_order_status(status: str) -> str:
    """Map legacy aliases (e.g. "in_progress") onto the canonical order status."""
    value = status.strip().lower()
    return OrderStatus.ALIASES.get(value, value)
