"""
Configuration module: Settings, logging, constants.
"""

from tabledesk_shared.config.settings import settings, get_settings, DATABASE_URL
from tabledesk_shared.config.logging import get_logger, setup_logging
from tabledesk_shared.config.constants import (
    Roles,
    OrderStatus,
    OrderItemStatus,
    PaymentStatus,
    TableStatus,
    SessionStatus,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Roles",
    "OrderStatus",
    "OrderItemStatus",
    "PaymentStatus",
    "TableStatus",
    "SessionStatus",
    "Limits",
]
