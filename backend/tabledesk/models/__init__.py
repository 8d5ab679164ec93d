"""
SQLAlchemy ORM Models Package.

- base: Base class, TimestampMixin, SoftDeleteMixin
- restaurant: Restaurant, FloorPlan, User
- catalog: Product
- table: Table, TableSession
- order: Order, OrderItem, OrderStatusHistory
- billing: Transaction
"""

from .base import Base, TimestampMixin
from .restaurant import Restaurant, FloorPlan, User
from .catalog import Product
from .table import Table, TableSession
from .order import Order, OrderItem, OrderStatusHistory
from .billing import Transaction

__all__ = [
    "Base",
    "TimestampMixin",
    "Restaurant",
    "FloorPlan",
    "User",
    "Product",
    "Table",
    "TableSession",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Transaction",
]
