"""
Repositories - data access with restaurant isolation and locking reads.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)
        ↓
    Repository (data access)  ← YOU ARE HERE
        ↓
    Model (entity)
"""

from .base import RepositoryFilters, TenantRepository, for_update
from .order import OrderFilters, OrderItemRepository, OrderRepository
from .product import ProductRepository
from .table import TableRepository, TableSessionRepository

__all__ = [
    "RepositoryFilters",
    "TenantRepository",
    "for_update",
    "OrderFilters",
    "OrderItemRepository",
    "OrderRepository",
    "ProductRepository",
    "TableRepository",
    "TableSessionRepository",
]
