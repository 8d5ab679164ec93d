"""
HTTP routers. Each router is a thin controller over one domain service.
"""

from .orders import router as orders_router
from .portal import router as portal_router
from .tables import router as tables_router
from .transactions import router as transactions_router

__all__ = ["orders_router", "portal_router", "tables_router", "transactions_router"]
