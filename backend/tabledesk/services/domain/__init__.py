"""
Domain Services - business logic of the order lifecycle.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from tabledesk.services.domain import OrderService

    service = OrderService(db, clock, notifier)
    order = service.create_order(ctx, items, table_id=3)
"""

from .order_service import OrderService, PortalSubmission
from .payment_service import PaymentService, SettlementResult
from .session_service import SessionSummary, TableSessionService
from .sweep_service import SweepReport, SweepService
from .table_service import TableService

__all__ = [
    "OrderService",
    "PortalSubmission",
    "PaymentService",
    "SettlementResult",
    "SessionSummary",
    "TableSessionService",
    "SweepReport",
    "SweepService",
    "TableService",
]
