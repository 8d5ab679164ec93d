"""
Guest portal router.

Endpoints reached by scanning a table's QR code. There is no staff identity
here: the table code resolves the restaurant and the device id is the only
credential, checked against the session's device lock.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tabledesk.models import Restaurant
from tabledesk.repositories import ProductRepository, TableRepository
from tabledesk.routers.deps import get_clock, get_db, get_notifier
from tabledesk.services.clock import Clock
from tabledesk.services.context import ActorContext
from tabledesk.services.domain import OrderService, TableSessionService
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.utils.schemas import (
    OrderOutput,
    PortalDeviceRequest,
    PortalOrderRequest,
    PortalOrderResponse,
    PortalTableOutput,
    ProductOutput,
    SessionOutput,
)

router = APIRouter(prefix="/api/v1/portal", tags=["portal"])


def _guest(db: Session, table_code: str, device_id: str):
    table = TableRepository(db).get_by_code(table_code)
    return table, ActorContext.guest(table.restaurant_id, device_id)


@router.get("/{table_code}", response_model=PortalTableOutput)
def get_table_session(
    table_code: str,
    device_id: str = Query(min_length=1),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> PortalTableOutput:
    """
    The table as the guest portal shows it: restaurant, menu, and the
    current session with its orders and the amount still due.
    """
    table, ctx = _guest(db, table_code, device_id)
    restaurant = db.get(Restaurant, table.restaurant_id)
    view = PortalTableOutput(
        table_name=table.name,
        restaurant_name=restaurant.name,
        currency=restaurant.currency,
        products=[
            ProductOutput.model_validate(p)
            for p in ProductRepository(db).find_available(table.restaurant_id)
        ],
    )

    service = TableSessionService(db, clock, notifier)
    session = service.current_for_table(ctx, table)
    if session is None:
        return view

    summary = service.get_summary(ctx, session.id, table_id=table.id)
    view.session = SessionOutput.model_validate(summary.session)
    view.orders = [OrderOutput.model_validate(o) for o in summary.orders]
    view.total_due = summary.total_due
    return view


@router.post("/{table_code}/order", response_model=PortalOrderResponse)
def submit_order(
    table_code: str,
    body: PortalOrderRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> PortalOrderResponse:
    """
    Submit the device's full cart. Opens a session on the first order and
    merges later submissions into the open pending order.
    """
    result = OrderService(db, clock, notifier).submit_portal_order(
        table_code, body.device_id, body.items, session_id=body.session_id
    )
    return PortalOrderResponse(
        session=SessionOutput.model_validate(result.session),
        order=OrderOutput.model_validate(result.order),
        created=result.created,
    )


@router.post("/{table_code}/session/{session_id}/request-payment", response_model=SessionOutput)
def request_payment(
    table_code: str,
    session_id: int,
    body: PortalDeviceRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> SessionOutput:
    table, ctx = _guest(db, table_code, body.device_id)
    session = TableSessionService(db, clock, notifier).request_payment(
        ctx, session_id, table_id=table.id
    )
    return SessionOutput.model_validate(session)


@router.post("/{table_code}/session/{session_id}/close", response_model=SessionOutput)
def close_session(
    table_code: str,
    session_id: int,
    body: PortalDeviceRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> SessionOutput:
    """Close the device's session. Every order must be paid and out of the kitchen."""
    session = TableSessionService(db, clock, notifier).close_by_code(
        table_code, body.device_id, session_id
    )
    return SessionOutput.model_validate(session)
