"""
Orders router.
Staff order creation, listing, edits, deletion, status changes and kitchen item updates.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tabledesk.routers.deps import current_actor, get_clock, get_db, get_notifier
from tabledesk.services.clock import Clock
from tabledesk.services.context import ActorContext
from tabledesk.services.domain import OrderService
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.utils.schemas import (
    CreateOrderRequest,
    OrderItemStatusOutput,
    OrderOutput,
    PortalItemInput,
    UpdateItemStatusRequest,
    UpdateOrderRequest,
    UpdateOrderStatusRequest,
)

router = APIRouter(prefix="/api/v1", tags=["orders"])


def get_order_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> OrderService:
    return OrderService(db, clock, notifier)


@router.post("/orders", response_model=OrderOutput, status_code=status.HTTP_201_CREATED)
def create_order(
    body: CreateOrderRequest,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Create an order with menu prices; the calling waiter owns it."""
    order = service.create_order(
        ctx,
        body.items,
        table_id=body.table_id,
        client_id=body.client_id,
        source=body.source,
        discount_amount=body.discount_amount,
        notes=body.notes,
    )
    return OrderOutput.model_validate(order)


@router.get("/orders", response_model=list[OrderOutput])
def list_orders(
    status_filter: list[str] | None = Query(default=None, alias="status"),
    limit: int = Query(default=0, ge=0),
    offset: int = Query(default=0, ge=0),
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[OrderOutput]:
    """
    Orders visible to the caller's role. Management sees everything; other
    staff see today's orders; waiters see their own and unclaimed ones.
    """
    orders = service.list_orders(ctx, statuses=status_filter, limit=limit, offset=offset)
    return [OrderOutput.model_validate(o) for o in orders]


@router.get("/orders/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    return OrderOutput.model_validate(service.get_order(ctx, order_id))


@router.patch("/orders/{order_id}", response_model=OrderOutput)
def update_order(
    order_id: int,
    body: UpdateOrderRequest,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Edit table, client, source, discount or notes of an open order."""
    order = service.update_order(ctx, order_id, body.model_dump(exclude_unset=True))
    return OrderOutput.model_validate(order)


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: int,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> None:
    """Delete an order without recorded payments, items included."""
    service.delete_order(ctx, order_id)


@router.put("/orders/{order_id}/items", response_model=OrderOutput)
def merge_order_items(
    order_id: int,
    items: list[PortalItemInput],
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Replace the item set of a pending order (in-progress items cannot shrink)."""
    return OrderOutput.model_validate(service.merge_items(ctx, order_id, items))


@router.patch("/orders/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """
    Change an order's status. Passing waiter_id claims the order; a claim
    held by another waiter is rejected with 409 and the holder's identity.
    """
    order = service.update_status(
        ctx,
        order_id,
        body.status,
        waiter_id=body.waiter_id,
        session_id=body.session_id,
    )
    return OrderOutput.model_validate(order)


@router.patch("/order-items/{item_id}/status", response_model=OrderItemStatusOutput)
def update_item_status(
    item_id: int,
    body: UpdateItemStatusRequest,
    ctx: ActorContext = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderItemStatusOutput:
    """Kitchen line update (pending -> cooking -> ready -> served)."""
    item, old_status = service.update_item_status(ctx, item_id, body.status)
    return OrderItemStatusOutput(
        order_item_id=item.id,
        order_id=item.order_id,
        old_status=old_status,
        status=item.status,
    )
