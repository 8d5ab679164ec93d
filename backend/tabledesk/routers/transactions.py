"""
Transactions router.
Settlement of a table session or an order group, and transaction lookup.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tabledesk.routers.deps import current_actor, get_clock, get_db, get_notifier
from tabledesk.services.clock import Clock
from tabledesk.services.context import ActorContext
from tabledesk.services.domain import PaymentService
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.utils.schemas import SettlementRequest, SettlementResponse, TransactionOutput

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


def get_payment_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(db, clock, notifier)


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
def settle(
    body: SettlementRequest,
    ctx: ActorContext = Depends(current_actor),
    service: PaymentService = Depends(get_payment_service),
) -> SettlementResponse:
    """
    Record one payment for every unpaid order of a session (closing it) or
    of an explicit order group.
    """
    result = service.settle(
        ctx,
        body.amount,
        method=body.method,
        table_session_id=body.table_session_id,
        order_ids=body.order_ids,
        reference=body.reference,
    )
    return SettlementResponse(
        transaction=TransactionOutput.model_validate(result.transaction),
        settled_order_ids=[o.id for o in result.settled_orders],
        total_due=result.total_due,
        session_closed=result.session_closed,
    )


@router.get("", response_model=list[TransactionOutput])
def list_transactions(
    limit: int = Query(default=0, ge=0),
    offset: int = Query(default=0, ge=0),
    ctx: ActorContext = Depends(current_actor),
    service: PaymentService = Depends(get_payment_service),
) -> list[TransactionOutput]:
    return [
        TransactionOutput.model_validate(t)
        for t in service.list_transactions(ctx, limit=limit, offset=offset)
    ]


@router.get("/{transaction_id}", response_model=TransactionOutput)
def get_transaction(
    transaction_id: int,
    ctx: ActorContext = Depends(current_actor),
    service: PaymentService = Depends(get_payment_service),
) -> TransactionOutput:
    return TransactionOutput.model_validate(service.get_transaction(ctx, transaction_id))
