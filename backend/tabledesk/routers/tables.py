"""
Tables router.
Table management, status changes and staff-side session close.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tabledesk.routers.deps import current_actor, get_clock, get_db, get_notifier
from tabledesk.services.clock import Clock
from tabledesk.services.context import ActorContext
from tabledesk.services.domain import TableService, TableSessionService
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.utils.schemas import (
    CreateTableRequest,
    SessionOutput,
    TableOutput,
    UpdateTableRequest,
    UpdateTableStatusRequest,
)

router = APIRouter(prefix="/api/v1/tables", tags=["tables"])


@router.get("", response_model=list[TableOutput])
def list_tables(
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
) -> list[TableOutput]:
    return [TableOutput.model_validate(t) for t in TableService(db).list_tables(ctx)]


@router.post("", response_model=TableOutput, status_code=status.HTTP_201_CREATED)
def create_table(
    body: CreateTableRequest,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TableOutput:
    """Add a table; it gets a fresh QR code and starts free."""
    table = TableService(db, clock).create_table(
        ctx, body.name, capacity=body.capacity, floor_plan_id=body.floor_plan_id
    )
    return TableOutput.model_validate(table)


@router.get("/{table_id}", response_model=TableOutput)
def get_table(
    table_id: int,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
) -> TableOutput:
    return TableOutput.model_validate(TableService(db).get_table(ctx, table_id))


@router.patch("/{table_id}", response_model=TableOutput)
def update_table(
    table_id: int,
    body: UpdateTableRequest,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TableOutput:
    table = TableService(db, clock).update_table(ctx, table_id, body.model_dump(exclude_unset=True))
    return TableOutput.model_validate(table)


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(
    table_id: int,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> None:
    """Deactivate a table with no open session and no active orders."""
    TableService(db, clock).delete_table(ctx, table_id)


@router.patch("/{table_id}/status", response_model=TableOutput)
def update_table_status(
    table_id: int,
    body: UpdateTableStatusRequest,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
) -> TableOutput:
    table = TableService(db).update_status(ctx, table_id, body.status)
    return TableOutput.model_validate(table)


@router.post("/{table_id}/session/{session_id}/close", response_model=SessionOutput)
def close_table_session(
    table_id: int,
    session_id: int,
    ctx: ActorContext = Depends(current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> SessionOutput:
    """Close a table session on behalf of the guests."""
    session = TableSessionService(db, clock, notifier).close(ctx, session_id, table_id=table_id)
    return SessionOutput.model_validate(session)
