"""
Table Domain Service.

Table management (create, rename, move between floor plans, deactivate) and
staff-driven status changes (reserve, seat, mark for cleaning, free).
"""

from typing import Sequence

from sqlalchemy.orm import Session

from tabledesk.models import FloorPlan, Table
from tabledesk.repositories import OrderRepository, TableRepository, TableSessionRepository
from tabledesk.services.clock import Clock, SystemClock
from tabledesk.services.codes import allocate_code, random_code
from tabledesk.services.concurrency import unit_of_work
from tabledesk.services.context import ActorContext
from tabledesk.services.domain.transition_policy import ensure_table_transition
from tabledesk_shared.config.constants import MANAGEMENT_ROLES, Roles, TableStatus
from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import ConflictError, ValidationError

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"name", "capacity", "floor_plan_id"})


class TableService:
    """Domain service for tables."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self._db = db
        self._clock = clock or SystemClock()
        self._tables = TableRepository(db)
        self._sessions = TableSessionRepository(db)
        self._orders = OrderRepository(db)

    def list_tables(self, ctx: ActorContext) -> Sequence[Table]:
        ctx.require_role(Roles.STAFF, "list tables")
        return self._tables.find_all(ctx.restaurant_id)

    def get_table(self, ctx: ActorContext, table_id: int) -> Table:
        ctx.require_role(Roles.STAFF, "view tables")
        return self._tables.get(table_id, ctx.restaurant_id)

    def _check_floor_plan(self, floor_plan_id: int | None, restaurant_id: int) -> None:
        if floor_plan_id is None:
            return
        floor_plan = self._db.get(FloorPlan, floor_plan_id)
        if floor_plan is None or floor_plan.restaurant_id != restaurant_id:
            raise ValidationError(
                "Floor plan does not belong to this restaurant",
                context={"floor_plan_id": floor_plan_id},
            )

    def _new_table_code(self, restaurant_id: int) -> str:
        return allocate_code(
            lambda: f"T-{restaurant_id}-{random_code(settings.table_code_length)}",
            self._tables.code_exists,
            "table code",
        )

    def create_table(
        self,
        ctx: ActorContext,
        name: str,
        capacity: int = 4,
        floor_plan_id: int | None = None,
    ) -> Table:
        """
        Add a table. It starts free and gets a fresh QR code of the form
        ``T-<restaurant_id>-<random>``.
        """
        ctx.require_role(MANAGEMENT_ROLES, "create tables")
        if capacity < 1:
            raise ValidationError("Capacity must be at least 1", context={"capacity": capacity})

        with unit_of_work(self._db, "create_table"):
            self._check_floor_plan(floor_plan_id, ctx.restaurant_id)
            table = self._tables.add(
                Table(
                    restaurant_id=ctx.restaurant_id,
                    floor_plan_id=floor_plan_id,
                    name=name,
                    code=self._new_table_code(ctx.restaurant_id),
                    capacity=capacity,
                    status=TableStatus.FREE,
                )
            )

        logger.info("Table created", table_id=table.id, code=table.code, actor_id=ctx.actor_id)
        return table

    def update_table(self, ctx: ActorContext, table_id: int, changes: dict) -> Table:
        """Change a table's name, capacity or floor plan. The QR code never changes."""
        ctx.require_role(MANAGEMENT_ROLES, "edit tables")
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "These table fields cannot be edited", context={"fields": sorted(unknown)}
            )
        if "name" in changes and not changes["name"]:
            raise ValidationError("A table needs a name")
        if "capacity" in changes and (changes["capacity"] is None or changes["capacity"] < 1):
            raise ValidationError("Capacity must be at least 1", context={"capacity": changes["capacity"]})

        with unit_of_work(self._db, "update_table"):
            table = self._tables.get(table_id, ctx.restaurant_id, lock=True)
            if "floor_plan_id" in changes:
                self._check_floor_plan(changes["floor_plan_id"], ctx.restaurant_id)
            for field, value in changes.items():
                setattr(table, field, value)

        logger.info("Table updated", table_id=table_id, fields=sorted(changes), actor_id=ctx.actor_id)
        return table

    def delete_table(self, ctx: ActorContext, table_id: int) -> None:
        """
        Deactivate a table. Its sessions and orders stay on record and its
        code is never handed out again.

        Raises:
            ConflictError: the table has an open session or active orders.
        """
        ctx.require_role(MANAGEMENT_ROLES, "delete tables")

        with unit_of_work(self._db, "delete_table"):
            table = self._tables.get(table_id, ctx.restaurant_id, lock=True)
            if self._sessions.latest_open_for_table(table.id, ctx.restaurant_id) is not None:
                raise ConflictError(
                    "Table has an open session", context={"table_id": table.id}
                )
            if self._orders.count_active_for_table(table.id, ctx.restaurant_id):
                raise ConflictError(
                    "Table has active orders", context={"table_id": table.id}
                )
            table.soft_delete(ctx.actor_id, self._clock.now())

        logger.info("Table deleted", table_id=table_id, actor_id=ctx.actor_id)

    def update_status(self, ctx: ActorContext, table_id: int, new_status: str) -> Table:
        """
        Move a table along free -> reserved/occupied -> needs_cleaning -> free.

        Setting the current status again is a no-op.
        """
        ctx.require_role(Roles.STAFF, "change table status")

        with unit_of_work(self._db, "update_table_status"):
            table = self._tables.get(table_id, ctx.restaurant_id, lock=True)
            old_status = table.status
            if new_status == old_status:
                return table
            ensure_table_transition(old_status, new_status)
            table.status = new_status

        logger.info(
            "Table status updated",
            table_id=table_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=ctx.actor_id,
        )
        return table
