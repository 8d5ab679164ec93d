"""
End-of-day sweep.

Completes every order still active from a previous business day and frees
the tables they held. Each restaurant is swept in its own unit of work, with
its own timezone deciding where the business day ends.
"""

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tabledesk.models import Order, Restaurant
from tabledesk.repositories import OrderRepository, TableRepository
from tabledesk.services.clock import Clock, business_day_start
from tabledesk.services.concurrency import unit_of_work
from tabledesk.services.domain.transition_policy import apply_order_transition
from tabledesk.services.events import NullNotifier, dispatch_after_commit
from tabledesk.services.events.domain_event import order_status_changed
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.config.constants import OrderStatus, TableStatus
from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.utils.exceptions import AppException

logger = get_logger(__name__)


@dataclass
class SweepReport:
    restaurants: int = 0
    orders_closed: int = 0
    tables_freed: int = 0
    order_ids: list[int] = field(default_factory=list)
    # restaurant_id -> error message, for restaurants whose sweep was rolled back
    failed: dict[int, str] = field(default_factory=dict)


class SweepService:
    """Closes out the previous business day."""

    def __init__(self, db: Session, clock: Clock, notifier: Notifier | None = None):
        self._db = db
        self._clock = clock
        self._notifier = notifier or NullNotifier()
        self._orders = OrderRepository(db)
        self._tables = TableRepository(db)

    def run(self, restaurant_id: int | None = None) -> SweepReport:
        """
        Sweep one restaurant, or all of them.

        A restaurant whose unit of work fails is rolled back and listed in
        ``failed``; the others are still swept.
        """
        query = select(Restaurant.id).order_by(Restaurant.id)
        if restaurant_id is not None:
            query = query.where(Restaurant.id == restaurant_id)
        restaurant_ids = list(self._db.scalars(query).all())

        report = SweepReport()
        for rid in restaurant_ids:
            try:
                closed, freed = self.sweep_restaurant(rid)
            except (AppException, SQLAlchemyError) as e:
                logger.error("Restaurant sweep failed", restaurant_id=rid, error=str(e), exc_info=True)
                report.failed[rid] = str(getattr(e, "detail", e))
                continue
            report.restaurants += 1
            report.orders_closed += len(closed)
            report.tables_freed += freed
            report.order_ids.extend(closed)

        logger.info(
            "End-of-day sweep finished",
            restaurants=report.restaurants,
            orders_closed=report.orders_closed,
            tables_freed=report.tables_freed,
            failed=sorted(report.failed),
        )
        return report

    def sweep_restaurant(self, restaurant_id: int) -> tuple[list[int], int]:
        """
        Complete stale orders of one restaurant and free their tables.

        Uses the same locking reads and transition mechanism as interactive
        updates (actor recorded as None), so it cannot interleave with a
        live kitchen or payment update on the same rows.

        Returns the closed order ids and the number of tables freed.
        """
        restaurant = self._db.get(Restaurant, restaurant_id)
        now = self._clock.now()
        cutoff = business_day_start(now, restaurant.timezone)
        events = []

        with unit_of_work(self._db, "end_of_day_sweep"):
            # Tables first, then orders: the lock order every other writer uses
            table_ids = sorted({
                o.table_id
                for o in self._orders.stale_active(restaurant_id, cutoff)
                if o.table_id is not None
            })
            tables = self._tables.lock_many(table_ids, restaurant_id)
            orders: list[Order] = list(self._orders.stale_active(restaurant_id, cutoff, lock=True))

            for order in orders:
                old_status = apply_order_transition(
                    order, OrderStatus.COMPLETED, actor_id=None, at=now, force=True
                )
                events.append(order_status_changed(order, old_status, OrderStatus.COMPLETED, None, now))

            freed = 0
            for table in tables:
                if table.status != TableStatus.FREE:
                    table.status = TableStatus.FREE
                    freed += 1

        closed_ids = [o.id for o in orders]
        if closed_ids:
            logger.info(
                "Stale orders completed",
                restaurant_id=restaurant_id,
                cutoff=cutoff.isoformat(),
                order_count=len(closed_ids),
                tables_freed=freed,
            )
        dispatch_after_commit(self._notifier, events)
        return closed_ids, freed
