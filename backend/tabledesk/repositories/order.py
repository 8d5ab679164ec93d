"""
Order Repository - data access for orders and their items.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import selectinload

from tabledesk.models import Order, OrderItem
from tabledesk_shared.config.constants import OrderStatus, PaymentStatus
from tabledesk_shared.utils.exceptions import ForbiddenError, NotFoundError

from .base import RepositoryFilters, TenantRepository, for_update


@dataclass
class OrderFilters(RepositoryFilters):
    """Filters specific to orders."""

    statuses: list[str] | None = None
    opened_since: datetime | None = None
    table_session_id: int | None = None
    # Waiter view: own orders plus unclaimed ones
    visible_to_waiter_id: int | None = None


class OrderRepository(TenantRepository[Order]):
    model = Order
    entity_name = "Order"

    def _base_query(self, restaurant_id: int) -> Select:
        return (
            select(Order)
            .where(Order.restaurant_id == restaurant_id)
            .options(selectinload(Order.items))
        )

    def find_all(self, restaurant_id: int, filters: OrderFilters | None = None) -> Sequence[Order]:
        filters = filters or OrderFilters()
        query = self._base_query(restaurant_id)

        if filters.statuses:
            query = query.where(Order.status.in_(filters.statuses))
        if filters.opened_since is not None:
            query = query.where(Order.opened_at >= filters.opened_since)
        if filters.table_session_id is not None:
            query = query.where(Order.table_session_id == filters.table_session_id)
        if filters.visible_to_waiter_id is not None:
            query = query.where(
                or_(Order.waiter_id == filters.visible_to_waiter_id, Order.waiter_id.is_(None))
            )

        query = (
            query.order_by(Order.opened_at.desc(), Order.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        return self._db.scalars(query).all()

    def for_session(self, session_id: int, restaurant_id: int) -> Sequence[Order]:
        query = self._base_query(restaurant_id).where(
            Order.table_session_id == session_id
        ).order_by(Order.id)
        return self._db.scalars(query).all()

    def latest_pending_for_session(
        self, session_id: int, restaurant_id: int, lock: bool = False
    ) -> Order | None:
        """The order new portal items are merged into, if the kitchen has not picked it up."""
        query = (
            self._base_query(restaurant_id)
            .where(
                Order.table_session_id == session_id,
                Order.status == OrderStatus.PENDING,
            )
            .order_by(Order.id.desc())
            .limit(1)
        )
        if lock:
            query = for_update(query, Order)
        return self._db.scalar(query)

    def _unsettled(self, restaurant_id: int) -> Select:
        return self._base_query(restaurant_id).where(
            Order.payment_status != PaymentStatus.PAID,
            Order.status != OrderStatus.CANCELLED,
        ).order_by(Order.id)

    def unsettled_for_session(
        self, session_id: int, restaurant_id: int, lock: bool = False
    ) -> Sequence[Order]:
        """Orders of a session that still need paying, in id order."""
        query = self._unsettled(restaurant_id).where(Order.table_session_id == session_id)
        if lock:
            query = for_update(query, Order)
        return self._db.scalars(query).all()

    def unsettled_by_ids(
        self, order_ids: list[int], restaurant_id: int, lock: bool = False
    ) -> Sequence[Order]:
        query = self._unsettled(restaurant_id).where(Order.id.in_(order_ids))
        if lock:
            query = for_update(query, Order)
        return self._db.scalars(query).all()

    def stale_active(
        self, restaurant_id: int, opened_before: datetime, lock: bool = False
    ) -> Sequence[Order]:
        """Orders still in an active status that were opened before a business-day cutoff."""
        query = self._base_query(restaurant_id).where(
            Order.status.in_(OrderStatus.ACTIVE),
            Order.opened_at < opened_before,
        ).order_by(Order.id)
        if lock:
            query = for_update(query, Order)
        return self._db.scalars(query).all()

    def count_active_for_table(self, table_id: int, restaurant_id: int) -> int:
        return self._db.scalar(
            select(func.count(Order.id)).where(
                Order.restaurant_id == restaurant_id,
                Order.table_id == table_id,
                Order.status.in_(OrderStatus.ACTIVE),
            )
        )

    def session_total_due(self, session_id: int, restaurant_id: int) -> Decimal:
        """Sum of totals of the session's orders that are not completed or cancelled."""
        total = self._db.scalar(
            select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.restaurant_id == restaurant_id,
                Order.table_session_id == session_id,
                Order.status.not_in(OrderStatus.CLOSED),
            )
        )
        return Decimal(str(total)).quantize(Decimal("0.01"))


class OrderItemRepository(TenantRepository[OrderItem]):
    """Items carry no restaurant_id; they are scoped through their order."""

    model = OrderItem
    entity_name = "Order item"

    def _base_query(self, restaurant_id: int) -> Select:
        return (
            select(OrderItem)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.restaurant_id == restaurant_id)
        )

    def _owner_of(self, entity_id: int) -> int | None:
        return self._db.scalar(
            select(Order.restaurant_id)
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(OrderItem.id == entity_id)
        )

    def get_order_id(self, item_id: int, restaurant_id: int) -> int:
        """Parent order id of an item (without loading or locking either row)."""
        order_id = self._db.scalar(
            select(OrderItem.order_id)
            .join(Order, Order.id == OrderItem.order_id)
            .where(OrderItem.id == item_id, Order.restaurant_id == restaurant_id)
        )
        if order_id is None:
            if self._owner_of(item_id) is None:
                raise NotFoundError(self.entity_name, item_id)
            raise ForbiddenError("access this order item", entity_id=item_id, restaurant_id=restaurant_id)
        return order_id
