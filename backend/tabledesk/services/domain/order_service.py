"""
Order Domain Service.

Creates orders, merges guest carts into open orders and drives order and
item status changes. All writes of one call commit together or not at all;
events go out only after the commit.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from tabledesk.models import Order, OrderItem, Product, Restaurant, TableSession, User
from tabledesk.repositories import (
    OrderFilters,
    OrderItemRepository,
    OrderRepository,
    ProductRepository,
    TableRepository,
    TableSessionRepository,
)
from tabledesk.services.clock import Clock, business_day_start
from tabledesk.services.concurrency import unit_of_work
from tabledesk.services.context import ActorContext
from tabledesk.services.domain.session_service import TableSessionService
from tabledesk.services.domain.transition_policy import (
    apply_item_transition,
    apply_order_transition,
    parse_order_status,
    record_initial_status,
)
from tabledesk.services.events import NullNotifier, dispatch_after_commit
from tabledesk.services.events.domain_event import (
    order_created,
    order_item_status_changed,
    order_status_changed,
)
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.config.constants import (
    MANAGEMENT_ROLES,
    ORDER_TAKING_ROLES,
    OrderItemStatus,
    OrderSource,
    OrderStatus,
    PaymentStatus,
    Roles,
    SessionStatus,
    TableStatus,
)
from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.utils.exceptions import (
    AlreadyClaimedError,
    ConflictError,
    ItemAlreadyInProgressError,
    PriceMismatchError,
    ValidationError,
)
from tabledesk_shared.utils.schemas import OrderItemInput, PortalItemInput

logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

ORDER_EDITABLE_FIELDS = frozenset({"table_id", "client_id", "source", "discount_amount", "notes"})


def money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def recalculate_totals(order: Order, restaurant: Restaurant) -> None:
    """
    subtotal = sum of item totals; tax and service charge apply the
    restaurant's rates to the subtotal; total never goes below zero.
    """
    subtotal = sum((item.total_price for item in order.items), ZERO)
    order.subtotal = money(subtotal)
    order.tax_amount = money(order.subtotal * restaurant.tax_rate)
    order.service_charge = money(order.subtotal * restaurant.service_charge_rate)
    gross = order.subtotal + order.tax_amount + order.service_charge - (order.discount_amount or ZERO)
    order.total = max(ZERO, money(gross))


@dataclass
class PortalSubmission:
    """Result of a guest cart submission."""

    session: TableSession
    order: Order
    created: bool


class OrderService:
    """
    Domain service for order operations.

    Handles:
    - Staff order creation with menu prices
    - Guest cart submission and merging into the open order
    - Order status changes and waiter claims
    - Kitchen item status changes
    - Metadata edits and deletion
    - Role-based order listing
    """

    def __init__(self, db: Session, clock: Clock, notifier: Notifier | None = None):
        self._db = db
        self._clock = clock
        self._notifier = notifier or NullNotifier()
        self._orders = OrderRepository(db)
        self._items = OrderItemRepository(db)
        self._products = ProductRepository(db)
        self._tables = TableRepository(db)
        self._sessions = TableSessionRepository(db)
        self._session_service = TableSessionService(db, clock, self._notifier)

    def _restaurant(self, restaurant_id: int) -> Restaurant:
        return self._db.get(Restaurant, restaurant_id)

    def _load_products(self, product_ids: list[int], restaurant_id: int) -> dict[int, Product]:
        """Batch-load products, rejecting unknown or unavailable ones."""
        products = self._products.find_by_ids(product_ids, restaurant_id)
        for product_id in product_ids:
            product = products.get(product_id)
            if product is None or not product.is_available:
                raise ValidationError(
                    f"Product {product_id} is not available",
                    context={"product_id": product_id},
                )
        return products

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(
        self,
        ctx: ActorContext,
        items: list[OrderItemInput],
        table_id: int | None = None,
        client_id: int | None = None,
        source: str = OrderSource.WAITER,
        discount_amount: Decimal = ZERO,
        notes: str | None = None,
    ) -> Order:
        """
        Create a staff order. The acting waiter owns it; unit prices come
        from the menu, never from the caller.
        """
        ctx.require_role(ORDER_TAKING_ROLES, "create orders")
        if not items:
            raise ValidationError("An order needs at least one item")
        if source not in OrderSource.STAFF:
            raise ValidationError(f"Unknown order source '{source}'", context={"source": source})

        now = self._clock.now()
        with unit_of_work(self._db, "create_order"):
            products = self._load_products([i.product_id for i in items], ctx.restaurant_id)
            if table_id is not None:
                self._tables.get(table_id, ctx.restaurant_id)

            order = Order(
                restaurant_id=ctx.restaurant_id,
                table_id=table_id,
                client_id=client_id,
                waiter_id=ctx.actor_id,
                source=source,
                status=OrderStatus.PENDING,
                discount_amount=money(discount_amount),
                notes=notes,
                opened_at=now,
            )
            for line in items:
                order.items.append(
                    self._new_item(products[line.product_id], line.quantity, line.notes)
                )
            recalculate_totals(order, self._restaurant(ctx.restaurant_id))
            record_initial_status(order, ctx.actor_id, now)

            self._orders.add(order)
            events = [order_created(order, ctx.actor_id, now)]

        logger.info(
            "Order created",
            order_id=order.id,
            waiter_id=ctx.actor_id,
            table_id=table_id,
            item_count=len(items),
            total=str(order.total),
        )
        dispatch_after_commit(self._notifier, events)
        return order

    def _new_item(self, product: Product, quantity: int, notes: str | None) -> OrderItem:
        item = OrderItem(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            status=OrderItemStatus.PENDING,
            notes=notes,
        )
        item.reprice()
        return item

    # =========================================================================
    # Guest portal
    # =========================================================================

    def submit_portal_order(
        self,
        table_code: str,
        device_id: str,
        items: list[PortalItemInput],
        session_id: int | None = None,
    ) -> PortalSubmission:
        """
        Submit a guest cart from the table's QR portal.

        Resolves (or opens) the device's session, then merges the cart into
        the session's latest pending order, or creates a new portal order.
        Session, order and items commit together.
        """
        if not items:
            raise ValidationError("An order needs at least one item")
        table = self._tables.get_by_code(table_code)
        ctx = ActorContext.guest(table.restaurant_id, device_id)
        now = self._clock.now()

        with unit_of_work(self._db, "submit_portal_order"):
            session = self._session_service.resolve_or_create(ctx, table, device_id, session_id)
            order = self._orders.latest_pending_for_session(session.id, ctx.restaurant_id, lock=True)

            if order is None:
                order = self._create_portal_order(ctx, session, items, now)
                created = True
                events = [order_created(order, None, now)]
            else:
                self._merge(ctx, order, items)
                created = False
                events = []
            table.status = TableStatus.OCCUPIED

        logger.info(
            "Portal order submitted",
            order_id=order.id,
            session_id=session.id,
            table_id=table.id,
            created=created,
            total=str(order.total),
        )
        dispatch_after_commit(self._notifier, events)
        return PortalSubmission(session=session, order=order, created=created)

    def _create_portal_order(
        self, ctx: ActorContext, session: TableSession, items: list[PortalItemInput], now
    ) -> Order:
        if any(line.order_item_id is not None for line in items):
            raise ValidationError("A new order cannot reference existing items")

        products = self._load_products([line.product_id for line in items], ctx.restaurant_id)
        order = Order(
            restaurant_id=ctx.restaurant_id,
            table_id=session.table_id,
            table_session_id=session.id,
            waiter_id=None,
            source=OrderSource.PORTAL,
            status=OrderStatus.PENDING,
            opened_at=now,
        )
        for line in items:
            product = products[line.product_id]
            self._check_client_price(line, product)
            order.items.append(self._new_item(product, line.quantity, line.notes))

        recalculate_totals(order, self._restaurant(ctx.restaurant_id))
        record_initial_status(order, None, now)
        return self._orders.add(order)

    def _check_client_price(self, line: PortalItemInput, product: Product) -> None:
        if line.price is not None and money(line.price) != money(product.price):
            raise PriceMismatchError(product.id, line.price, product.price)

    def merge_items(self, ctx: ActorContext, order_id: int, items: list[PortalItemInput]) -> Order:
        """Merge a full item set into a pending order (staff-side edit)."""
        ctx.require_role(ORDER_TAKING_ROLES, "edit orders")
        with unit_of_work(self._db, "merge_items"):
            order = self._orders.get(order_id, ctx.restaurant_id)
            if order.table_id is not None:
                table = self._tables.get(order.table_id, ctx.restaurant_id, lock=True)
            else:
                table = None
            order = self._orders.get(order_id, ctx.restaurant_id, lock=True)
            self._merge(ctx, order, items)
            if table is not None:
                table.status = TableStatus.OCCUPIED
        return order

    def _merge(self, ctx: ActorContext, order: Order, items: list[PortalItemInput]) -> None:
        """
        Apply an incoming item set to ``order``:

        - items with order_item_id are updated (quantity, notes)
        - items without one are added as pending lines
        - stored items missing from the set are removed

        Only pending items may shrink or disappear. Any violation raises
        before the unit of work commits, so nothing is applied.
        """
        if not items:
            raise ValidationError(
                "An order needs at least one item; cancel the order instead",
                context={"order_id": order.id},
            )
        if order.status != OrderStatus.PENDING:
            raise ValidationError(
                "Only pending orders accept item changes",
                context={"order_id": order.id, "status": order.status},
            )

        existing = {item.id: item for item in order.items}
        incoming_ids = {line.order_item_id for line in items if line.order_item_id is not None}

        unknown = incoming_ids - existing.keys()
        if unknown:
            raise ValidationError(
                "Items do not belong to this order",
                context={"order_id": order.id, "order_item_ids": sorted(unknown)},
            )

        for item_id, item in existing.items():
            if item_id not in incoming_ids and item.status != OrderItemStatus.PENDING:
                raise ItemAlreadyInProgressError(item.id, item.status)

        new_product_ids = [line.product_id for line in items if line.order_item_id is None]
        products = self._load_products(new_product_ids, ctx.restaurant_id)

        for line in items:
            if line.order_item_id is None:
                continue
            item = existing[line.order_item_id]
            if line.quantity < item.quantity and item.status != OrderItemStatus.PENDING:
                raise ItemAlreadyInProgressError(item.id, item.status)
            item.quantity = line.quantity
            item.notes = line.notes
            item.reprice()

        for item_id, item in existing.items():
            if item_id not in incoming_ids:
                order.items.remove(item)

        for line in items:
            if line.order_item_id is None:
                product = products[line.product_id]
                self._check_client_price(line, product)
                order.items.append(self._new_item(product, line.quantity, line.notes))

        recalculate_totals(order, self._restaurant(ctx.restaurant_id))
        self._db.flush()

        logger.info(
            "Order items merged",
            order_id=order.id,
            item_count=len(order.items),
            total=str(order.total),
        )

    # =========================================================================
    # Status changes
    # =========================================================================

    def update_status(
        self,
        ctx: ActorContext,
        order_id: int,
        new_status: str,
        waiter_id: int | None = None,
        session_id: int | None = None,
    ) -> Order:
        """
        Change an order's status, optionally claiming it for a waiter.

        The claim check and the transition check run on the same locked read
        of the order, so two waiters claiming at once cannot both win.

        Raises:
            AlreadyClaimedError: another waiter already holds the order.
            InvalidTransitionError: the status graph does not allow the move.
        """
        ctx.require_role(Roles.STAFF, "change order status")
        new_status = parse_order_status(new_status)
        now = self._clock.now()

        with unit_of_work(self._db, "update_order_status"):
            order = self._orders.get(order_id, ctx.restaurant_id, lock=True)

            if waiter_id is not None and order.waiter_id is not None and order.waiter_id != waiter_id:
                holder = self._db.get(User, order.waiter_id)
                raise AlreadyClaimedError(
                    order.id, order.waiter_id, holder.name if holder else None,
                    requested_by=waiter_id,
                )

            old_status = apply_order_transition(order, new_status, ctx.actor_id, now)

            if waiter_id is not None:
                order.waiter_id = waiter_id
                self._activate_session(ctx, order, session_id)

            events = [order_status_changed(order, old_status, new_status, ctx.actor_id, now)]

        logger.info(
            "Order status updated",
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=ctx.actor_id,
            waiter_id=waiter_id,
        )
        dispatch_after_commit(self._notifier, events)
        return order

    def _activate_session(self, ctx: ActorContext, order: Order, session_id: int | None) -> None:
        """A claimed order confirms a session still waiting for staff."""
        target_id = session_id if session_id is not None else order.table_session_id
        if target_id is None:
            return
        session = self._sessions.find_by_id(target_id, ctx.restaurant_id)
        if session is not None and session.status == SessionStatus.WAITING_CONFIRMATION:
            session.status = SessionStatus.ACTIVE
            if session.assigned_waiter_id is None:
                session.assigned_waiter_id = order.waiter_id
            logger.info("Session confirmed by waiter", session_id=session.id, waiter_id=order.waiter_id)

    def update_item_status(self, ctx: ActorContext, item_id: int, new_status: str) -> tuple[OrderItem, str]:
        """
        Move one kitchen line along its graph. Locks the parent order so the
        change serializes with settlement and other status changes.

        Returns the item and its previous status.
        """
        ctx.require_role(Roles.STAFF, "change item status")
        now = self._clock.now()

        with unit_of_work(self._db, "update_item_status"):
            order_id = self._items.get_order_id(item_id, ctx.restaurant_id)
            order = self._orders.get(order_id, ctx.restaurant_id, lock=True)
            item = next(i for i in order.items if i.id == item_id)

            old_status = apply_item_transition(item, new_status)
            events = [order_item_status_changed(item, order, old_status, new_status, ctx.actor_id, now)]

        logger.info(
            "Order item status updated",
            order_item_id=item_id,
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor_id=ctx.actor_id,
        )
        dispatch_after_commit(self._notifier, events)
        return item, old_status

    # =========================================================================
    # Metadata edits and deletion
    # =========================================================================

    def update_order(self, ctx: ActorContext, order_id: int, changes: dict) -> Order:
        """
        Edit an open order's table, client, source, discount or notes.

        A session order stays on its session's table. A discount change
        recomputes the totals.
        """
        ctx.require_role(ORDER_TAKING_ROLES, "edit orders")
        unknown = set(changes) - ORDER_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "These order fields cannot be edited", context={"fields": sorted(unknown)}
            )
        for field in ("source", "discount_amount"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be cleared", context={"field": field})
        if "source" in changes and changes["source"] not in OrderSource.STAFF:
            raise ValidationError(
                f"Unknown order source '{changes['source']}'", context={"source": changes["source"]}
            )

        with unit_of_work(self._db, "update_order"):
            order = self._orders.get(order_id, ctx.restaurant_id, lock=True)
            if order.status in OrderStatus.CLOSED or order.payment_status == PaymentStatus.PAID:
                raise ValidationError(
                    "Closed or paid orders cannot be edited",
                    context={"order_id": order.id, "status": order.status},
                )
            if "table_id" in changes and changes["table_id"] != order.table_id:
                if order.table_session_id is not None:
                    raise ValidationError(
                        "A session order cannot move to another table",
                        context={"order_id": order.id},
                    )
                if changes["table_id"] is not None:
                    self._tables.get(changes["table_id"], ctx.restaurant_id)
            if "discount_amount" in changes:
                changes["discount_amount"] = money(changes["discount_amount"])

            for field, value in changes.items():
                setattr(order, field, value)
            if "discount_amount" in changes:
                recalculate_totals(order, self._restaurant(ctx.restaurant_id))

        logger.info(
            "Order updated",
            order_id=order_id,
            fields=sorted(changes),
            total=str(order.total),
            actor_id=ctx.actor_id,
        )
        return order

    def delete_order(self, ctx: ActorContext, order_id: int) -> None:
        """
        Delete an order with its items and status history.

        Raises:
            ConflictError: payments were already recorded against the order.
        """
        ctx.require_role(MANAGEMENT_ROLES, "delete orders")

        with unit_of_work(self._db, "delete_order"):
            order = self._orders.get(order_id, ctx.restaurant_id, lock=True)
            if order.transactions:
                raise ConflictError(
                    "Order has recorded payments and cannot be deleted",
                    context={"order_id": order.id},
                )
            self._db.delete(order)

        logger.info("Order deleted", order_id=order_id, actor_id=ctx.actor_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, ctx: ActorContext, order_id: int) -> Order:
        return self._orders.get(order_id, ctx.restaurant_id)

    def list_orders(
        self,
        ctx: ActorContext,
        statuses: list[str] | None = None,
        limit: int = 0,
        offset: int = 0,
    ) -> Sequence[Order]:
        """
        Orders visible to the caller:

        - owner / manager: everything
        - other staff: orders opened in the current business day
        - kitchen: pending, preparing and ready unless a filter is given
        - waiter: own orders plus unclaimed ones
        """
        ctx.require_role(Roles.STAFF, "list orders")
        filters = OrderFilters(limit=limit, offset=offset)

        if statuses:
            filters.statuses = [parse_order_status(s) for s in statuses]
        elif ctx.role == Roles.KITCHEN:
            filters.statuses = list(OrderStatus.KITCHEN_VISIBLE)

        if ctx.role not in MANAGEMENT_ROLES:
            restaurant = self._restaurant(ctx.restaurant_id)
            filters.opened_since = business_day_start(self._clock.now(), restaurant.timezone)
        if ctx.role == Roles.WAITER:
            filters.visible_to_waiter_id = ctx.actor_id

        return self._orders.find_all(ctx.restaurant_id, filters)
