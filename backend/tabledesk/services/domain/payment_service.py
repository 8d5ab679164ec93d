"""
Payment Domain Service.

Settles a table session or an explicit group of orders with a single
transaction. Everything a settlement touches (table, session, every order in
scope) is locked for the whole unit of work, so a kitchen update or a second
cashier on the same orders waits or fails instead of interleaving.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from tabledesk.models import Order, TableSession, Transaction
from tabledesk.repositories import OrderRepository, RepositoryFilters, TableSessionRepository
from tabledesk.repositories.base import TenantRepository
from tabledesk.services.clock import Clock
from tabledesk.services.concurrency import unit_of_work
from tabledesk.services.context import ActorContext
from tabledesk.services.domain.order_service import money
from tabledesk.services.domain.session_service import TableSessionService
from tabledesk.services.domain.transition_policy import apply_order_transition
from tabledesk.services.events import NullNotifier, dispatch_after_commit
from tabledesk.services.events.domain_event import order_status_changed, session_closed
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.config.constants import (
    SETTLEMENT_ROLES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    SessionStatus,
    TransactionStatus,
)
from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import (
    NothingToSettleError,
    PaymentAmountError,
    SessionClosedOrInvalidError,
    ValidationError,
)

logger = get_logger(__name__)

ZERO = Decimal("0.00")

# Statuses a paid order leaves the kitchen flow from
COMPLETE_ON_PAYMENT = (OrderStatus.SERVED, OrderStatus.READY)


class TransactionRepository(TenantRepository[Transaction]):
    model = Transaction
    entity_name = "Transaction"

    def find_all(self, restaurant_id: int, filters: RepositoryFilters) -> Sequence[Transaction]:
        query = (
            self._base_query(restaurant_id)
            .order_by(Transaction.paid_at.desc(), Transaction.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        return self._db.scalars(query).all()


@dataclass
class SettlementResult:
    transaction: Transaction
    settled_orders: list[Order]
    total_due: Decimal
    session_closed: bool


class PaymentService:
    """
    Domain service for settlements.

    Handles:
    - Resolving the set of orders a payment covers
    - Marking them paid and completing served/ready ones
    - Recording the single transaction
    - Closing the session it settled
    """

    def __init__(self, db: Session, clock: Clock, notifier: Notifier | None = None):
        self._db = db
        self._clock = clock
        self._notifier = notifier or NullNotifier()
        self._orders = OrderRepository(db)
        self._sessions = TableSessionRepository(db)
        self._transactions = TransactionRepository(db)
        self._session_service = TableSessionService(db, clock, self._notifier)

    def resolve_scope(
        self,
        ctx: ActorContext,
        table_session_id: int | None = None,
        order_ids: list[int] | None = None,
        lock: bool = False,
    ) -> list[Order]:
        """
        Unpaid, non-cancelled orders covered by exactly one selector.

        Raises:
            ValidationError: neither or both selectors given.
            NothingToSettleError: the scope holds nothing to pay.
        """
        has_session = table_session_id is not None
        has_orders = bool(order_ids)
        if has_session == has_orders:
            raise ValidationError(
                "Provide either table_session_id or order_ids",
                context={"table_session_id": table_session_id, "order_ids": order_ids},
            )

        if has_session:
            self._sessions.get(table_session_id, ctx.restaurant_id)
            candidates = self._orders.unsettled_for_session(
                table_session_id, ctx.restaurant_id, lock=lock
            )
        else:
            for order_id in order_ids:
                # Raises NotFound / Forbidden for ids outside this restaurant
                self._orders.get(order_id, ctx.restaurant_id)
            candidates = self._orders.unsettled_by_ids(order_ids, ctx.restaurant_id, lock=lock)

        if not candidates:
            raise NothingToSettleError(
                table_session_id=table_session_id, order_ids=order_ids
            )
        return list(candidates)

    def settle(
        self,
        ctx: ActorContext,
        amount: Decimal,
        method: str = PaymentMethod.CASH,
        table_session_id: int | None = None,
        order_ids: list[int] | None = None,
        reference: str | None = None,
    ) -> SettlementResult:
        """
        Record a payment covering every unpaid order in scope.

        Each order is marked paid for its full total; served and ready
        orders move to completed. A session settlement also closes the
        session and sends its table to cleaning.

        An amount below the total due is accepted and recorded as a
        shortfall unless ``settings.allow_short_payment`` is off.
        """
        ctx.require_role(SETTLEMENT_ROLES, "settle payments")
        amount = money(amount)
        if amount <= ZERO:
            raise PaymentAmountError(amount, "must be positive")
        if method not in PaymentMethod.ALL:
            raise ValidationError(f"Unknown payment method '{method}'", context={"method": method})

        now = self._clock.now()
        events = []
        session: TableSession | None = None

        with unit_of_work(self._db, "settle"):
            if table_session_id is not None and not order_ids:
                session = self._session_service.lock_session(ctx, table_session_id)
                if session.status == SessionStatus.CLOSED:
                    raise SessionClosedOrInvalidError(table_session_id)

            candidates = self.resolve_scope(ctx, table_session_id, order_ids, lock=True)
            total_due = money(sum((o.total for o in candidates), ZERO))

            shortfall = max(ZERO, total_due - amount)
            if shortfall > ZERO:
                if not settings.allow_short_payment:
                    raise PaymentAmountError(amount, f"below amount due {total_due}")
                logger.warning(
                    "Short payment accepted",
                    amount=str(amount),
                    total_due=str(total_due),
                    shortfall=str(shortfall),
                    table_session_id=table_session_id,
                    actor_id=ctx.actor_id,
                )

            for order in candidates:
                order.payment_status = PaymentStatus.PAID
                order.paid_amount = order.total
                if order.status in COMPLETE_ON_PAYMENT:
                    old_status = apply_order_transition(
                        order, OrderStatus.COMPLETED, ctx.actor_id, now
                    )
                    events.append(
                        order_status_changed(order, old_status, OrderStatus.COMPLETED, ctx.actor_id, now)
                    )

            transaction = self._transactions.add(
                Transaction(
                    restaurant_id=ctx.restaurant_id,
                    order_id=candidates[-1].id,
                    table_session_id=table_session_id,
                    processed_by=ctx.actor_id,
                    amount=amount,
                    amount_due=total_due,
                    shortfall=shortfall,
                    method=method,
                    status=TransactionStatus.PAID,
                    reference=reference,
                    paid_at=now,
                )
            )

            if session is not None:
                self._session_service.mark_closed(session, now)
                events.append(session_closed(session, ctx.actor_id, now))

        logger.info(
            "Settlement recorded",
            transaction_id=transaction.id,
            order_ids=[o.id for o in candidates],
            amount=str(amount),
            total_due=str(total_due),
            method=method,
            table_session_id=table_session_id,
            actor_id=ctx.actor_id,
        )
        dispatch_after_commit(self._notifier, events)
        return SettlementResult(
            transaction=transaction,
            settled_orders=candidates,
            total_due=total_due,
            session_closed=session is not None,
        )

    def get_transaction(self, ctx: ActorContext, transaction_id: int) -> Transaction:
        ctx.require_role(SETTLEMENT_ROLES, "view transactions")
        return self._transactions.get(transaction_id, ctx.restaurant_id)

    def list_transactions(self, ctx: ActorContext, limit: int = 0, offset: int = 0) -> Sequence[Transaction]:
        ctx.require_role(SETTLEMENT_ROLES, "view transactions")
        return self._transactions.find_all(ctx.restaurant_id, RepositoryFilters(limit=limit, offset=offset))

