"""
Table Session Service - one continuous seating at a table.

Guarantees at most one open session per table by serializing every
resolve-or-create for a table on that table's row lock. Lock order across
the codebase is always: table, then session, then orders.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from tabledesk.models import Order, Restaurant, Table, TableSession
from tabledesk.repositories import OrderRepository, TableRepository, TableSessionRepository
from tabledesk.services.clock import Clock, business_day_start
from tabledesk.services.codes import allocate_code, random_code
from tabledesk.services.concurrency import unit_of_work
from tabledesk.services.context import ActorContext
from tabledesk.services.events import NullNotifier, dispatch_after_commit
from tabledesk.services.events.domain_event import session_closed
from tabledesk.services.events.publisher import Notifier
from tabledesk_shared.config.constants import (
    OrderStatus,
    PaymentStatus,
    Roles,
    SessionStarter,
    SessionStatus,
    TableStatus,
)
from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import (
    DeviceLockedError,
    OrdersStillInPipelineError,
    SessionClosedOrInvalidError,
    UnsettledBalanceError,
)

logger = get_logger(__name__)


@dataclass
class SessionSummary:
    """A session with its orders and the amount still due."""

    session: TableSession
    orders: Sequence[Order]
    total_due: Decimal


class TableSessionService:
    """
    Domain service for table session lifecycle.

    Handles:
    - Resolving or opening the session a guest device orders into
    - Device lock enforcement
    - Payment requests and closure rules
    """

    def __init__(self, db: Session, clock: Clock, notifier: Notifier | None = None):
        self._db = db
        self._clock = clock
        self._notifier = notifier or NullNotifier()
        self._tables = TableRepository(db)
        self._sessions = TableSessionRepository(db)
        self._orders = OrderRepository(db)

    # =========================================================================
    # Resolve / open
    # =========================================================================

    def resolve_or_create(
        self,
        ctx: ActorContext,
        table: Table,
        device_id: str,
        session_id: int | None = None,
    ) -> TableSession:
        """
        Return the open session ``device_id`` should order into, creating one if needed.

        Runs inside the caller's unit of work and leaves the table row locked
        until it commits, so two devices racing for the same free table
        cannot both open a session: the second one waits, then finds the
        first one's session and is rejected with DeviceLockedError.

        Raises:
            SessionClosedOrInvalidError: session_id given but not open on this table.
            DeviceLockedError: the open session is bound to another device.
        """
        now = self._clock.now()
        table = self._tables.get(table.id, ctx.restaurant_id, lock=True)

        if session_id is not None:
            session = self._sessions.find_open_for_table(
                session_id, table.id, ctx.restaurant_id, lock=True
            )
            if session is None:
                raise SessionClosedOrInvalidError(session_id, table_id=table.id)
        else:
            restaurant = self._db.get(Restaurant, ctx.restaurant_id)
            day_start = business_day_start(now, restaurant.timezone if restaurant else None)
            session = self._sessions.latest_open_for_table(
                table.id, ctx.restaurant_id, opened_since=day_start, lock=True
            )
            if session is None:
                self._close_stale_sessions(table, ctx.restaurant_id, now)

        if session is not None:
            if session.device_id != device_id:
                raise DeviceLockedError(table.id, session.id, device_id=device_id)
        else:
            session = self._open(ctx, table, device_id, now)

        session.last_activity_at = now
        return session

    def _open(self, ctx: ActorContext, table: Table, device_id: str, now) -> TableSession:
        started_by = SessionStarter.CLIENT if ctx.is_guest else SessionStarter.WAITER
        session = TableSession(
            restaurant_id=ctx.restaurant_id,
            table_id=table.id,
            session_code=self._new_session_code(),
            status=SessionStatus.ACTIVE,
            device_id=device_id,
            started_by=started_by,
            assigned_waiter_id=ctx.actor_id if ctx.role == Roles.WAITER else None,
            opened_at=now,
            last_activity_at=now,
        )
        self._sessions.add(session)

        logger.info(
            "Table session opened",
            session_id=session.id,
            table_id=table.id,
            started_by=started_by,
        )
        return session

    def _close_stale_sessions(self, table: Table, restaurant_id: int, now) -> None:
        """
        Sessions left open from an earlier business day are closed before a
        new one opens, keeping one open session per table.
        """
        while True:
            stale = self._sessions.latest_open_for_table(table.id, restaurant_id, lock=True)
            if stale is None:
                return
            stale.status = SessionStatus.CLOSED
            stale.closed_at = now
            self._db.flush()
            logger.warning(
                "Closed session left open from a previous day",
                session_id=stale.id,
                table_id=table.id,
            )

    def _new_session_code(self) -> str:
        return allocate_code(
            lambda: random_code(settings.session_code_length),
            self._sessions.code_exists,
            "session code",
        )

    # =========================================================================
    # Locking helpers
    # =========================================================================

    def lock_session(
        self, ctx: ActorContext, session_id: int, table_id: int | None = None
    ) -> TableSession:
        """
        Lock a session and its table (table first).

        Raises:
            SessionClosedOrInvalidError: table_id given and the session belongs elsewhere.
        """
        session = self._sessions.get(session_id, ctx.restaurant_id)
        if table_id is not None and session.table_id != table_id:
            raise SessionClosedOrInvalidError(session_id, table_id=table_id)
        self._tables.get(session.table_id, ctx.restaurant_id, lock=True)
        return self._sessions.get(session_id, ctx.restaurant_id, lock=True)

    def ensure_device(self, ctx: ActorContext, session: TableSession) -> None:
        """Guest calls may only act on the session bound to their own device."""
        if ctx.is_guest and session.device_id != ctx.device_id:
            raise DeviceLockedError(session.table_id, session.id, device_id=ctx.device_id)

    # =========================================================================
    # Close
    # =========================================================================

    def close(
        self, ctx: ActorContext, session_id: int, table_id: int | None = None
    ) -> TableSession:
        """
        Close a session once everything is paid and served.

        Raises:
            UnsettledBalanceError: an order is neither paid nor cancelled.
            OrdersStillInPipelineError: an order is still pending, preparing or ready.
        """
        with unit_of_work(self._db, "close_session"):
            session = self.lock_session(ctx, session_id, table_id)
            self.ensure_device(ctx, session)
            if session.status == SessionStatus.CLOSED:
                raise SessionClosedOrInvalidError(session_id)

            orders = self._orders.lock_many(
                [o.id for o in self._orders.for_session(session.id, ctx.restaurant_id)],
                ctx.restaurant_id,
            )
            unpaid = [
                o.id for o in orders
                if o.payment_status != PaymentStatus.PAID and o.status != OrderStatus.CANCELLED
            ]
            if unpaid:
                raise UnsettledBalanceError(session.id, unpaid)

            in_pipeline = [o.id for o in orders if o.status in OrderStatus.IN_PIPELINE]
            if in_pipeline:
                raise OrdersStillInPipelineError(session.id, in_pipeline)

            now = self._clock.now()
            self.mark_closed(session, now)
            events = [session_closed(session, ctx.actor_id, now)]

        logger.info("Table session closed", session_id=session_id, actor_id=ctx.actor_id)
        dispatch_after_commit(self._notifier, events)
        return session

    def close_by_code(self, table_code: str, device_id: str, session_id: int) -> TableSession:
        """Guest checkout from the table's QR code."""
        table = self._tables.get_by_code(table_code)
        ctx = ActorContext.guest(table.restaurant_id, device_id)
        return self.close(ctx, session_id, table_id=table.id)

    def mark_closed(self, session: TableSession, at) -> None:
        """Close the session and send its table to cleaning. Caller holds both locks."""
        session.status = SessionStatus.CLOSED
        session.closed_at = at
        session.last_activity_at = at
        session.table.status = TableStatus.NEEDS_CLEANING

    # =========================================================================
    # Payment request / summary
    # =========================================================================

    def request_payment(
        self, ctx: ActorContext, session_id: int, table_id: int | None = None
    ) -> TableSession:
        """Signal that the table wants the bill (session -> waiting-payment)."""
        with unit_of_work(self._db, "request_payment"):
            session = self.lock_session(ctx, session_id, table_id)
            self.ensure_device(ctx, session)
            if session.status == SessionStatus.CLOSED:
                raise SessionClosedOrInvalidError(session_id)
            if session.status != SessionStatus.WAITING_PAYMENT:
                session.status = SessionStatus.WAITING_PAYMENT
                session.last_activity_at = self._clock.now()

        logger.info("Payment requested", session_id=session_id, actor_id=ctx.actor_id)
        return session

    def total_due(self, ctx: ActorContext, session_id: int) -> Decimal:
        """Sum of totals of the session's orders that are not completed or cancelled."""
        self._sessions.get(session_id, ctx.restaurant_id)
        return self._orders.session_total_due(session_id, ctx.restaurant_id)

    def get_summary(
        self, ctx: ActorContext, session_id: int, table_id: int | None = None
    ) -> SessionSummary:
        session = self._sessions.get(session_id, ctx.restaurant_id)
        if table_id is not None and session.table_id != table_id:
            raise SessionClosedOrInvalidError(session_id, table_id=table_id)
        self.ensure_device(ctx, session)
        return SessionSummary(
            session=session,
            orders=self._orders.for_session(session.id, ctx.restaurant_id),
            total_due=self._orders.session_total_due(session.id, ctx.restaurant_id),
        )

    def current_for_table(self, ctx: ActorContext, table: Table) -> TableSession | None:
        """The open session of the current business day, if any (no locking)."""
        restaurant = self._db.get(Restaurant, ctx.restaurant_id)
        day_start = business_day_start(self._clock.now(), restaurant.timezone if restaurant else None)
        return self._sessions.latest_open_for_table(
            table.id, ctx.restaurant_id, opened_since=day_start
        )
