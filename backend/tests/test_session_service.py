"""
Tests for TableSessionService: resolve-or-create, device lock, payment request and close.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tabledesk.models import TableSession
from tabledesk.services.context import ActorContext
from tabledesk.services.domain import TableSessionService
from tabledesk.services.events import EventType
from tabledesk_shared.config.constants import (
    OrderStatus,
    PaymentStatus,
    SessionStarter,
    SessionStatus,
    TableStatus,
)
from tabledesk_shared.utils.exceptions import (
    DeviceLockedError,
    NotFoundError,
    OrdersStillInPipelineError,
    SessionClosedOrInvalidError,
    UnsettledBalanceError,
)
from tests.conftest import make_order, make_session


@pytest.fixture
def service(db_session, clock, notifier):
    return TableSessionService(db_session, clock, notifier)


@pytest.fixture
def guest_ctx(seed_restaurant):
    return ActorContext.guest(seed_restaurant.id, "device-1")


class TestResolveOrCreate:

    def test_opens_active_session_bound_to_device(self, service, db_session, guest_ctx, seed_table):
        session = service.resolve_or_create(guest_ctx, seed_table, "device-1")
        db_session.commit()

        assert session.status == SessionStatus.ACTIVE
        assert session.device_id == "device-1"
        assert session.started_by == SessionStarter.CLIENT
        assert len(session.session_code) == 8

    def test_same_device_reuses_open_session(self, service, db_session, guest_ctx, seed_table):
        first = service.resolve_or_create(guest_ctx, seed_table, "device-1")
        db_session.commit()

        second = service.resolve_or_create(guest_ctx, seed_table, "device-1")
        db_session.commit()

        assert second.id == first.id

    def test_second_device_observes_session_and_is_rejected(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table
    ):
        service.resolve_or_create(guest_ctx, seed_table, "device-1")
        db_session.commit()

        other = ActorContext.guest(seed_restaurant.id, "device-2")
        with pytest.raises(DeviceLockedError) as exc_info:
            service.resolve_or_create(other, seed_table, "device-2")
        db_session.rollback()

        assert exc_info.value.status_code == 409
        count = db_session.scalar(select(func.count()).select_from(TableSession))
        assert count == 1

    def test_explicit_session_must_be_open_on_this_table(
        self, service, db_session, guest_ctx, seed_table, seed_table2
    ):
        elsewhere = make_session(db_session, seed_table2)

        with pytest.raises(SessionClosedOrInvalidError):
            service.resolve_or_create(guest_ctx, seed_table, "device-1", session_id=elsewhere.id)

    def test_explicit_closed_session_rejected(self, service, db_session, guest_ctx, seed_table):
        closed = make_session(db_session, seed_table, status=SessionStatus.CLOSED)

        with pytest.raises(SessionClosedOrInvalidError):
            service.resolve_or_create(guest_ctx, seed_table, "device-1", session_id=closed.id)

    def test_session_from_previous_day_is_closed_and_replaced(
        self, service, db_session, guest_ctx, seed_table, clock
    ):
        stale = make_session(
            db_session, seed_table, device_id="old-device", opened_at=clock.now() - timedelta(days=1)
        )

        session = service.resolve_or_create(guest_ctx, seed_table, "device-1")
        db_session.commit()

        db_session.refresh(stale)
        assert session.id != stale.id
        assert stale.status == SessionStatus.CLOSED
        open_count = db_session.scalar(
            select(func.count()).select_from(TableSession).where(
                TableSession.table_id == seed_table.id,
                TableSession.status != SessionStatus.CLOSED,
            )
        )
        assert open_count == 1


class TestRequestPayment:

    def test_marks_session_waiting_payment(self, service, db_session, guest_ctx, seed_table):
        session = make_session(db_session, seed_table)

        result = service.request_payment(guest_ctx, session.id, table_id=seed_table.id)

        assert result.status == SessionStatus.WAITING_PAYMENT

    def test_other_device_cannot_request(self, service, db_session, seed_restaurant, seed_table):
        session = make_session(db_session, seed_table)
        intruder = ActorContext.guest(seed_restaurant.id, "device-9")

        with pytest.raises(DeviceLockedError):
            service.request_payment(intruder, session.id, table_id=seed_table.id)


class TestClose:

    def test_unpaid_order_blocks_close(self, service, db_session, guest_ctx, seed_restaurant, seed_table):
        session = make_session(db_session, seed_table)
        unpaid = make_order(db_session, seed_restaurant, "12.00", status=OrderStatus.SERVED, session=session)

        with pytest.raises(UnsettledBalanceError) as exc_info:
            service.close(guest_ctx, session.id, table_id=seed_table.id)

        assert exc_info.value.context["order_ids"] == [unpaid.id]
        db_session.refresh(session)
        assert session.status == SessionStatus.ACTIVE

    def test_order_in_kitchen_blocks_close(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        make_order(
            db_session, seed_restaurant, "12.00",
            status=OrderStatus.PREPARING, payment_status=PaymentStatus.PAID, session=session,
        )

        with pytest.raises(OrdersStillInPipelineError):
            service.close(guest_ctx, session.id, table_id=seed_table.id)

    def test_cancelled_orders_do_not_block(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        make_order(db_session, seed_restaurant, "12.00", status=OrderStatus.CANCELLED, session=session)

        closed = service.close(guest_ctx, session.id, table_id=seed_table.id)

        assert closed.status == SessionStatus.CLOSED

    def test_close_sends_table_to_cleaning(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table, notifier
    ):
        seed_table.status = TableStatus.OCCUPIED
        db_session.commit()
        session = make_session(db_session, seed_table)
        make_order(
            db_session, seed_restaurant, "12.00",
            status=OrderStatus.SERVED, payment_status=PaymentStatus.PAID, session=session,
        )

        closed = service.close(guest_ctx, session.id, table_id=seed_table.id)

        assert closed.status == SessionStatus.CLOSED
        assert closed.closed_at is not None
        db_session.refresh(seed_table)
        assert seed_table.status == TableStatus.NEEDS_CLEANING
        (event,) = notifier.of_type(EventType.SESSION_CLOSED)
        assert event.entity_id == session.id

    def test_closing_twice_rejected(self, service, db_session, guest_ctx, seed_table):
        session = make_session(db_session, seed_table)
        service.close(guest_ctx, session.id, table_id=seed_table.id)

        with pytest.raises(SessionClosedOrInvalidError):
            service.close(guest_ctx, session.id, table_id=seed_table.id)

    def test_wrong_table_rejected(self, service, db_session, guest_ctx, seed_table, seed_table2):
        session = make_session(db_session, seed_table)

        with pytest.raises(SessionClosedOrInvalidError):
            service.close(guest_ctx, session.id, table_id=seed_table2.id)

    def test_staff_can_close_any_device_session(
        self, service, db_session, waiter_ctx, seed_table
    ):
        session = make_session(db_session, seed_table, device_id="someone-else")

        closed = service.close(waiter_ctx, session.id)

        assert closed.status == SessionStatus.CLOSED


class TestTotals:

    def test_total_due_skips_completed_and_cancelled(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        make_order(db_session, seed_restaurant, "10.00", session=session)
        make_order(db_session, seed_restaurant, "7.50", status=OrderStatus.SERVED, session=session)
        make_order(db_session, seed_restaurant, "20.00", status=OrderStatus.COMPLETED, session=session)
        make_order(db_session, seed_restaurant, "3.00", status=OrderStatus.CANCELLED, session=session)

        assert service.total_due(guest_ctx, session.id) == Decimal("17.50")

    def test_summary_lists_session_orders(
        self, service, db_session, guest_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        order = make_order(db_session, seed_restaurant, "10.00", session=session)

        summary = service.get_summary(guest_ctx, session.id, table_id=seed_table.id)

        assert [o.id for o in summary.orders] == [order.id]
        assert summary.total_due == Decimal("10.00")


class TestCloseByCode:

    def test_guest_closes_through_qr_code(self, service, db_session, seed_table):
        session = make_session(db_session, seed_table)

        closed = service.close_by_code(seed_table.code, "device-1", session.id)

        assert closed.status == SessionStatus.CLOSED

    def test_other_device_rejected(self, service, db_session, seed_table):
        session = make_session(db_session, seed_table)

        with pytest.raises(DeviceLockedError):
            service.close_by_code(seed_table.code, "device-2", session.id)

    def test_unknown_code(self, service, db_session, seed_table):
        session = make_session(db_session, seed_table)

        with pytest.raises(NotFoundError):
            service.close_by_code("NOPE", "device-1", session.id)
