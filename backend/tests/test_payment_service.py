"""
Tests for PaymentService settlements.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tabledesk.models import OrderStatusHistory, Transaction
from tabledesk.services.domain import PaymentService
from tabledesk.services.events import EventType
from tabledesk_shared.config.constants import (
    OrderStatus,
    PaymentStatus,
    SessionStatus,
    TableStatus,
)
from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import (
    ForbiddenError,
    NothingToSettleError,
    PaymentAmountError,
    SessionClosedOrInvalidError,
    ValidationError,
)
from tests.conftest import make_order, make_session


@pytest.fixture
def service(db_session, clock, notifier):
    return PaymentService(db_session, clock, notifier)


def _transaction_count(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(Transaction))


@pytest.fixture
def two_order_session(db_session, seed_restaurant, seed_table):
    """A session with a paid 20.00 order and an unpaid, served 15.00 order."""
    seed_table.status = TableStatus.OCCUPIED
    db_session.commit()
    session = make_session(db_session, seed_table)
    paid = make_order(
        db_session, seed_restaurant, "20.00",
        status=OrderStatus.COMPLETED, payment_status=PaymentStatus.PAID, session=session,
    )
    unpaid = make_order(db_session, seed_restaurant, "15.00", status=OrderStatus.SERVED, session=session)
    return session, paid, unpaid


class TestSessionSettlement:

    def test_settles_only_unpaid_order_and_closes_session(
        self, service, db_session, cashier_ctx, seed_table, two_order_session, notifier
    ):
        session, paid, unpaid = two_order_session

        result = service.settle(cashier_ctx, Decimal("15.00"), table_session_id=session.id)

        assert [o.id for o in result.settled_orders] == [unpaid.id]
        assert result.total_due == Decimal("15.00")
        assert result.session_closed is True

        db_session.refresh(unpaid)
        assert unpaid.payment_status == PaymentStatus.PAID
        assert unpaid.paid_amount == Decimal("15.00")
        assert unpaid.status == OrderStatus.COMPLETED
        assert unpaid.closed_at is not None

        db_session.refresh(session)
        db_session.refresh(seed_table)
        assert session.status == SessionStatus.CLOSED
        assert session.closed_at is not None
        assert seed_table.status == TableStatus.NEEDS_CLEANING

        assert _transaction_count(db_session) == 1
        assert result.transaction.order_id == unpaid.id
        assert result.transaction.table_session_id == session.id
        assert result.transaction.shortfall == Decimal("0.00")

        assert len(notifier.of_type(EventType.SESSION_CLOSED)) == 1
        (changed,) = notifier.of_type(EventType.ORDER_STATUS_CHANGED)
        assert changed.payload["old"] == OrderStatus.SERVED
        assert changed.payload["new"] == OrderStatus.COMPLETED

    def test_completion_is_recorded_in_history(
        self, service, db_session, cashier_ctx, seed_cashier, two_order_session
    ):
        session, paid, unpaid = two_order_session

        service.settle(cashier_ctx, Decimal("15.00"), table_session_id=session.id)

        history = db_session.scalars(
            select(OrderStatusHistory).where(OrderStatusHistory.order_id == unpaid.id)
        ).all()
        assert [(h.status, h.actor_id) for h in history] == [(OrderStatus.COMPLETED, seed_cashier.id)]

    def test_pending_order_is_paid_but_stays_in_kitchen_flow(
        self, service, db_session, cashier_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        order = make_order(db_session, seed_restaurant, "9.00", session=session)

        service.settle(cashier_ctx, Decimal("9.00"), table_session_id=session.id)

        db_session.refresh(order)
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.PENDING

    def test_cancelled_orders_are_not_charged(
        self, service, db_session, cashier_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        make_order(db_session, seed_restaurant, "30.00", status=OrderStatus.CANCELLED, session=session)
        kept = make_order(db_session, seed_restaurant, "8.00", status=OrderStatus.READY, session=session)

        result = service.settle(cashier_ctx, Decimal("8.00"), table_session_id=session.id)

        assert [o.id for o in result.settled_orders] == [kept.id]
        assert result.total_due == Decimal("8.00")

    def test_nothing_to_settle(self, service, db_session, cashier_ctx, seed_restaurant, seed_table):
        session = make_session(db_session, seed_table)
        make_order(
            db_session, seed_restaurant, "20.00",
            status=OrderStatus.COMPLETED, payment_status=PaymentStatus.PAID, session=session,
        )

        with pytest.raises(NothingToSettleError):
            service.settle(cashier_ctx, Decimal("5.00"), table_session_id=session.id)

        assert _transaction_count(db_session) == 0
        db_session.refresh(session)
        assert session.status == SessionStatus.ACTIVE

    def test_closed_session_rejected(self, service, db_session, cashier_ctx, seed_table):
        session = make_session(db_session, seed_table, status=SessionStatus.CLOSED)

        with pytest.raises(SessionClosedOrInvalidError):
            service.settle(cashier_ctx, Decimal("5.00"), table_session_id=session.id)


class TestOrderGroupSettlement:

    def test_settles_listed_orders_only(
        self, service, db_session, cashier_ctx, seed_restaurant, seed_table
    ):
        session = make_session(db_session, seed_table)
        first = make_order(db_session, seed_restaurant, "10.00", status=OrderStatus.SERVED, session=session)
        second = make_order(db_session, seed_restaurant, "4.00", status=OrderStatus.SERVED, session=session)

        result = service.settle(cashier_ctx, Decimal("10.00"), order_ids=[first.id])

        assert result.session_closed is False
        assert result.transaction.table_session_id is None
        db_session.refresh(second)
        db_session.refresh(session)
        assert second.payment_status == PaymentStatus.UNPAID
        assert session.status == SessionStatus.ACTIVE

    def test_transaction_references_most_recent_order(
        self, service, db_session, cashier_ctx, seed_restaurant
    ):
        first = make_order(db_session, seed_restaurant, "10.00", status=OrderStatus.SERVED)
        second = make_order(db_session, seed_restaurant, "5.00", status=OrderStatus.SERVED)

        result = service.settle(cashier_ctx, Decimal("15.00"), order_ids=[second.id, first.id])

        assert result.transaction.order_id == second.id
        assert result.total_due == Decimal("15.00")

    def test_foreign_order_forbidden(
        self, service, db_session, cashier_ctx, seed_other_restaurant
    ):
        foreign = make_order(db_session, seed_other_restaurant, "10.00")

        with pytest.raises(ForbiddenError):
            service.settle(cashier_ctx, Decimal("10.00"), order_ids=[foreign.id])


class TestValidation:

    def test_exactly_one_selector_required(self, service, cashier_ctx, db_session, seed_restaurant, seed_table):
        session = make_session(db_session, seed_table)
        order = make_order(db_session, seed_restaurant, "10.00", session=session)

        with pytest.raises(ValidationError):
            service.settle(cashier_ctx, Decimal("10.00"))
        with pytest.raises(ValidationError):
            service.settle(
                cashier_ctx, Decimal("10.00"), table_session_id=session.id, order_ids=[order.id]
            )

    def test_non_positive_amount_rejected(self, service, cashier_ctx, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, "10.00")

        with pytest.raises(PaymentAmountError):
            service.settle(cashier_ctx, Decimal("0"), order_ids=[order.id])

    def test_unknown_method_rejected(self, service, cashier_ctx, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, "10.00")

        with pytest.raises(ValidationError):
            service.settle(cashier_ctx, Decimal("10.00"), method="barter", order_ids=[order.id])

    def test_kitchen_cannot_settle(self, service, kitchen_ctx, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, "10.00")

        with pytest.raises(ForbiddenError):
            service.settle(kitchen_ctx, Decimal("10.00"), order_ids=[order.id])


class TestShortPayment:

    def test_short_payment_accepted_and_recorded(
        self, service, db_session, cashier_ctx, two_order_session
    ):
        session, paid, unpaid = two_order_session

        result = service.settle(cashier_ctx, Decimal("12.00"), table_session_id=session.id)

        assert result.transaction.amount == Decimal("12.00")
        assert result.transaction.amount_due == Decimal("15.00")
        assert result.transaction.shortfall == Decimal("3.00")
        db_session.refresh(unpaid)
        assert unpaid.payment_status == PaymentStatus.PAID

    def test_short_payment_rejected_when_disabled(
        self, service, db_session, cashier_ctx, two_order_session, monkeypatch
    ):
        monkeypatch.setattr(settings, "allow_short_payment", False)
        session, paid, unpaid = two_order_session

        with pytest.raises(PaymentAmountError):
            service.settle(cashier_ctx, Decimal("12.00"), table_session_id=session.id)

        assert _transaction_count(db_session) == 0
        db_session.refresh(unpaid)
        assert unpaid.payment_status == PaymentStatus.UNPAID


class TestTransactions:

    def test_transactions_are_immutable(self, service, db_session, cashier_ctx, two_order_session):
        session, paid, unpaid = two_order_session
        result = service.settle(cashier_ctx, Decimal("15.00"), table_session_id=session.id)

        result.transaction.amount = Decimal("1.00")
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_list_and_get(self, service, cashier_ctx, two_order_session):
        session, paid, unpaid = two_order_session
        result = service.settle(cashier_ctx, Decimal("15.00"), table_session_id=session.id)

        listed = service.list_transactions(cashier_ctx)
        fetched = service.get_transaction(cashier_ctx, result.transaction.id)

        assert [t.id for t in listed] == [result.transaction.id]
        assert fetched.amount == Decimal("15.00")
