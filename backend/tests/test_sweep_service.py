"""
Tests for the end-of-day sweep.
"""

from datetime import timedelta

import pytest

from tabledesk.models import Restaurant, Table
from tabledesk.services.clock import FixedClock
from tabledesk.services.domain import SweepService
from tabledesk.services.events import EventType
from tabledesk_shared.config.constants import OrderStatus, TableStatus
from tabledesk_shared.utils.exceptions import ConcurrentModificationError
from tests.conftest import NOW, make_order


@pytest.fixture
def service(db_session, clock, notifier):
    return SweepService(db_session, clock, notifier)


class TestSweep:

    def test_completes_stale_orders_and_frees_tables(
        self, service, db_session, seed_restaurant, seed_table, clock, notifier
    ):
        seed_table.status = TableStatus.OCCUPIED
        db_session.commit()
        yesterday = clock.now() - timedelta(days=1)
        stale = make_order(
            db_session, seed_restaurant, "10.00",
            status=OrderStatus.PREPARING, table=seed_table, opened_at=yesterday,
        )

        report = service.run()

        assert report.orders_closed == 1
        assert report.tables_freed == 1
        assert report.order_ids == [stale.id]

        db_session.refresh(stale)
        db_session.refresh(seed_table)
        assert stale.status == OrderStatus.COMPLETED
        assert stale.closed_at is not None
        assert [(h.status, h.actor_id) for h in stale.status_history] == [(OrderStatus.COMPLETED, None)]
        assert seed_table.status == TableStatus.FREE

        (event,) = notifier.of_type(EventType.ORDER_STATUS_CHANGED)
        assert event.payload["old"] == OrderStatus.PREPARING
        assert event.actor_id is None

    def test_orders_of_the_current_day_are_left_alone(
        self, service, db_session, seed_restaurant, seed_table
    ):
        seed_table.status = TableStatus.OCCUPIED
        db_session.commit()
        today = make_order(db_session, seed_restaurant, "10.00", table=seed_table, opened_at=NOW)

        report = service.run()

        assert report.orders_closed == 0
        db_session.refresh(today)
        db_session.refresh(seed_table)
        assert today.status == OrderStatus.PENDING
        assert seed_table.status == TableStatus.OCCUPIED

    def test_closed_orders_are_not_touched(self, service, db_session, seed_restaurant, clock):
        yesterday = clock.now() - timedelta(days=1)
        done = make_order(
            db_session, seed_restaurant, "10.00", status=OrderStatus.CANCELLED, opened_at=yesterday
        )

        report = service.run()

        assert report.orders_closed == 0
        db_session.refresh(done)
        assert done.status == OrderStatus.CANCELLED

    def test_each_restaurant_uses_its_own_timezone(self, db_session, notifier):
        """At 03:00 UTC it is still the previous evening in Mexico City."""
        utc = Restaurant(name="London", slug="london", timezone="UTC")
        mexico = Restaurant(name="CDMX", slug="cdmx", timezone="America/Mexico_City")
        db_session.add_all([utc, mexico])
        db_session.commit()

        opened = NOW.replace(hour=23) - timedelta(days=1)  # 23:00 UTC the day before
        london_order = make_order(db_session, utc, "10.00", opened_at=opened)
        mexico_order = make_order(db_session, mexico, "10.00", opened_at=opened)

        clock = FixedClock(NOW.replace(hour=3))
        report = SweepService(db_session, clock, notifier).run()

        assert report.restaurants == 2
        assert report.order_ids == [london_order.id]
        db_session.refresh(mexico_order)
        assert mexico_order.status == OrderStatus.PENDING

    def test_single_restaurant(self, service, db_session, seed_restaurant, seed_other_restaurant, clock):
        yesterday = clock.now() - timedelta(days=1)
        mine = make_order(db_session, seed_restaurant, "10.00", opened_at=yesterday)
        theirs = make_order(db_session, seed_other_restaurant, "10.00", opened_at=yesterday)

        report = service.run(restaurant_id=seed_restaurant.id)

        assert report.order_ids == [mine.id]
        db_session.refresh(theirs)
        assert theirs.status == OrderStatus.PENDING

    def test_free_table_is_not_counted(self, service, db_session, seed_restaurant, seed_table, clock):
        yesterday = clock.now() - timedelta(days=1)
        make_order(db_session, seed_restaurant, "10.00", table=seed_table, opened_at=yesterday)

        report = service.run()

        assert report.orders_closed == 1
        assert report.tables_freed == 0
        assert db_session.get(Table, seed_table.id).status == TableStatus.FREE

    def test_failing_restaurant_does_not_stop_the_others(
        self, service, db_session, seed_restaurant, seed_other_restaurant, clock, monkeypatch
    ):
        yesterday = clock.now() - timedelta(days=1)
        mine = make_order(db_session, seed_restaurant, "10.00", opened_at=yesterday)
        theirs = make_order(db_session, seed_other_restaurant, "10.00", opened_at=yesterday)

        stale_active = service._orders.stale_active

        def contended(restaurant_id, opened_before, lock=False):
            if restaurant_id == seed_restaurant.id and lock:
                raise ConcurrentModificationError("end_of_day_sweep")
            return stale_active(restaurant_id, opened_before, lock=lock)

        monkeypatch.setattr(service._orders, "stale_active", contended)

        report = service.run()

        assert report.order_ids == [theirs.id]
        assert report.restaurants == 1
        assert list(report.failed) == [seed_restaurant.id]
        db_session.refresh(mine)
        db_session.refresh(theirs)
        assert mine.status == OrderStatus.PENDING
        assert theirs.status == OrderStatus.COMPLETED
