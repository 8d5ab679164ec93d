"""
Tests for the unit of work, lock conflict mapping and optimistic versioning.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tabledesk.models import Order, Table
from tabledesk.repositories.base import for_update
from tabledesk.services.concurrency import is_lock_conflict, unit_of_work
from tabledesk_shared.utils.exceptions import ConcurrentModificationError, ValidationError
from tests.conftest import TestingSessionLocal, make_order


class FakeDriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def _operational(message, sqlstate=None) -> OperationalError:
    return OperationalError("UPDATE restaurant_order ...", {}, FakeDriverError(message, sqlstate))


class TestLockConflictDetection:

    @pytest.mark.parametrize("sqlstate", ["55P03", "40001", "40P01"])
    def test_postgres_lock_states(self, sqlstate):
        assert is_lock_conflict(_operational("lock timeout", sqlstate))

    def test_sqlite_busy(self):
        assert is_lock_conflict(_operational("database is locked"))

    def test_other_operational_errors(self):
        assert not is_lock_conflict(_operational("connection refused", "08006"))


class TestUnitOfWork:

    def test_commits_on_success(self, db_session, seed_restaurant):
        with unit_of_work(db_session, "add_table"):
            db_session.add(Table(restaurant_id=seed_restaurant.id, name="Patio", code="P-1"))

        db_session.expire_all()
        assert db_session.scalar(select(Table).where(Table.code == "P-1")) is not None

    def test_domain_error_rolls_back_everything(self, db_session, seed_restaurant):
        with pytest.raises(ValidationError):
            with unit_of_work(db_session, "add_table"):
                db_session.add(Table(restaurant_id=seed_restaurant.id, name="Patio", code="P-1"))
                db_session.flush()
                raise ValidationError("nope")

        assert db_session.scalar(select(Table).where(Table.code == "P-1")) is None

    def test_stale_write_becomes_concurrent_modification(self, db_session):
        with pytest.raises(ConcurrentModificationError) as exc_info:
            with unit_of_work(db_session, "settle"):
                raise StaleDataError("version mismatch")

        assert exc_info.value.status_code == 409
        assert exc_info.value.context == {"operation": "settle"}

    def test_lock_timeout_becomes_concurrent_modification(self, db_session):
        with pytest.raises(ConcurrentModificationError):
            with unit_of_work(db_session, "settle"):
                raise _operational("canceling statement due to lock timeout", "55P03")

    def test_unrelated_operational_error_propagates(self, db_session):
        with pytest.raises(OperationalError):
            with unit_of_work(db_session, "settle"):
                raise _operational("server closed the connection", "08006")

    def test_competing_write_detected_by_version(self, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, "10.00")
        order_id = order.id

        other = TestingSessionLocal()
        try:
            competing = other.get(Order, order_id)
            competing.notes = "changed elsewhere"
            other.commit()
        finally:
            other.close()

        with pytest.raises(ConcurrentModificationError):
            with unit_of_work(db_session, "update_notes"):
                # db_session still holds version 1 in its identity map
                order.discount_amount = Decimal("1.00")


class TestLockingReads:

    def test_for_update_targets_only_listed_tables(self):
        query = for_update(select(Order).where(Order.id == 1), Order)

        sql = str(query.compile(dialect=postgresql.dialect()))

        assert "FOR UPDATE OF restaurant_order" in sql
        assert query.get_execution_options()["populate_existing"] is True
