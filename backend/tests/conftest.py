"""
Pytest configuration and fixtures for backend tests.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tabledesk.main import app
from tabledesk.models import (
    Base,
    Order,
    Product,
    Restaurant,
    Table,
    TableSession,
    User,
)
from tabledesk.services.clock import FixedClock, get_clock
from tabledesk.services.context import ActorContext
from tabledesk.services.events import RecordingNotifier, get_notifier
from tabledesk_shared.config.constants import (
    OrderSource,
    OrderStatus,
    PaymentStatus,
    Roles,
    SessionStatus,
)
from tabledesk_shared.infrastructure.db import get_db


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Tuesday noon, UTC
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db_session, clock, notifier):
    """
    Create a test client with database, clock and notifier overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_restaurant(db_session):
    """Restaurant with 16% tax and 10% service charge."""
    restaurant = Restaurant(
        name="Test Bistro",
        slug="test-bistro",
        currency="USD",
        timezone="UTC",
        tax_rate=Decimal("0.16"),
        service_charge_rate=Decimal("0.10"),
    )
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def seed_other_restaurant(db_session):
    restaurant = Restaurant(name="Other Place", slug="other-place", timezone="UTC")
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


def _make_user(db_session, restaurant, name, role):
    user = User(
        restaurant_id=restaurant.id,
        name=name,
        email=f"{name.lower()}@test.com",
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def seed_waiter(db_session, seed_restaurant):
    return _make_user(db_session, seed_restaurant, "Ana", Roles.WAITER)


@pytest.fixture
def seed_waiter2(db_session, seed_restaurant):
    return _make_user(db_session, seed_restaurant, "Bruno", Roles.WAITER)


@pytest.fixture
def seed_kitchen_user(db_session, seed_restaurant):
    return _make_user(db_session, seed_restaurant, "Chef", Roles.KITCHEN)


@pytest.fixture
def seed_cashier(db_session, seed_restaurant):
    return _make_user(db_session, seed_restaurant, "Carla", Roles.CASHIER)


@pytest.fixture
def seed_manager(db_session, seed_restaurant):
    return _make_user(db_session, seed_restaurant, "Marta", Roles.MANAGER)


@pytest.fixture
def seed_table(db_session, seed_restaurant):
    table = Table(restaurant_id=seed_restaurant.id, name="Table 1", code="T1-QR", capacity=4)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def seed_table2(db_session, seed_restaurant):
    table = Table(restaurant_id=seed_restaurant.id, name="Table 2", code="T2-QR", capacity=2)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def seed_burger(db_session, seed_restaurant):
    product = Product(restaurant_id=seed_restaurant.id, name="Burger", price=Decimal("10.00"))
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def seed_fries(db_session, seed_restaurant):
    product = Product(restaurant_id=seed_restaurant.id, name="Fries", price=Decimal("5.00"))
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


# =============================================================================
# Actor contexts
# =============================================================================


@pytest.fixture
def waiter_ctx(seed_restaurant, seed_waiter):
    return ActorContext(restaurant_id=seed_restaurant.id, role=Roles.WAITER, actor_id=seed_waiter.id)


@pytest.fixture
def waiter2_ctx(seed_restaurant, seed_waiter2):
    return ActorContext(restaurant_id=seed_restaurant.id, role=Roles.WAITER, actor_id=seed_waiter2.id)


@pytest.fixture
def kitchen_ctx(seed_restaurant, seed_kitchen_user):
    return ActorContext(
        restaurant_id=seed_restaurant.id, role=Roles.KITCHEN, actor_id=seed_kitchen_user.id
    )


@pytest.fixture
def cashier_ctx(seed_restaurant, seed_cashier):
    return ActorContext(restaurant_id=seed_restaurant.id, role=Roles.CASHIER, actor_id=seed_cashier.id)


@pytest.fixture
def manager_ctx(seed_restaurant, seed_manager):
    return ActorContext(restaurant_id=seed_restaurant.id, role=Roles.MANAGER, actor_id=seed_manager.id)


def staff_headers(user) -> dict[str, str]:
    """Identity headers the auth gateway forwards for a staff member."""
    return {
        "X-Restaurant-Id": str(user.restaurant_id),
        "X-Actor-Role": user.role,
        "X-Actor-Id": str(user.id),
    }


# =============================================================================
# Row builders
# =============================================================================


def make_session(db_session, table, device_id="device-1", opened_at=NOW, status=SessionStatus.ACTIVE):
    """Insert a table session directly, bypassing the session service."""
    session = TableSession(
        restaurant_id=table.restaurant_id,
        table_id=table.id,
        session_code=f"S{table.id}{device_id}{opened_at:%j%H%M}"[:24],
        status=status,
        device_id=device_id,
        opened_at=opened_at,
        last_activity_at=opened_at,
    )
    db_session.add(session)
    db_session.commit()
    db_session.refresh(session)
    return session


def make_order(
    db_session,
    restaurant,
    total,
    status=OrderStatus.PENDING,
    payment_status=PaymentStatus.UNPAID,
    session=None,
    table=None,
    waiter_id=None,
    opened_at=NOW,
):
    """Insert an order with a fixed total (no items), bypassing the order service."""
    total = Decimal(total)
    order = Order(
        restaurant_id=restaurant.id,
        table_id=session.table_id if session is not None else (table.id if table else None),
        table_session_id=session.id if session is not None else None,
        waiter_id=waiter_id,
        source=OrderSource.PORTAL if session is not None else OrderSource.WAITER,
        status=status,
        payment_status=payment_status,
        subtotal=total,
        total=total,
        paid_amount=total if payment_status == PaymentStatus.PAID else Decimal("0.00"),
        opened_at=opened_at,
    )
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order
