"""
Tests for order, item and table transition rules.
"""

from datetime import datetime, timezone

import pytest

from tabledesk.models import Order, OrderItem
from tabledesk.services.domain.transition_policy import (
    allowed_order_transitions,
    apply_item_transition,
    apply_order_transition,
    can_transition_table,
    parse_order_status,
    record_initial_status,
)
from tabledesk_shared.config.constants import OrderItemStatus, OrderStatus, TableStatus
from tabledesk_shared.utils.exceptions import InvalidTransitionError, ValidationError

AT = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _order(status=OrderStatus.PENDING) -> Order:
    order = Order(restaurant_id=1, status=status, opened_at=AT)
    record_initial_status(order, actor_id=None, at=AT)
    return order


class TestOrderGraph:

    @pytest.mark.parametrize(
        "from_status,expected",
        [
            (OrderStatus.PENDING, {"preparing", "ready", "served", "cancelled"}),
            (OrderStatus.PREPARING, {"ready", "served", "pending", "cancelled"}),
            (OrderStatus.READY, {"served", "preparing", "completed"}),
            (OrderStatus.SERVED, {"completed", "ready"}),
            (OrderStatus.COMPLETED, set()),
            (OrderStatus.CANCELLED, set()),
        ],
    )
    def test_reachable_statuses(self, from_status, expected):
        assert set(allowed_order_transitions(from_status)) == expected

    def test_pending_can_be_served_directly(self):
        order = _order()

        old = apply_order_transition(order, OrderStatus.SERVED, actor_id=7, at=AT)

        assert old == OrderStatus.PENDING
        assert order.status == OrderStatus.SERVED
        assert order.closed_at is None
        assert [(h.status, h.actor_id) for h in order.status_history] == [
            (OrderStatus.PENDING, None),
            (OrderStatus.SERVED, 7),
        ]

    def test_rejected_transition_changes_nothing(self):
        order = _order(OrderStatus.SERVED)

        with pytest.raises(InvalidTransitionError):
            apply_order_transition(order, OrderStatus.PENDING, actor_id=7, at=AT)

        assert order.status == OrderStatus.SERVED
        assert order.closed_at is None
        assert len(order.status_history) == 1

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_status_stamps_closed_at(self, terminal):
        order = _order(OrderStatus.READY if terminal == OrderStatus.COMPLETED else OrderStatus.PENDING)

        apply_order_transition(order, terminal, actor_id=None, at=AT)

        assert order.closed_at == AT

    def test_forced_completion_skips_edge_check(self):
        order = _order(OrderStatus.PENDING)

        apply_order_transition(order, OrderStatus.COMPLETED, actor_id=None, at=AT, force=True)

        assert order.status == OrderStatus.COMPLETED
        assert len(order.status_history) == 2


class TestStatusParsing:

    def test_alias_and_case(self):
        assert parse_order_status("IN_PROGRESS") == OrderStatus.PREPARING
        assert parse_order_status(" Ready ") == OrderStatus.READY

    def test_unknown(self):
        with pytest.raises(ValidationError):
            parse_order_status("lost")


class TestItemGraph:

    def test_cooking_item_can_go_back_to_pending(self):
        item = OrderItem(status=OrderItemStatus.COOKING)

        assert apply_item_transition(item, OrderItemStatus.PENDING) == OrderItemStatus.COOKING
        assert item.status == OrderItemStatus.PENDING

    def test_ready_item_cannot_be_cancelled(self):
        item = OrderItem(status=OrderItemStatus.READY)

        with pytest.raises(InvalidTransitionError):
            apply_item_transition(item, OrderItemStatus.CANCELLED)
        assert item.status == OrderItemStatus.READY


class TestTableGraph:

    def test_cleaning_cycle(self):
        assert can_transition_table(TableStatus.FREE, TableStatus.OCCUPIED)
        assert can_transition_table(TableStatus.OCCUPIED, TableStatus.NEEDS_CLEANING)
        assert can_transition_table(TableStatus.NEEDS_CLEANING, TableStatus.FREE)
        assert not can_transition_table(TableStatus.OCCUPIED, TableStatus.RESERVED)
