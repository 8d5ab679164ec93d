"""
Order Models: Order, OrderItem, OrderStatusHistory.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tabledesk_shared.config.constants import (
    OrderItemStatus,
    OrderSource,
    OrderStatus,
    PaymentStatus,
)

from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .billing import Transaction
    from .catalog import Product
    from .restaurant import User
    from .table import Table, TableSession

ZERO = Decimal("0.00")


class Order(TimestampMixin, Base):
    """
    A ticket of items placed by a waiter or a guest device.

    Money columns hold cents-exact decimals. The total is always
    subtotal + tax_amount + service_charge - discount_amount, floored at zero.
    Status changes go through the transition policy, which appends to
    ``status_history``.
    """

    __tablename__ = "restaurant_order"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), index=True
    )
    table_session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("table_session.id"), index=True
    )
    waiter_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("app_user.id"), index=True
    )
    client_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)

    status: Mapped[str] = mapped_column(
        Text, default=OrderStatus.PENDING, nullable=False, index=True
    )  # pending, preparing, ready, served, completed, cancelled
    payment_status: Mapped[str] = mapped_column(
        Text, default=PaymentStatus.UNPAID, nullable=False, index=True
    )  # unpaid, partial, paid, refunded
    source: Mapped[str] = mapped_column(Text, default=OrderSource.WAITER, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("total >= 0", name="chk_order_total_non_negative"),
        CheckConstraint("discount_amount >= 0", name="chk_order_discount_non_negative"),
        Index("ix_order_restaurant_status", "restaurant_id", "status"),
        Index("ix_order_status_opened", "status", "opened_at"),
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="order")
    session: Mapped[Optional["TableSession"]] = relationship(back_populates="orders")
    table: Mapped[Optional["Table"]] = relationship()
    waiter: Mapped[Optional["User"]] = relationship()

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status='{self.status}', "
            f"payment_status='{self.payment_status}', total={self.total})>"
        )


class OrderItem(TimestampMixin, Base):
    """
    A single line within an order.
    Stores the unit price at the time of submission for historical accuracy.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("product.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        Text, default=OrderItemStatus.PENDING, nullable=False, index=True
    )  # pending, cooking, ready, served, cancelled
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="chk_order_item_price_non_negative"),
    )

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()

    def reprice(self) -> None:
        """Recompute total_price from quantity and the frozen unit price."""
        self.total_price = Decimal(self.quantity) * self.unit_price

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, qty={self.quantity}, status='{self.status}')>"


class OrderStatusHistory(Base):
    """
    Append-only log of order status changes.
    actor_id is NULL for guest devices and the end-of-day sweep.
    """

    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("app_user.id"))
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(order_id={self.order_id}, status='{self.status}', actor_id={self.actor_id})>"
