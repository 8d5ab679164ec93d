"""
Tenant Models: Restaurant, FloorPlan, User.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .table import Table


class Restaurant(TimestampMixin, Base):
    """
    Tenant boundary. Every other entity carries restaurant_id.

    Rates are stored as fractions: 0.16 means 16 %.
    The timezone defines the business day used for session lookup,
    order visibility and the end-of-day sweep.
    """

    __tablename__ = "restaurant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    currency: Mapped[str] = mapped_column(Text, default="USD", nullable=False)
    timezone: Mapped[str] = mapped_column(Text, default="UTC", nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), default=Decimal("0"), nullable=False)
    service_charge_rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), default=Decimal("0"), nullable=False
    )

    __table_args__ = (
        CheckConstraint("tax_rate >= 0", name="chk_restaurant_tax_rate_non_negative"),
        CheckConstraint(
            "service_charge_rate >= 0", name="chk_restaurant_service_rate_non_negative"
        ),
    )

    floor_plans: Mapped[list["FloorPlan"]] = relationship(back_populates="restaurant")

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, slug='{self.slug}')>"


class FloorPlan(TimestampMixin, Base):
    """Optional grouping of tables (dining room, terrace...)."""

    __tablename__ = "floor_plan"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="floor_plans")
    tables: Mapped[list["Table"]] = relationship(back_populates="floor_plan")


class User(TimestampMixin, Base):
    """
    Staff member. Only the fields the order lifecycle needs:
    the role for visibility rules and the name shown when a claim conflicts.
    """

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    role: Mapped[str] = mapped_column(Text, nullable=False)  # owner, manager, waiter, kitchen, cashier
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role}')>"
