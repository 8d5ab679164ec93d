"""
Table and Session Models: Table, TableSession.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tabledesk_shared.config.constants import SessionStarter, SessionStatus, TableStatus

from .base import Base, BigIntPK, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from .order import Order
    from .restaurant import FloorPlan, User


class Table(SoftDeleteMixin, TimestampMixin, Base):
    """
    Physical table in a restaurant.
    The code is printed on the table's QR sticker and identifies it on the guest portal.
    Deleted tables are deactivated; their code stays reserved.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    floor_plan_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("floor_plan.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    status: Mapped[str] = mapped_column(
        Text, default=TableStatus.FREE, nullable=False, index=True
    )  # free, occupied, reserved, needs_cleaning

    __table_args__ = (
        Index("ix_table_restaurant_status", "restaurant_id", "status"),
    )

    floor_plan: Mapped[Optional["FloorPlan"]] = relationship(back_populates="tables")
    sessions: Mapped[list["TableSession"]] = relationship(back_populates="table")

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, code='{self.code}', status='{self.status}')>"


class TableSession(TimestampMixin, Base):
    """
    One continuous seating at a table, from first order until closure.

    - device_id: guest device the session is bound to (device lock)
    - started_by: "client" (portal) or "waiter"
    - version: optimistic concurrency counter, bumped on every UPDATE
    """

    __tablename__ = "table_session"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    session_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        Text, default=SessionStatus.ACTIVE, nullable=False, index=True
    )  # waiting-confirmation, active, waiting-payment, closed
    device_id: Mapped[Optional[str]] = mapped_column(Text, index=True)
    started_by: Mapped[str] = mapped_column(Text, default=SessionStarter.CLIENT, nullable=False)
    assigned_waiter_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("app_user.id"), index=True
    )
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_table_session_table_status", "table_id", "status"),
    )

    table: Mapped["Table"] = relationship(back_populates="sessions")
    orders: Mapped[list["Order"]] = relationship(back_populates="session")
    assigned_waiter: Mapped[Optional["User"]] = relationship("User", foreign_keys=[assigned_waiter_id])

    def __repr__(self) -> str:
        return f"<TableSession(id={self.id}, table_id={self.table_id}, status='{self.status}')>"
