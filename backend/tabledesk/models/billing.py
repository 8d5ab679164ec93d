"""
Billing Models: Transaction.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Numeric, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tabledesk_shared.config.constants import PaymentMethod, TransactionStatus

from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .order import Order


class Transaction(TimestampMixin, Base):
    """
    Immutable record of money received.

    order_id points at the primary order settled (the most recent one in
    the settlement scope); table_session_id is set for session settlements.
    shortfall is the amount due minus the amount received, when positive.
    Corrections are recorded as new transactions, never as updates.
    """

    __tablename__ = "payment_transaction"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_order.id"), nullable=False, index=True
    )
    table_session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("table_session.id"), index=True
    )
    processed_by: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("app_user.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shortfall: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    method: Mapped[str] = mapped_column(Text, default=PaymentMethod.CASH, nullable=False)
    status: Mapped[str] = mapped_column(Text, default=TransactionStatus.PAID, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(Text)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_transaction_amount_positive"),
        CheckConstraint("shortfall >= 0", name="chk_transaction_shortfall_non_negative"),
    )

    order: Mapped["Order"] = relationship(back_populates="transactions")

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, order_id={self.order_id}, amount={self.amount})>"


@event.listens_for(Transaction, "before_update")
def _reject_transaction_update(mapper, connection, target: Transaction) -> None:
    raise ValueError(f"Transaction {target.id} is immutable; record a new transaction instead")
