"""
Shared Pydantic schemas used across the application.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tabledesk_shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

Role = Literal["owner", "manager", "waiter", "kitchen", "cashier", "client"]
TableStatus = Literal["free", "occupied", "reserved", "needs_cleaning"]
SessionStatus = Literal["waiting-confirmation", "active", "waiting-payment", "closed"]
OrderItemStatus = Literal["pending", "cooking", "ready", "served", "cancelled"]
PaymentMethod = Literal["cash", "card", "transfer", "online", "other"]
OrderSource = Literal["waiter", "online", "pos"]

Money = Decimal


# =============================================================================
# Order Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """A line of a staff order. Prices always come from the menu."""

    product_id: int
    quantity: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class CreateOrderRequest(BaseModel):
    """Request to create an order on behalf of a table or client."""

    items: list[OrderItemInput] = Field(min_length=1, max_length=Limits.MAX_ITEMS_PER_ORDER)
    table_id: int | None = None
    client_id: int | None = None
    source: OrderSource = "waiter"
    discount_amount: Money = Field(default=Decimal("0"), ge=0, decimal_places=2)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class UpdateOrderRequest(BaseModel):
    """
    Edit order metadata. Only the fields sent are changed; items go through
    the item-set endpoint and status through the status endpoint.
    """

    table_id: int | None = None
    client_id: int | None = None
    source: OrderSource | None = None
    discount_amount: Money | None = Field(default=None, ge=0, decimal_places=2)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class UpdateOrderStatusRequest(BaseModel):
    """
    Status change, optionally claiming the order for a waiter.
    Status accepts the legacy alias "in_progress" for preparing.
    """

    status: str = Field(min_length=1, max_length=32)
    waiter_id: int | None = None
    session_id: int | None = None


class UpdateItemStatusRequest(BaseModel):
    status: OrderItemStatus


class OrderItemOutput(BaseModel):
    """Output for a single order line."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_price: Money
    total_price: Money
    status: OrderItemStatus
    notes: str | None = None


class OrderOutput(BaseModel):
    """Output for an order with its items."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    payment_status: str
    source: str
    table_id: int | None = None
    table_session_id: int | None = None
    waiter_id: int | None = None
    client_id: int | None = None
    subtotal: Money
    tax_amount: Money
    service_charge: Money
    discount_amount: Money
    total: Money
    paid_amount: Money
    opened_at: datetime
    closed_at: datetime | None = None
    items: list[OrderItemOutput]


class OrderItemStatusOutput(BaseModel):
    order_item_id: int
    order_id: int
    old_status: OrderItemStatus
    status: OrderItemStatus


# =============================================================================
# Portal (guest device) Schemas
# =============================================================================


class PortalItemInput(BaseModel):
    """
    A line of the guest cart.

    - order_item_id set: update that existing item (quantity / notes)
    - order_item_id absent: new item for product_id at the price the device showed
    """

    order_item_id: int | None = None
    product_id: int | None = None
    price: Money | None = Field(default=None, ge=0)
    quantity: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)

    @model_validator(mode="after")
    def _new_items_need_a_product(self) -> "PortalItemInput":
        if self.order_item_id is None and self.product_id is None:
            raise ValueError("product_id is required for new items")
        return self


class PortalOrderRequest(BaseModel):
    """Full cart submitted by a guest device. Items missing from the list are removed."""

    device_id: str = Field(min_length=1, max_length=Limits.MAX_DEVICE_ID_LENGTH)
    session_id: int | None = None
    items: list[PortalItemInput] = Field(min_length=1, max_length=Limits.MAX_ITEMS_PER_ORDER)


class PortalDeviceRequest(BaseModel):
    device_id: str = Field(min_length=1, max_length=Limits.MAX_DEVICE_ID_LENGTH)


class SessionOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_id: int
    session_code: str
    status: SessionStatus
    started_by: str
    opened_at: datetime
    closed_at: datetime | None = None


class PortalOrderResponse(BaseModel):
    session: SessionOutput
    order: OrderOutput
    created: bool


class SessionSummaryOutput(BaseModel):
    session: SessionOutput | None = None
    orders: list[OrderOutput] = Field(default_factory=list)
    total_due: Money = Decimal("0.00")


class ProductOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Money
    is_available: bool


class PortalTableOutput(SessionSummaryOutput):
    """What the guest portal shows for a table: where it is, the menu, and the open tab."""

    table_name: str
    restaurant_name: str
    currency: str
    products: list[ProductOutput] = Field(default_factory=list)


# =============================================================================
# Table Schemas
# =============================================================================


class UpdateTableStatusRequest(BaseModel):
    status: TableStatus


class CreateTableRequest(BaseModel):
    name: str = Field(min_length=1, max_length=Limits.MAX_TABLE_NAME_LENGTH)
    capacity: int = Field(default=4, ge=1)
    floor_plan_id: int | None = None


class UpdateTableRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.MAX_TABLE_NAME_LENGTH)
    capacity: int | None = Field(default=None, ge=1)
    floor_plan_id: int | None = None


class TableOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    capacity: int
    status: TableStatus
    floor_plan_id: int | None = None


# =============================================================================
# Payment Schemas
# =============================================================================


class SettlementRequest(BaseModel):
    """
    Settle a whole table session or an explicit group of orders.
    Exactly one of table_session_id / order_ids must be given.
    """

    amount: Money = Field(gt=0, decimal_places=2)
    method: PaymentMethod = "cash"
    table_session_id: int | None = None
    order_ids: list[int] | None = None
    reference: str | None = Field(default=None, max_length=Limits.MAX_REFERENCE_LENGTH)


class TransactionOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    table_session_id: int | None = None
    processed_by: int | None = None
    amount: Money
    amount_due: Money
    shortfall: Money
    method: PaymentMethod
    status: str
    reference: str | None = None
    paid_at: datetime


class SettlementResponse(BaseModel):
    transaction: TransactionOutput
    settled_order_ids: list[int]
    total_due: Money
    session_closed: bool
