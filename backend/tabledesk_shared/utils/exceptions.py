"""
Centralized HTTP exceptions for consistent error handling.

Every exception carries a stable ``code`` (the error kind) and a public
``context`` dict rendered next to ``detail`` by the API error handler.

Usage:
    from tabledesk_shared.utils.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError("Order", order_id)
    raise InvalidTransitionError("Order", "completed", "pending")
    raise AlreadyClaimedError(order_id=4, holder_id=12, holder_name="Ana")
"""

from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status

from tabledesk_shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    code: str = "APP_ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        context: dict[str, Any] | None = None,
        **log_context: Any,
    ):
        self.context = context or {}

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, **{**log_context, **self.context, "status_code": status_code, "code": self.code})

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        """Response body: detail, code and any public context."""
        body: dict[str, Any] = {"detail": self.detail, "code": self.code}
        for key, value in self.context.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        return body


# =============================================================================
# 404 Not Found / 403 Forbidden
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", 123)
        raise NotFoundError("Table", table_code="T-7")
    """

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            context={"entity": entity, "entity_id": entity_id},
            **log_context,
        )


class ForbiddenError(AppException):
    """
    Authorization / tenant boundary error (403).

    Usage:
        raise ForbiddenError("settle payments")
        raise ForbiddenError("access this restaurant", restaurant_id=restaurant_id)
    """

    code = "FORBIDDEN"

    def __init__(self, action: str | None = None, **log_context: Any):
        detail = f"Not allowed to {action}" if action else "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            **log_context,
        )


# =============================================================================
# 400 Bad Request
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Quantity must be at least 1", field="quantity")
    """

    code = "VALIDATION_ERROR"

    def __init__(self, detail: str, context: dict[str, Any] | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            context=context,
            **log_context,
        )


class PaymentAmountError(ValidationError):
    """Payment amount rejected."""

    code = "PAYMENT_AMOUNT"

    def __init__(self, amount: Decimal, reason: str, **log_context: Any):
        super().__init__(
            f"Invalid payment amount ({amount}): {reason}",
            context={"amount": amount},
            **log_context,
        )


class PriceMismatchError(ValidationError):
    """Client-supplied price differs from the menu price."""

    code = "PRICE_MISMATCH"

    def __init__(self, product_id: int, submitted: Decimal, actual: Decimal, **log_context: Any):
        super().__init__(
            f"Price for product {product_id} has changed",
            context={"product_id": product_id, "submitted_price": submitted, "price": actual},
            **log_context,
        )


# =============================================================================
# 422 Domain rule violations
# =============================================================================


class DomainRuleError(AppException):
    """A well-formed request that breaks a business rule (422)."""

    code = "DOMAIN_RULE"

    def __init__(self, detail: str, context: dict[str, Any] | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            context=context,
            **log_context,
        )


class InvalidTransitionError(DomainRuleError):
    """Status change not allowed by the transition graph."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        super().__init__(
            f"Invalid transition from '{from_status}' to '{to_status}' for {entity}",
            context={"entity": entity, "from_status": from_status, "to_status": to_status},
            **log_context,
        )


class UnsettledBalanceError(DomainRuleError):
    """Session still owns orders that are neither paid nor cancelled."""

    code = "UNSETTLED_BALANCE"

    def __init__(self, session_id: int, order_ids: list[int], **log_context: Any):
        super().__init__(
            "There are unpaid orders. Please settle all payments first.",
            context={"session_id": session_id, "order_ids": order_ids},
            **log_context,
        )


class OrdersStillInPipelineError(DomainRuleError):
    """Session still owns orders the kitchen has not finished."""

    code = "ORDERS_IN_PIPELINE"

    def __init__(self, session_id: int, order_ids: list[int], **log_context: Any):
        super().__init__(
            "There are orders still being prepared.",
            context={"session_id": session_id, "order_ids": order_ids},
            **log_context,
        )


class ItemAlreadyInProgressError(DomainRuleError):
    """Item already left the pending state and can no longer be reduced or removed."""

    code = "ITEM_IN_PROGRESS"

    def __init__(self, item_id: int, item_status: str, **log_context: Any):
        super().__init__(
            f"Cannot reduce or remove item {item_id} because it is already {item_status}",
            context={"order_item_id": item_id, "status": item_status},
            **log_context,
        )


class NothingToSettleError(DomainRuleError):
    """No unpaid, non-cancelled orders in the settlement scope."""

    code = "NOTHING_TO_SETTLE"

    def __init__(self, **log_context: Any):
        super().__init__("No unpaid orders to settle", **log_context)


# =============================================================================
# 409 Conflict
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Table already has an open session")
    """

    code = "CONFLICT"

    def __init__(self, detail: str, context: dict[str, Any] | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            context=context,
            **log_context,
        )


class DeviceLockedError(ConflictError):
    """Table session is bound to another guest device."""

    code = "DEVICE_LOCKED"

    def __init__(self, table_id: int, session_id: int, **log_context: Any):
        super().__init__(
            "This table is currently in use by another device.",
            context={"table_id": table_id, "session_id": session_id},
            **log_context,
        )


class AlreadyClaimedError(ConflictError):
    """Order is already claimed by another waiter."""

    code = "ALREADY_CLAIMED"

    def __init__(
        self,
        order_id: int,
        holder_id: int,
        holder_name: str | None = None,
        **log_context: Any,
    ):
        who = holder_name or f"waiter {holder_id}"
        super().__init__(
            f"Order {order_id} is already taken by {who}",
            context={"order_id": order_id, "claimed_by": {"id": holder_id, "name": holder_name}},
            **log_context,
        )


class SessionClosedOrInvalidError(ConflictError):
    """Referenced session is closed or does not belong to the table."""

    code = "SESSION_CLOSED_OR_INVALID"

    def __init__(self, session_id: int | None = None, **log_context: Any):
        super().__init__(
            "Session is closed or invalid",
            context={"session_id": session_id},
            **log_context,
        )


class ConcurrentModificationError(ConflictError):
    """Lock wait timed out or a competing write won; the operation may be retried."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, operation: str | None = None, **log_context: Any):
        super().__init__(
            "The resource was modified concurrently. Please retry.",
            context={"operation": operation} if operation else None,
            **log_context,
        )

