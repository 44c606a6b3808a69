"""
Domain error taxonomy.

Every error carries a stable machine-readable `code`, the HTTP status it maps
to, a user-safe message and optional structured details. The API layer
renders them as {"code", "message", "details"}.
"""

from typing import Any, Optional

from fastapi import status


class DomainError(Exception):
    code = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class Internal(DomainError):
    pass


# 400
class ValidationFailed(DomainError):
    code = "ValidationFailed"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request validation failed"


class CartItemInvalid(ValidationFailed):
    code = "CartItemInvalid"
    default_message = "Cart item is missing required fields"


class CartEmpty(ValidationFailed):
    code = "CartEmpty"
    default_message = "Cart is empty"


class DiscountInvalid(ValidationFailed):
    code = "DiscountInvalid"
    default_message = "Invalid or expired discount code"


class PaymentIncomplete(ValidationFailed):
    code = "PaymentIncomplete"
    default_message = "Payment has not been completed"


class DepositNotAllowed(ValidationFailed):
    code = "DepositNotAllowed"
    default_message = "Deposits are not allowed for one or more items. Please pay the full amount"


class DepositBelowMinimum(ValidationFailed):
    code = "DepositBelowMinimum"
    default_message = "Payment is below the minimum deposit"


class DepositDeadlinePassed(ValidationFailed):
    code = "DepositDeadlinePassed"
    default_message = "Deposit deadline has passed. Please pay the full amount"


# 401 / 403
class Unauthorized(DomainError):
    code = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(DomainError):
    code = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


# 404
class NotFound(DomainError):
    code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class CartNotFound(NotFound):
    code = "CartNotFound"
    default_message = "Cart not found"


class CartItemNotFound(NotFound):
    code = "CartItemNotFound"
    default_message = "Cart item not found"


class CheckoutNotFound(NotFound):
    code = "CheckoutNotFound"
    default_message = "Checkout not found"


class OrderNotFound(NotFound):
    code = "OrderNotFound"
    default_message = "Order not found. Please check your email and confirmation code"


class EventNotFound(NotFound):
    code = "EventNotFound"
    default_message = "Event not found"


class PaymentNotFound(NotFound):
    code = "PaymentNotFound"
    default_message = "Payment not found"


# 409
class Conflict(DomainError):
    code = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request conflicts with the current state"


class CartAlreadyActive(Conflict):
    code = "CartAlreadyActive"
    default_message = "An active cart already exists"


class AccountAlreadyExists(Conflict):
    code = "AccountAlreadyExists"
    default_message = "An account with this email already exists"


class CheckoutNotPending(Conflict):
    code = "CheckoutNotPending"
    default_message = "Checkout has already been processed"


class CheckoutExpired(Conflict):
    code = "CheckoutExpired"
    default_message = "Checkout has expired. Please start a new checkout"


class CheckoutInProgress(Conflict):
    code = "CheckoutInProgress"
    default_message = "Checkout is already being completed"


class PaymentAlreadyApplied(Conflict):
    code = "PaymentAlreadyApplied"
    default_message = "Payment has already been applied to an order"


class InventoryExhausted(Conflict):
    code = "InventoryExhausted"
    default_message = "Tickets are no longer available. Please refresh and try again"


class SeatsUnavailable(Conflict):
    code = "SeatsUnavailable"
    default_message = "One or more seats are not available"
