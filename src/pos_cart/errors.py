"""Error taxonomy shared by every component.

Each public operation either returns a success payload or raises one of
these. The category classes map onto transport status codes in the
handler layer; the concrete classes carry the stable ``code`` strings
that terminals switch on.

Categories:
    - ValidationError: bad input, cart unchanged
    - NotFoundError: unknown item, reservation or session
    - ConflictError: stock or lock contention, retryable by the operator
    - DegradedError: a dependency is unavailable
    - InternalError: unexpected failure, state left as before the call
"""

from typing import Any


class PosError(Exception):
    """Base class for all reported errors."""

    code: str = "pos_error"
    default_message: str = "Point-of-sale operation failed."

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# Categories


class ValidationError(PosError):
    code = "validation_error"
    default_message = "Invalid request."


class NotFoundError(PosError):
    code = "not_found"
    default_message = "Resource not found."


class ConflictError(PosError):
    code = "conflict"
    default_message = "Resource conflict."


class DegradedError(PosError):
    code = "degraded"
    default_message = "A dependency is unavailable."


class InternalError(PosError):
    code = "internal_error"
    default_message = "Unexpected internal error."


# Validation


class InvalidProductError(ValidationError):
    code = "invalid_product"
    default_message = "Invalid product."


class InvalidQuantityError(ValidationError):
    code = "invalid_quantity"
    default_message = "Quantity must be a positive integer."


class CouponInvalidError(ValidationError):
    code = "coupon_invalid"
    default_message = "Invalid coupon code."


class StockNotManagedError(ValidationError):
    code = "stock_not_managed"
    default_message = "Stock is not managed for this product."


class NegativeStockError(ValidationError):
    code = "negative_stock"
    default_message = "Stock cannot be negative and backorders are not allowed."


class StockTooHighError(ValidationError):
    code = "stock_too_high"
    default_message = "Stock quantity exceeds the configured maximum."


class MissingSessionDataError(ValidationError):
    code = "missing_session_data"
    default_message = "Session ID and terminal ID are required."


class InvalidUserError(ValidationError):
    code = "invalid_user"
    default_message = "Valid user required for session creation."


# Not found


class ItemNotFoundError(NotFoundError):
    code = "item_not_found"
    default_message = "Cart item not found."


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"
    default_message = "Product not found."


class ReservationNotFoundError(NotFoundError):
    code = "reservation_not_found"
    default_message = "Stock reservation not found."


class SessionInvalidError(NotFoundError):
    code = "session_invalid"
    default_message = "Session not found or expired."


# Conflicts


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"
    default_message = "Insufficient stock."


class OutOfStockError(ConflictError):
    code = "out_of_stock"
    default_message = "Product is out of stock."


class CouponAlreadyAppliedError(ConflictError):
    code = "coupon_already_applied"
    default_message = "Coupon already applied."


class TerminalMismatchError(ConflictError):
    code = "terminal_mismatch"
    default_message = "Session does not belong to this terminal."


class LockTimeoutError(ConflictError):
    code = "lock_timeout"
    default_message = "Could not acquire the stock lock in time."


# Internal


class StorageError(InternalError):
    code = "storage_error"
    default_message = "Storage backend failure."
