"""Request DTOs for API endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class AddItemRequest(BaseModel):
    """Request DTO for adding a product to the cart.

    Quantities are validated by the cart service so that a bad value is
    reported with the ``invalid_quantity`` code rather than a schema error.
    """

    product_id: int = Field(..., description="Product ID")
    quantity: int = Field(1, description="Units to add")
    variation_id: int = Field(0, description="Variation ID, 0 for simple products")
    variation: dict[str, str] | None = Field(None, description="Selected variation attributes")
    data: dict[str, Any] | None = Field(
        None,
        description="Line data (custom_price, discount_percent, discount_amount, notes)",
    )


class UpdateQuantityRequest(BaseModel):
    """Request DTO for changing a line quantity. Zero removes the line."""

    quantity: int = Field(..., description="New quantity")


class BatchAddRequest(BaseModel):
    items: list[AddItemRequest] = Field(..., description="Products to add in one pass", min_length=1)


class CouponRequest(BaseModel):
    code: str = Field(..., description="Coupon code (case-insensitive)", min_length=1)


class LocationRequest(BaseModel):
    """Customer address used for tax jurisdiction."""

    country: str = Field("", description="ISO country code")
    state: str = Field("", description="State or region code")
    postcode: str = Field("", description="Postal code")
    city: str = Field("", description="City")


class CustomerRequest(BaseModel):
    customer_id: int | None = Field(None, description="Customer ID, null for a guest")


class BatchAvailabilityRequest(BaseModel):
    products: dict[int, int] = Field(..., description="Requested quantity per product ID")


class StockUpdateRequest(BaseModel):
    """Request DTO for an authoritative stock change."""

    quantity: int = Field(..., description="Amount to set, add or subtract", ge=0)
    operation: Literal["set", "increase", "decrease"] = Field("set", description="Stock operation")
    reason: str = Field("pos_adjustment", description="Audit reason")
    note: str = Field("", description="Free-text audit note")
    force: bool = Field(False, description="Allow negative stock without backorders")


class ReserveStockRequest(BaseModel):
    product_id: int = Field(..., description="Product or variation ID")
    quantity: int = Field(..., description="Units to hold")
    order_key: str = Field(..., description="Cart or order key owning the hold", min_length=1)
    ttl: int | None = Field(None, description="Lease length in seconds", gt=0)


class RefreshStockRequest(BaseModel):
    product_ids: list[int] = Field(..., description="Products whose stock snapshot is rebuilt", min_length=1)


class ProductTaxRequest(BaseModel):
    price: str | None = Field(None, description="Price to tax; defaults to the catalog price")
    location: LocationRequest | None = Field(None, description="Customer location")
