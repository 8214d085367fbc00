"""Response DTOs for API endpoints.

Money amounts are decimal strings so no precision is lost in transit.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    code: str = Field(..., description="Stable error code, e.g. insufficient_stock")
    message: str = Field(..., description="Human-readable message")
    details: dict[str, Any] | None = Field(None, description="Error context")


class ErrorResponse(BaseModel):
    """Body returned for every reported error."""

    error: ErrorBody


class SessionResponse(BaseModel):
    session_id: str = Field(..., description="Opaque session identifier")
    terminal_id: str = Field(..., description="Sanitized terminal identifier")
    user_id: int = Field(..., description="Cashier user ID")
    expires_at: float = Field(..., description="Expiry (Unix timestamp)")
    remaining_time: float = Field(..., description="Seconds until expiry", ge=0)
    created: bool = Field(False, description="Whether this request issued a new session")


class CartItemResponse(BaseModel):
    key: str = Field(..., description="Deterministic line key")
    product_id: int
    variation_id: int = 0
    variation: dict[str, str] = Field(default_factory=dict)
    quantity: int
    data: dict[str, Any] = Field(default_factory=dict)
    name: str = ""
    tax_class: str = ""
    unit_price: str
    line_subtotal: str
    line_subtotal_tax: str
    line_total: str
    line_tax: str
    reservation_id: str | None = Field(None, description="Advisory stock hold, if one was granted")
    added_at: float
    updated_at: float


class TaxLineResponse(BaseModel):
    rate_id: str
    label: str
    compound: bool
    rate_percent: str
    tax_total: str
    formatted_tax_total: str


class CartTotalsResponse(BaseModel):
    """Cart totals; ``cart_total`` is the amount due after discounts."""

    subtotal: str
    subtotal_tax: str
    total: str
    total_tax: str
    discount_total: str
    discount_tax: str
    cart_total: str
    tax_lines: list[TaxLineResponse] = Field(default_factory=list)
    items_count: int = Field(0, description="Sum of line quantities", ge=0)
    tax_error: bool = Field(False, description="Totals were computed without tax")
    display_text: str = ""
    formatted: dict[str, str] = Field(default_factory=dict)


class CartContentsResponse(BaseModel):
    items: list[CartItemResponse] = Field(default_factory=list)
    totals: CartTotalsResponse
    count: int = Field(..., description="Sum of all item quantities", ge=0)
    hash: str = Field(..., description="Fingerprint of items and coupons")
    customer: dict[str, Any] = Field(default_factory=dict)
    coupons: list[str] = Field(default_factory=list)
    dirty: bool = Field(False, description="Totals are stale (only when calculate=false)")


class BatchAddResponse(BaseModel):
    success: bool
    added: list[CartItemResponse] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    totals: CartTotalsResponse


class CartStatusResponse(BaseModel):
    valid: bool = Field(..., description="Session is live and every line can be fulfilled")
    stock_issues: list[dict[str, Any]] = Field(default_factory=list)
    session_valid: bool


class ReservationResponse(BaseModel):
    id: str
    product_id: int
    quantity: int
    order_key: str
    owner: str = ""
    created_at: float
    expires_at: float
    status: str
    updated_at: float | None = None


class StockViewResponse(BaseModel):
    product_id: int
    current_stock: int | None
    stock_status: str
    manage_stock: bool
    backorders: str
    low_stock_amount: int | None = None
    low_stock_threshold: int
    reserved_stock: int
    available_stock: int | None = Field(..., description="Null when stock is not tracked")
    is_low_stock: bool
    last_updated: float
    reservations: list[dict[str, Any]] = Field(default_factory=list)
    variations: list[dict[str, Any]] = Field(default_factory=list)
    from_cache: bool = False


class StockUpdateResponse(BaseModel):
    product_id: int
    previous_stock: int
    new_stock: int
    operation: str
    quantity_changed: int
    timestamp: float
    terminal_id: str = ""
    user_id: int | None = None


class CacheHealthResponse(BaseModel):
    status: str = Field(..., description="'good' or 'warning'")
    hit_rate: float = Field(..., description="Hit rate percentage", ge=0.0, le=100.0)
    memory_usage: str
    backend_available: bool
    recommendations: list[str] = Field(default_factory=list)


class MaintenanceResponse(BaseModel):
    sessions_removed: int = Field(..., ge=0)
    reservations_removed: int = Field(..., ge=0)
    cache_entries_removed: int = Field(..., ge=0)


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    store_healthy: bool = Field(..., description="Whether the shared store is reachable")
