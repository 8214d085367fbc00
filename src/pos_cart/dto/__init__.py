"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import (
    AddItemRequest,
    BatchAddRequest,
    BatchAvailabilityRequest,
    CouponRequest,
    CustomerRequest,
    LocationRequest,
    ProductTaxRequest,
    RefreshStockRequest,
    ReserveStockRequest,
    StockUpdateRequest,
    UpdateQuantityRequest,
)
from .responses import (
    BatchAddResponse,
    CacheHealthResponse,
    CartContentsResponse,
    CartItemResponse,
    CartStatusResponse,
    CartTotalsResponse,
    ErrorBody,
    ErrorResponse,
    HealthCheckResponse,
    MaintenanceResponse,
    ReservationResponse,
    SessionResponse,
    StockUpdateResponse,
    StockViewResponse,
    TaxLineResponse,
)

__all__ = [
    "AddItemRequest",
    "BatchAddRequest",
    "BatchAvailabilityRequest",
    "CouponRequest",
    "CustomerRequest",
    "LocationRequest",
    "ProductTaxRequest",
    "RefreshStockRequest",
    "ReserveStockRequest",
    "StockUpdateRequest",
    "UpdateQuantityRequest",
    "BatchAddResponse",
    "CacheHealthResponse",
    "CartContentsResponse",
    "CartItemResponse",
    "CartStatusResponse",
    "CartTotalsResponse",
    "ErrorBody",
    "ErrorResponse",
    "HealthCheckResponse",
    "MaintenanceResponse",
    "ReservationResponse",
    "SessionResponse",
    "StockUpdateResponse",
    "StockViewResponse",
    "TaxLineResponse",
]
