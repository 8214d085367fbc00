"""Domain entities for internal representation.

Plain dataclasses used by services and repositories. They are NOT used
for API contracts; use the DTOs from the dto package for that.

Entities carry ``to_dict``/``from_dict`` so they can be persisted as
JSON through any KeyValueStore.
"""

from .cache_entry import CacheEntry
from .cart import Cart, CartItem, CartState, CartTotals, generate_item_key
from .catalog import (
    STOCK_STATUS_IN_STOCK,
    STOCK_STATUS_ON_BACKORDER,
    STOCK_STATUS_OUT_OF_STOCK,
    Coupon,
    CustomerLocation,
    Product,
)
from .inventory import (
    BatchAvailability,
    Order,
    OrderLine,
    ProductAvailability,
    ReleaseResult,
    ReservationStatus,
    ReservationUpdate,
    StockReservation,
    StockStatusReport,
    StockUpdateResult,
    StockView,
)
from .session import ResolvedSession, Session, SessionCookie
from .tax import ItemTax, ProductTax, TaxableItem, TaxLine, TaxRate, TaxResult

__all__ = [
    "STOCK_STATUS_IN_STOCK",
    "STOCK_STATUS_ON_BACKORDER",
    "STOCK_STATUS_OUT_OF_STOCK",
    "BatchAvailability",
    "CacheEntry",
    "Cart",
    "CartItem",
    "CartState",
    "CartTotals",
    "Coupon",
    "CustomerLocation",
    "ItemTax",
    "Order",
    "OrderLine",
    "Product",
    "ProductAvailability",
    "ProductTax",
    "ReleaseResult",
    "ReservationStatus",
    "ReservationUpdate",
    "ResolvedSession",
    "Session",
    "SessionCookie",
    "StockReservation",
    "StockStatusReport",
    "StockUpdateResult",
    "StockView",
    "TaxableItem",
    "TaxLine",
    "TaxRate",
    "TaxResult",
    "generate_item_key",
]
