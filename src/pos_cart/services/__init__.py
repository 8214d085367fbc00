"""Service layer for business logic.

Services depend on protocols (interfaces), not concrete implementations,
so every component runs over the in-memory store in tests and over
Redis in deployment.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)

Usage:
    ```python
    from pos_cart.services import PosServices

    services = PosServices.create(store, catalog, rates)
    cart = services.cart_for(session)
    cart.add_item(42, 2)
    ```
"""

from .cache_service import CacheService
from .cart_service import CartService, resolve_unit_price
from .inventory_service import InventoryService, calculate_new_stock
from .pos_services import PosServices
from .session_service import SessionService
from .tax_service import TaxService, calc_tax

__all__ = [
    "CacheService",
    "CartService",
    "InventoryService",
    "PosServices",
    "SessionService",
    "TaxService",
    "calc_tax",
    "calculate_new_stock",
    "resolve_unit_price",
]
