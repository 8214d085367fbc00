"""POS Cart Core - multi-terminal cart, session, inventory and tax coordination.

This package provides a layered architecture for point-of-sale terminals
sharing one store:

Layers:
    - protocols: Interface contracts (KeyValueStore, CatalogProvider, TaxRateProvider)
    - repositories: Storage and collaborator implementations
    - services: Business logic (cache, sessions, inventory, tax, cart)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from pos_cart.repositories import InMemoryCatalog, InMemoryKeyValueStore, StaticTaxRateProvider
    from pos_cart.services import PosServices

    services = PosServices.create(InMemoryKeyValueStore(), InMemoryCatalog(), StaticTaxRateProvider())
    session = services.sessions.resolve_session("T1", user_id=7).session
    cart = services.cart_for(session)
    ```

For HTTP API:
    ```python
    from pos_cart.api.app import app
    ```
"""

from pos_cart.config import get_redis_client, settings
from pos_cart.entities import Cart, CartItem, CartTotals, Product, Session, StockReservation, TaxResult
from pos_cart.errors import PosError
from pos_cart.handlers import CartHandler, InventoryHandler, SessionHandler
from pos_cart.protocols import CatalogProvider, KeyValueStore, TaxRateProvider
from pos_cart.repositories import InMemoryKeyValueStore, RedisKeyValueStore
from pos_cart.services import (
    CacheService,
    CartService,
    InventoryService,
    PosServices,
    SessionService,
    TaxService,
)

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "CatalogProvider",
    "KeyValueStore",
    "TaxRateProvider",
    # Services (business logic)
    "CacheService",
    "CartService",
    "InventoryService",
    "PosServices",
    "SessionService",
    "TaxService",
    # Handlers (HTTP)
    "CartHandler",
    "InventoryHandler",
    "SessionHandler",
    # Repositories (data access)
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    # Entities (domain models)
    "Cart",
    "CartItem",
    "CartTotals",
    "Product",
    "Session",
    "StockReservation",
    "TaxResult",
    # Errors
    "PosError",
]
