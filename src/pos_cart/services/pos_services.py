"""Wiring of the five components over one shared store."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pos_cart.entities import Session
from pos_cart.models import PerformanceMetrics
from pos_cart.protocols import CatalogProvider, KeyValueStore, TaxRateProvider

from .cache_service import CacheService
from .cart_service import CartService
from .inventory_service import InventoryService
from .session_service import SessionService
from .tax_service import TaxService

logger = logging.getLogger(__name__)


@dataclass
class PosServices:
    """The component graph for one process.

    Terminals never share in-process state; everything cross-terminal goes
    through ``store``. Carts are created per request with ``cart_for``.

    Example:
        ```python
        services = PosServices.create(store, catalog, rates)
        resolved = services.sessions.resolve_session("T1", user_id=7)
        cart = services.cart_for(resolved.session)
        ```
    """

    store: KeyValueStore
    catalog: CatalogProvider
    cache: CacheService
    sessions: SessionService
    inventory: InventoryService
    taxes: TaxService
    rates: TaxRateProvider | None = None
    clock: Callable[[], float] = time.time
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    @classmethod
    def create(
        cls,
        store: KeyValueStore,
        catalog: CatalogProvider,
        rates: TaxRateProvider,
        clock: Callable[[], float] | None = None,
    ) -> "PosServices":
        """Build every component with settings-driven defaults.

        Args:
            store: Shared key-value backend
            catalog: Product and coupon source
            rates: Jurisdiction tax-rate source
            clock: Time source; defaults to ``time.time``

        Returns:
            A fully wired PosServices
        """
        clock = clock or time.time
        cache = CacheService.create(store, clock=clock)
        return cls(
            store=store,
            catalog=catalog,
            cache=cache,
            sessions=SessionService.create(store, clock=clock),
            inventory=InventoryService.create(store, catalog, cache, clock=clock),
            taxes=TaxService.create(rates, cache=cache, catalog=catalog),
            rates=rates,
            clock=clock,
        )

    def cart_for(self, session: Session) -> CartService:
        return CartService(
            session,
            sessions=self.sessions,
            inventory=self.inventory,
            taxes=self.taxes,
            catalog=self.catalog,
            metrics=self.metrics,
            clock=self.clock,
        )

    def run_maintenance(self) -> dict[str, Any]:
        """Run every periodic sweep: sessions, reservations and cache entries."""
        result = {
            "sessions_removed": self.sessions.cleanup_expired(),
            "reservations_removed": self.inventory.cleanup_expired_reservations(),
            "cache_entries_removed": self.cache.cleanup_expired(),
        }
        logger.info(
            "Maintenance sweep removed %d sessions, %d reservations, %d cache entries",
            result["sessions_removed"],
            result["reservations_removed"],
            result["cache_entries_removed"],
        )
        return result

    def is_healthy(self) -> bool:
        return self.store.health_check()
