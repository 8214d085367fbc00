"""In-memory catalog used by tests, the demo and offline terminals."""

import logging
import threading
from collections.abc import Iterable

from pos_cart.entities import (
    STOCK_STATUS_IN_STOCK,
    STOCK_STATUS_ON_BACKORDER,
    STOCK_STATUS_OUT_OF_STOCK,
    Coupon,
    Product,
)

logger = logging.getLogger(__name__)


class InMemoryCatalog:
    """Dictionary-backed implementation of the CatalogProvider protocol."""

    def __init__(
        self,
        products: Iterable[Product] = (),
        coupons: Iterable[Coupon] = (),
    ) -> None:
        self._products: dict[int, Product] = {}
        self._coupons: dict[str, Coupon] = {}
        self._mutex = threading.Lock()
        for product in products:
            self.add_product(product)
        for coupon in coupons:
            self.add_coupon(coupon)

    def add_product(self, product: Product) -> None:
        with self._mutex:
            self._products[product.id] = product
            if product.parent_id is not None:
                parent = self._products.get(product.parent_id)
                if parent is not None and product.id not in parent.variation_ids:
                    parent.variation_ids.append(product.id)

    def add_coupon(self, coupon: Coupon) -> None:
        with self._mutex:
            self._coupons[coupon.code.lower()] = coupon

    def get_product(self, product_id: int) -> Product | None:
        with self._mutex:
            return self._products.get(product_id)

    def list_product_ids(self, managed_only: bool = False) -> list[int]:
        with self._mutex:
            return sorted(
                pid
                for pid, product in self._products.items()
                if product.status == "publish" and (product.manage_stock or not managed_only)
            )

    def set_stock_quantity(self, product_id: int, quantity: int) -> None:
        with self._mutex:
            product = self._products.get(product_id)
            if product is None:
                raise KeyError(product_id)
            product.stock_quantity = quantity
            if quantity > 0:
                product.stock_status = STOCK_STATUS_IN_STOCK
            elif product.backorders_allowed:
                product.stock_status = STOCK_STATUS_ON_BACKORDER
            else:
                product.stock_status = STOCK_STATUS_OUT_OF_STOCK
        logger.debug("Catalog stock for %d set to %d", product_id, quantity)

    def get_coupon(self, code: str) -> Coupon | None:
        with self._mutex:
            return self._coupons.get(code.strip().lower())
