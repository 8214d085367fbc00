"""Product catalog protocol.

The catalog is the authoritative source of products, prices, stock
quantities and coupons. The cart core only reads from it, except for
``set_stock_quantity`` which inventory updates write through.
"""

from typing import Protocol, runtime_checkable

from pos_cart.entities import Coupon, Product


@runtime_checkable
class CatalogProvider(Protocol):
    """Protocol for catalog collaborators."""

    def get_product(self, product_id: int) -> Product | None:
        """Load a product or variation by id.

        Returns:
            The product, or None if it does not exist
        """
        ...

    def list_product_ids(self, managed_only: bool = False) -> list[int]:
        """List published product ids.

        Args:
            managed_only: Only products whose stock is managed
        """
        ...

    def set_stock_quantity(self, product_id: int, quantity: int) -> None:
        """Persist a new authoritative stock quantity."""
        ...

    def get_coupon(self, code: str) -> Coupon | None:
        """Look up a coupon by its (case-insensitive) code."""
        ...
