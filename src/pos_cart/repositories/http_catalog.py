"""HTTP catalog collaborator.

Talks to the store's product service over a small JSON API:

    GET  /products/{id}
    GET  /products?managed_only=1
    PUT  /products/{id}/stock   {"stock_quantity": n}
    GET  /coupons/{code}
"""

import logging

import httpx

from pos_cart.config import settings
from pos_cart.entities import Coupon, Product

logger = logging.getLogger(__name__)


class HttpCatalogProvider:
    """httpx-based implementation of the CatalogProvider protocol.

    Example:
        ```python
        catalog = HttpCatalogProvider.create(base_url="http://catalog:8080")
        product = catalog.get_product(42)
        ```
    """

    def __init__(self, base_url: str, timeout: float | None = None) -> None:
        """Initialize the provider.

        Args:
            base_url: Catalog service base URL.
            timeout: Request timeout in seconds. Defaults to settings.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or settings.http_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy-load the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._client

    @classmethod
    def create(cls, base_url: str | None = None, timeout: float | None = None) -> "HttpCatalogProvider":
        """Factory method using CATALOG_API_URL when no URL is given."""
        url = base_url or settings.catalog_api_url
        if not url:
            raise ValueError("CATALOG_API_URL is not configured")
        return cls(base_url=url, timeout=timeout)

    def get_product(self, product_id: int) -> Product | None:
        response = self.client.get(f"/products/{product_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return Product.from_dict(response.json())

    def list_product_ids(self, managed_only: bool = False) -> list[int]:
        params = {"managed_only": "1"} if managed_only else {}
        response = self.client.get("/products", params=params)
        response.raise_for_status()
        data = response.json()
        return [int(pid) for pid in data.get("ids", [])]

    def set_stock_quantity(self, product_id: int, quantity: int) -> None:
        response = self.client.put(f"/products/{product_id}/stock", json={"stock_quantity": quantity})
        response.raise_for_status()
        logger.debug("Catalog stock for %d set to %d", product_id, quantity)

    def get_coupon(self, code: str) -> Coupon | None:
        response = self.client.get(f"/coupons/{code.strip().lower()}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return Coupon.from_dict(response.json())

    def close(self) -> None:
        """Close the HTTP client. Should be called on shutdown."""
        if self._client is not None:
            self._client.close()
            self._client = None
