"""HTTP tax-rate collaborator.

    GET /rates?country=..&state=..&postcode=..&city=..&tax_class=..
    -> {"rates": [{"id", "rate", "label", "compound", "priority"}, ...]}
"""

import httpx

from pos_cart.config import settings
from pos_cart.entities import CustomerLocation, TaxRate


class HttpTaxRateProvider:
    """httpx-based implementation of the TaxRateProvider protocol.

    Lookup failures propagate as httpx errors; the tax engine turns them
    into a zero-tax fallback result.
    """

    def __init__(self, base_url: str, timeout: float | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or settings.http_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=self._base_url, timeout=self._timeout)
        return self._client

    @classmethod
    def create(cls, base_url: str | None = None, timeout: float | None = None) -> "HttpTaxRateProvider":
        url = base_url or settings.tax_api_url
        if not url:
            raise ValueError("TAX_API_URL is not configured")
        return cls(base_url=url, timeout=timeout)

    def find_rates(self, location: CustomerLocation, tax_class: str) -> list[TaxRate]:
        params = {**location.to_dict(), "tax_class": tax_class}
        response = self.client.get("/rates", params=params)
        response.raise_for_status()
        rates = [TaxRate.from_dict(row) for row in response.json().get("rates", [])]
        return sorted(rates, key=lambda rate: rate.priority)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
