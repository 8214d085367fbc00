"""Repository layer for data access.

Concrete implementations of the protocols: shared key-value storage
(Redis or in-process) and the catalog and tax-rate collaborators
(in-memory or HTTP). They satisfy the protocols structurally; nothing
here inherits from them.
"""

from pos_cart.protocols import CatalogProvider, KeyValueStore, TaxRateProvider

from .http_catalog import HttpCatalogProvider
from .http_tax_rates import HttpTaxRateProvider
from .memory_catalog import InMemoryCatalog
from .memory_store import InMemoryKeyValueStore
from .redis_store import RedisKeyValueStore
from .static_tax_rates import StaticTaxRateProvider, TaxRateRule

__all__ = [
    "CatalogProvider",
    "HttpCatalogProvider",
    "HttpTaxRateProvider",
    "InMemoryCatalog",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "StaticTaxRateProvider",
    "TaxRateProvider",
    "TaxRateRule",
]
