"""Protocol interfaces for swappable implementations.

Protocols use structural typing, so any class with matching methods
satisfies them:
- KeyValueStore: Redis in production, a dictionary in tests
- CatalogProvider: in-memory or an HTTP catalog service
- TaxRateProvider: a static table or an HTTP rate service
"""

from .catalog import CatalogProvider
from .kv_store import KeyValueStore
from .tax_rates import TaxRateProvider

__all__ = [
    "CatalogProvider",
    "KeyValueStore",
    "TaxRateProvider",
]
