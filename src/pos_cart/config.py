import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

import redis
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _default_group_max_items() -> dict[str, int]:
    return {
        "products": int(os.getenv("CACHE_PRODUCTS_MAX_ITEMS", "1000")),
        "categories": int(os.getenv("CACHE_CATEGORIES_MAX_ITEMS", "200")),
        "customers": int(os.getenv("CACHE_CUSTOMERS_MAX_ITEMS", "500")),
        "stock": int(os.getenv("CACHE_STOCK_MAX_ITEMS", "2000")),
        "search": int(os.getenv("CACHE_SEARCH_MAX_ITEMS", "100")),
        "tax": int(os.getenv("CACHE_TAX_MAX_ITEMS", "500")),
    }


def _default_group_ttls() -> dict[str, int]:
    return {
        "products": int(os.getenv("CACHE_PRODUCTS_TTL", "300")),  # 5 minutes
        "categories": int(os.getenv("CACHE_CATEGORIES_TTL", "900")),  # 15 minutes
        "customers": int(os.getenv("CACHE_CUSTOMERS_TTL", "600")),  # 10 minutes
        "stock": int(os.getenv("CACHE_STOCK_TTL", "60")),  # 1 minute
        "search": int(os.getenv("CACHE_SEARCH_TTL", "120")),  # 2 minutes
        "tax": int(os.getenv("CACHE_TAX_TTL", "300")),  # 5 minutes
    }


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Redis
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")
    key_namespace: str = os.getenv("POS_KEY_NAMESPACE", "pos")

    # Sessions
    session_timeout: int = int(os.getenv("SESSION_TIMEOUT", "14400"))  # 4 hours
    session_extension: int = int(os.getenv("SESSION_EXTENSION", "3600"))  # 1 hour
    session_max_lifetime: int = int(os.getenv("SESSION_MAX_LIFETIME", "86400"))  # 24 hours
    session_cookie_prefix: str = os.getenv("SESSION_COOKIE_PREFIX", "pos_session_")
    session_cookie_secure: bool = _env_bool("SESSION_COOKIE_SECURE", "true")

    # Inventory
    reservation_timeout: int = int(os.getenv("RESERVATION_TIMEOUT", "300"))  # 5 minutes
    reservation_grace: int = int(os.getenv("RESERVATION_GRACE", "3600"))
    stock_lock_timeout: float = float(os.getenv("STOCK_LOCK_TIMEOUT", "5"))
    stock_lock_wait: float = float(os.getenv("STOCK_LOCK_WAIT", "2"))
    low_stock_amount: int = int(os.getenv("LOW_STOCK_AMOUNT", "2"))
    max_stock_quantity: int = int(os.getenv("MAX_STOCK_QUANTITY", "999999"))

    # Cache
    cache_group_ttls: dict[str, int] = field(default_factory=_default_group_ttls)
    cache_group_max_items: dict[str, int] = field(default_factory=_default_group_max_items)
    cache_group_max_bytes: int = int(os.getenv("CACHE_GROUP_MAX_BYTES", str(10 * 1024 * 1024)))
    cache_max_total_bytes: int = int(os.getenv("CACHE_MAX_TOTAL_BYTES", str(50 * 1024 * 1024)))
    cache_warning_bytes: int = int(os.getenv("CACHE_WARNING_BYTES", str(40 * 1024 * 1024)))
    cache_lock_timeout: float = float(os.getenv("CACHE_LOCK_TIMEOUT", "2"))
    cache_lock_wait: float = float(os.getenv("CACHE_LOCK_WAIT", "0.5"))

    # Tax
    taxes_enabled: bool = _env_bool("TAXES_ENABLED", "true")
    prices_include_tax: bool = _env_bool("PRICES_INCLUDE_TAX", "false")
    round_at_subtotal: bool = _env_bool("TAX_ROUND_AT_SUBTOTAL", "false")
    tax_display_mode: str = os.getenv("TAX_DISPLAY_MODE", "excl")
    base_country: str = os.getenv("STORE_COUNTRY", "US")
    base_state: str = os.getenv("STORE_STATE", "")
    base_postcode: str = os.getenv("STORE_POSTCODE", "")
    base_city: str = os.getenv("STORE_CITY", "")
    currency_symbol: str = os.getenv("CURRENCY_SYMBOL", "$")
    price_decimals: int = int(os.getenv("PRICE_DECIMALS", "2"))

    # External collaborators
    catalog_api_url: str | None = os.getenv("CATALOG_API_URL")
    tax_api_url: str | None = os.getenv("TAX_API_URL")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "true").lower() == "true"

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def cache_ttl(self, group: str) -> int:
        """Default TTL for a cache group (falls back to 5 minutes)."""
        return self.cache_group_ttls.get(group, 300)

    def cache_max_items(self, group: str) -> int:
        """Item cap for a cache group (falls back to 100)."""
        return self.cache_group_max_items.get(group, 100)

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.session_timeout <= 0:
            raise ValueError("SESSION_TIMEOUT must be positive")

        if self.session_max_lifetime < self.session_timeout:
            raise ValueError("SESSION_MAX_LIFETIME must be at least SESSION_TIMEOUT")

        if self.reservation_timeout <= 0:
            raise ValueError("RESERVATION_TIMEOUT must be positive")

        if self.tax_display_mode not in ("incl", "excl"):
            raise ValueError(
                f"TAX_DISPLAY_MODE must be 'incl' or 'excl', got {self.tax_display_mode!r}"
            )

        if not 0 <= self.price_decimals <= 6:
            raise ValueError("PRICE_DECIMALS must be between 0 and 6")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """Create a Redis client instance."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=False,
    )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the service process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
