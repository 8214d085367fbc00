"""Tax engine: jurisdiction rates, compound taxes and rounding policy."""

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from pos_cart.config import settings
from pos_cart.entities import (
    CustomerLocation,
    ItemTax,
    ProductTax,
    TaxableItem,
    TaxLine,
    TaxRate,
    TaxResult,
)
from pos_cart.protocols import CatalogProvider, TaxRateProvider
from pos_cart.utils import content_hash, format_price, quantize_money

from .cache_service import GROUP_TAX, CacheService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def calc_tax(price: Decimal, rates: Iterable[TaxRate], price_includes_tax: bool = False) -> dict[str, Decimal]:
    """Split the tax contained in (or added to) ``price`` across ``rates``.

    Non-compound rates apply to the net price. Compound rates apply, in
    order, to the net price plus every tax computed before them. When
    ``price_includes_tax`` is set the same structure is reversed: compound
    rates are backed out first (last one first), then the non-compound
    rates together.

    Amounts are returned unrounded.

    Example:
        ```python
        calc_tax(Decimal("100"), [TaxRate(id="1", rate=Decimal("10"))])
        # {"1": Decimal("10")}
        ```
    """
    rates = list(rates)
    regular = [rate for rate in rates if not rate.compound]
    compound = [rate for rate in rates if rate.compound]
    taxes: dict[str, Decimal] = {}

    if price_includes_tax:
        remaining = Decimal(price)
        for rate in reversed(compound):
            tax = remaining - remaining / (1 + rate.rate / HUNDRED)
            taxes[rate.id] = taxes.get(rate.id, ZERO) + tax
            remaining -= tax
        regular_rate = 1 + sum((rate.rate for rate in regular), ZERO) / HUNDRED
        net = remaining / regular_rate
        for rate in regular:
            taxes[rate.id] = taxes.get(rate.id, ZERO) + net * rate.rate / HUNDRED
        return taxes

    base = Decimal(price)
    for rate in regular:
        taxes[rate.id] = taxes.get(rate.id, ZERO) + base * rate.rate / HUNDRED
    running = base + sum(taxes.values(), ZERO)
    for rate in compound:
        tax = running * rate.rate / HUNDRED
        taxes[rate.id] = taxes.get(rate.id, ZERO) + tax
        running += tax
    return taxes


class TaxService:
    """Cart and product tax computation with a cached result per input set.

    Two rounding policies are supported and never mixed within a call:

    - per line (default): each line's tax for each rate is rounded half-up
      to the currency precision, and cart totals are exact sums of the
      rounded values
    - at subtotal: line taxes stay unrounded, each rate's cart total is
      rounded half-up once, and ``total_tax`` is the sum of those rounded
      rate totals

    Example:
        ```python
        taxes = TaxService(rates=StaticTaxRateProvider(rules), cache=cache)
        result = taxes.calculate_cart_taxes(items, CustomerLocation(country="US"))
        result.total_tax
        ```
    """

    def __init__(
        self,
        rates: TaxRateProvider,
        cache: CacheService | None = None,
        catalog: CatalogProvider | None = None,
        taxes_enabled: bool | None = None,
        prices_include_tax: bool | None = None,
        round_at_subtotal: bool | None = None,
        display_mode: str | None = None,
        base_location: CustomerLocation | None = None,
        currency_symbol: str | None = None,
        decimals: int | None = None,
    ) -> None:
        """Initialize the tax engine.

        Args:
            rates: Jurisdiction rate source.
            cache: Cache service holding computed results. None disables caching.
            catalog: Product source for ``calculate_product_tax``.
            taxes_enabled: Store-wide tax switch.
            prices_include_tax: Catalog prices already contain tax.
            round_at_subtotal: Round per rate at cart level instead of per line.
            display_mode: "incl" or "excl" cart display.
            base_location: Store location used when the customer has none.
            currency_symbol: Symbol used in formatted amounts.
            decimals: Currency precision.
        """
        self._rates = rates
        self._cache = cache
        self._catalog = catalog
        self._taxes_enabled = settings.taxes_enabled if taxes_enabled is None else taxes_enabled
        self._prices_include_tax = settings.prices_include_tax if prices_include_tax is None else prices_include_tax
        self._round_at_subtotal = settings.round_at_subtotal if round_at_subtotal is None else round_at_subtotal
        self._display_mode = display_mode or settings.tax_display_mode
        self._base_location = base_location or CustomerLocation(
            country=settings.base_country,
            state=settings.base_state,
            postcode=settings.base_postcode,
            city=settings.base_city,
        )
        self._currency_symbol = settings.currency_symbol if currency_symbol is None else currency_symbol
        self._decimals = settings.price_decimals if decimals is None else decimals

    @classmethod
    def create(
        cls,
        rates: TaxRateProvider,
        cache: CacheService | None = None,
        catalog: CatalogProvider | None = None,
    ) -> "TaxService":
        return cls(rates=rates, cache=cache, catalog=catalog)

    @property
    def prices_include_tax(self) -> bool:
        return self._prices_include_tax

    def format_price(self, amount: Decimal) -> str:
        return format_price(amount, self._currency_symbol, self._decimals)

    def prepare_location(self, location: CustomerLocation | dict[str, Any] | None) -> CustomerLocation:
        """Normalize a customer location, falling back to the store base when empty."""
        if isinstance(location, dict):
            location = CustomerLocation.from_dict(location)
        if location is None or location.is_empty:
            return self._base_location
        return CustomerLocation(
            country=(location.country or self._base_location.country).upper(),
            state=location.state.upper(),
            postcode=location.postcode.strip().upper(),
            city=location.city.strip(),
        )

    def get_tax_settings(self) -> dict[str, Any]:
        return {
            "taxes_enabled": self._taxes_enabled,
            "tax_display_mode": self._display_mode,
            "prices_include_tax": self._prices_include_tax,
            "round_at_subtotal": self._round_at_subtotal,
            "default_location": self._base_location.to_dict(),
        }

    def cache_key(self, items: list[TaxableItem], location: CustomerLocation) -> str:
        return content_hash(
            [item.to_dict() for item in items],
            location.to_dict(),
            self.get_tax_settings(),
        )

    # Cart taxes

    def calculate_cart_taxes(
        self,
        items: list[TaxableItem],
        location: CustomerLocation | dict[str, Any] | None = None,
    ) -> TaxResult:
        """Compute per-line and per-rate taxes for a set of cart lines.

        A rate-lookup failure never raises; it yields a zero-tax result with
        ``error`` set, which is not cached.

        Args:
            items: Lines with unit price, quantity and tax class
            location: Customer location; empty means the store base

        Returns:
            TaxResult whose ``cart_total`` is ``total + total_tax``
        """
        location = self.prepare_location(location)
        key = self.cache_key(items, location)

        if self._cache is not None:
            cached = self._cache.get(GROUP_TAX, key)
            if cached is not None:
                return TaxResult.from_dict(cached)

        try:
            result = self._compute(items, location)
        except Exception as exc:
            logger.warning("Tax calculation degraded to zero tax: %s", exc)
            return self._fallback_result(items, location, str(exc))

        if self._cache is not None:
            self._cache.set(GROUP_TAX, key, result.to_dict())
        return result

    def _find_rates(self, location: CustomerLocation, tax_class: str, memo: dict[str, list[TaxRate]]) -> list[TaxRate]:
        if tax_class not in memo:
            memo[tax_class] = list(self._rates.find_rates(location, tax_class))
        return memo[tax_class]

    def _compute(self, items: list[TaxableItem], location: CustomerLocation) -> TaxResult:
        memo: dict[str, list[TaxRate]] = {}
        rate_info: dict[str, TaxRate] = {}
        rate_totals: dict[str, Decimal] = {}
        item_results: dict[str, ItemTax] = {}
        gross_sum = ZERO
        net_sum = ZERO

        for item in items:
            line_price = Decimal(item.unit_price) * item.quantity
            rates: list[TaxRate] = []
            if self._taxes_enabled and item.taxable:
                rates = self._find_rates(location, item.tax_class, memo)

            taxes = calc_tax(line_price, rates, self._prices_include_tax) if rates else {}
            if not self._round_at_subtotal:
                taxes = {rate_id: quantize_money(amount, self._decimals) for rate_id, amount in taxes.items()}

            line_tax = sum(taxes.values(), ZERO)
            net = line_price - line_tax if self._prices_include_tax else line_price
            gross_sum += line_price
            net_sum += net

            for rate in rates:
                rate_info.setdefault(rate.id, rate)
                rate_totals[rate.id] = rate_totals.get(rate.id, ZERO) + taxes.get(rate.id, ZERO)

            item_results[item.key] = ItemTax(
                key=item.key,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price),
                line_subtotal=quantize_money(net, self._decimals),
                line_subtotal_tax=quantize_money(line_tax, self._decimals),
                line_total=quantize_money(net, self._decimals),
                line_tax=quantize_money(line_tax, self._decimals),
                taxes={rate_id: quantize_money(amount, self._decimals) for rate_id, amount in taxes.items()},
                tax_class=item.tax_class,
                taxable=bool(rates),
            )

        rounded = {rate_id: quantize_money(amount, self._decimals) for rate_id, amount in rate_totals.items()}
        total_tax = sum(rounded.values(), ZERO)
        if self._prices_include_tax:
            subtotal = quantize_money(gross_sum, self._decimals) - total_tax
        else:
            subtotal = quantize_money(net_sum, self._decimals)

        tax_lines = [
            TaxLine(
                rate_id=rate_id,
                label=rate_info[rate_id].label,
                compound=rate_info[rate_id].compound,
                rate_percent=rate_info[rate_id].rate,
                tax_total=amount,
                formatted_tax_total=self.format_price(amount),
            )
            for rate_id, amount in rounded.items()
        ]
        tax_lines.sort(key=lambda line: (line.compound, line.rate_percent, line.rate_id))

        result = TaxResult(
            subtotal=subtotal,
            subtotal_tax=total_tax,
            total=subtotal,
            total_tax=total_tax,
            cart_total=subtotal + total_tax,
            tax_lines=tax_lines,
            items=item_results,
            location=location,
            prices_include_tax=self._prices_include_tax,
            display_tax_totals=self._display_mode == "incl",
        )
        result.display_text = self.display_text(result)
        return result

    def _fallback_result(self, items: list[TaxableItem], location: CustomerLocation, message: str) -> TaxResult:
        result = TaxResult(location=location, error=True, error_message=message)
        for item in items:
            line_price = quantize_money(Decimal(item.unit_price) * item.quantity, self._decimals)
            result.items[item.key] = ItemTax(
                key=item.key,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price),
                line_subtotal=line_price,
                line_subtotal_tax=ZERO,
                line_total=line_price,
                line_tax=ZERO,
                tax_class=item.tax_class,
                taxable=False,
            )
            result.subtotal += line_price
        result.total = result.subtotal
        result.cart_total = result.subtotal
        return result

    def display_text(self, result: TaxResult) -> str:
        """Short "Includes ..." caption for the totals panel."""
        if not self._taxes_enabled or result.total_tax == 0:
            return ""
        if len(result.tax_lines) == 1:
            line = result.tax_lines[0]
            return f"Includes {line.formatted_tax_total} {line.label}"
        return f"Includes {self.format_price(result.total_tax)} tax"

    # Single product

    def calculate_product_tax(
        self,
        product_id: int,
        price: Decimal | None = None,
        location: CustomerLocation | dict[str, Any] | None = None,
    ) -> ProductTax:
        """Tax for one unit of a product, for display outside a cart.

        Args:
            product_id: Product id looked up in the catalog
            price: Price to tax. Defaults to the catalog price.
            location: Customer location; empty means the store base

        Returns:
            ProductTax; ``taxable`` is False for unknown or exempt products
        """
        fallback_price = Decimal(price) if price is not None else ZERO

        def untaxed(amount: Decimal, taxable: bool = False, error: str = "") -> ProductTax:
            return ProductTax(
                taxable=taxable,
                tax_rate=ZERO,
                tax_amount=ZERO,
                price_including_tax=amount,
                price_excluding_tax=amount,
                error=error,
            )

        if not self._taxes_enabled:
            return untaxed(fallback_price)

        try:
            product = self._catalog.get_product(product_id) if self._catalog is not None else None
            if product is None or not product.is_taxable:
                return untaxed(fallback_price)

            amount = Decimal(price) if price else product.price
            rates = list(self._rates.find_rates(self.prepare_location(location), product.tax_class))
            if not rates:
                return untaxed(amount, taxable=True)

            tax_amount = quantize_money(sum(calc_tax(amount, rates, self._prices_include_tax).values(), ZERO))
        except Exception as exc:
            logger.error("Product tax calculation error for %s: %s", product_id, exc)
            return untaxed(fallback_price, error=str(exc))

        if self._prices_include_tax:
            including, excluding = amount, amount - tax_amount
        else:
            including, excluding = amount + tax_amount, amount
        return ProductTax(
            taxable=True,
            tax_rate=sum((rate.rate for rate in rates), ZERO),
            tax_amount=tax_amount,
            price_including_tax=including,
            price_excluding_tax=excluding,
            rates=tuple(rates),
        )

    # Cache management

    def clear_cache(self, key: str | None = None) -> int:
        """Drop one cached result, or all of them when ``key`` is None."""
        if self._cache is None:
            return 0
        if key:
            return int(self._cache.invalidate_key(GROUP_TAX, key))
        return self._cache.invalidate(GROUP_TAX)

    def get_cache_stats(self) -> dict[str, Any]:
        group = {}
        if self._cache is not None:
            group = self._cache.stats()["per_group"].get(GROUP_TAX, {})
        return {
            "cache": group,
            "taxes_enabled": self._taxes_enabled,
            "calculation_mode": self._display_mode,
            "round_at_subtotal": self._round_at_subtotal,
        }
