"""
Tests for the tax engine.
"""

from decimal import Decimal

import pytest

from pos_cart.entities import CustomerLocation, TaxableItem, TaxRate
from pos_cart.services import TaxService, calc_tax

NY = CustomerLocation(country="US", state="NY")
US_CA = CustomerLocation(country="US", state="CA", postcode="94107", city="San Francisco")


class CountingRates:
    """Rate source that counts lookups and can be told to fail."""

    def __init__(self, inner, fail=False):
        self.inner = inner
        self.fail = fail
        self.calls = 0

    def find_rates(self, location, tax_class):
        self.calls += 1
        if self.fail:
            raise RuntimeError("rate table unavailable")
        return self.inner.find_rates(location, tax_class)


class BrokenCatalog:
    def get_product(self, product_id):
        raise RuntimeError("catalog unavailable")


def make_taxes(rates, cache=None, catalog=None, **overrides):
    options = {
        "taxes_enabled": True,
        "prices_include_tax": False,
        "round_at_subtotal": False,
        "display_mode": "excl",
        "base_location": NY,
        "currency_symbol": "$",
        "decimals": 2,
    }
    options.update(overrides)
    return TaxService(rates=rates, cache=cache, catalog=catalog, **options)


def item(key, price, quantity=1, tax_class="", taxable=True, product_id=1):
    return TaxableItem(
        key=key,
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal(price),
        tax_class=tax_class,
        taxable=taxable,
    )


def test_calc_tax_exclusive_with_compound():
    rates = [
        TaxRate(id="std", rate=Decimal("10")),
        TaxRate(id="cmp", rate=Decimal("2"), compound=True, priority=2),
    ]

    taxes = calc_tax(Decimal("100"), rates)

    assert taxes["std"] == Decimal("10")
    assert taxes["cmp"] == Decimal("2.2")


def test_calc_tax_inclusive_reverses_compound_first():
    rates = [
        TaxRate(id="std", rate=Decimal("10")),
        TaxRate(id="cmp", rate=Decimal("2"), compound=True, priority=2),
    ]

    taxes = calc_tax(Decimal("112.20"), rates, price_includes_tax=True)

    assert taxes["cmp"] == Decimal("2.20")
    assert taxes["std"] == Decimal("10")


def test_exclusive_cart_at_base_location(taxes):
    result = taxes.calculate_cart_taxes([item("a", "100.00", quantity=2)])

    assert result.subtotal == Decimal("200.00")
    assert result.total_tax == Decimal("20.00")
    assert result.cart_total == Decimal("220.00")
    assert [line.label for line in result.tax_lines] == ["Sales Tax"]
    assert result.display_text == "Includes $20.00 Sales Tax"
    assert result.location == NY


def test_compound_rate_applies_on_top(taxes):
    result = taxes.calculate_cart_taxes([item("a", "100.00")], US_CA)

    assert [line.rate_id for line in result.tax_lines] == ["us-std", "ca-sur"]
    assert result.tax_lines[1].tax_total == Decimal("2.20")
    assert result.total_tax == Decimal("12.20")
    assert result.cart_total == Decimal("112.20")
    assert result.display_text == "Includes $12.20 tax"


def test_inclusive_prices_back_out_tax(rates):
    taxes = make_taxes(rates, prices_include_tax=True, display_mode="incl")

    result = taxes.calculate_cart_taxes([item("a", "112.20")], US_CA)

    assert result.total_tax == Decimal("12.20")
    assert result.subtotal == Decimal("100.00")
    assert result.cart_total == Decimal("112.20")
    assert result.items["a"].line_total == Decimal("100.00")
    assert result.display_tax_totals is True


def test_tax_class_selects_rate(taxes):
    result = taxes.calculate_cart_taxes([item("a", "25.00", tax_class="reduced", product_id=2)])

    assert result.total_tax == Decimal("1.25")
    assert result.tax_lines[0].label == "Reduced Tax"


def test_untaxable_line(taxes):
    result = taxes.calculate_cart_taxes([item("a", "50.00", taxable=False, product_id=3), item("b", "10.00")])

    assert result.items["a"].taxable is False
    assert result.items["a"].line_tax == Decimal("0.00")
    assert result.total_tax == Decimal("1.00")
    assert result.subtotal == Decimal("60.00")


def test_rounding_per_line(rates):
    taxes = make_taxes(rates, round_at_subtotal=False)
    lines = [item(str(i), "0.15") for i in range(3)]

    result = taxes.calculate_cart_taxes(lines)

    assert all(line.line_tax == Decimal("0.02") for line in result.items.values())
    assert result.total_tax == Decimal("0.06")


def test_rounding_at_subtotal(rates):
    taxes = make_taxes(rates, round_at_subtotal=True)
    lines = [item(str(i), "0.15") for i in range(3)]

    result = taxes.calculate_cart_taxes(lines)

    assert result.total_tax == Decimal("0.05")
    assert result.cart_total == Decimal("0.50")


def test_rounding_at_subtotal_with_mixed_rates(rates):
    """Each rate is summed unrounded across lines, rounded half-up once, then added up.

    Standard lines: 10 % gives 0.045 -> 0.05, the CA compound 2 % gives
    0.0099 -> 0.01. Reduced lines: 5 % gives 0.025 -> 0.03. Rounding the
    unrounded grand total 0.0799 instead would give 0.08.
    """
    taxes = make_taxes(rates, round_at_subtotal=True)
    lines = [item(f"std-{i}", "0.15") for i in range(3)]
    lines += [item(f"red-{i}", "0.25", tax_class="reduced", product_id=2) for i in range(2)]

    result = taxes.calculate_cart_taxes(lines, US_CA)

    assert {line.rate_id: line.tax_total for line in result.tax_lines} == {
        "us-std": Decimal("0.05"),
        "us-red": Decimal("0.03"),
        "ca-sur": Decimal("0.01"),
    }
    assert [line.rate_id for line in result.tax_lines] == ["us-red", "us-std", "ca-sur"]
    assert result.total_tax == Decimal("0.09")
    assert result.subtotal == Decimal("0.95")
    assert result.cart_total == Decimal("1.04")


def test_rounding_per_line_with_mixed_rates(rates):
    taxes = make_taxes(rates, round_at_subtotal=False)
    lines = [item(f"std-{i}", "0.15") for i in range(3)]
    lines += [item(f"red-{i}", "0.25", tax_class="reduced", product_id=2) for i in range(2)]

    result = taxes.calculate_cart_taxes(lines, US_CA)

    assert {line.rate_id: line.tax_total for line in result.tax_lines} == {
        "us-std": Decimal("0.06"),
        "us-red": Decimal("0.02"),
        "ca-sur": Decimal("0.00"),
    }
    assert result.total_tax == Decimal("0.08")


def test_taxes_disabled(rates):
    taxes = make_taxes(rates, taxes_enabled=False)

    result = taxes.calculate_cart_taxes([item("a", "100.00")])

    assert result.total_tax == Decimal("0")
    assert result.cart_total == Decimal("100.00")
    assert result.display_text == ""


def test_rate_failure_falls_back_to_zero_tax(rates, cache):
    failing = CountingRates(rates, fail=True)
    taxes = make_taxes(failing, cache=cache)

    result = taxes.calculate_cart_taxes([item("a", "40.00", quantity=2)])

    assert result.error is True
    assert "rate table unavailable" in result.error_message
    assert result.total_tax == Decimal("0")
    assert result.subtotal == Decimal("80.00")
    assert result.cart_total == Decimal("80.00")

    taxes.calculate_cart_taxes([item("a", "40.00", quantity=2)])
    assert failing.calls == 2


def test_results_are_cached(rates, cache):
    counting = CountingRates(rates)
    taxes = make_taxes(counting, cache=cache)
    lines = [item("a", "100.00"), item("b", "20.00")]

    first = taxes.calculate_cart_taxes(lines, US_CA)
    second = taxes.calculate_cart_taxes(lines, US_CA)

    assert counting.calls == 1
    assert second.total_tax == first.total_tax == Decimal("14.64")
    assert second.items["b"].line_tax == Decimal("2.44")

    assert taxes.clear_cache() == 1
    taxes.calculate_cart_taxes(lines, US_CA)
    assert counting.calls == 2


def test_cache_key_depends_on_location(taxes):
    lines = [item("a", "100.00")]

    assert taxes.cache_key(lines, NY) != taxes.cache_key(lines, US_CA)
    assert taxes.cache_key(lines, NY) == taxes.cache_key(list(lines), NY)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, NY),
        ({}, NY),
        ({"country": "us", "state": "ca", "postcode": " 94107 "}, CustomerLocation("US", "CA", "94107")),
        ({"state": "tx"}, CustomerLocation("US", "TX")),
    ],
)
def test_prepare_location(taxes, raw, expected):
    assert taxes.prepare_location(raw) == expected


def test_product_tax(taxes):
    result = taxes.calculate_product_tax(1)

    assert result.taxable is True
    assert result.tax_rate == Decimal("10")
    assert result.tax_amount == Decimal("10.00")
    assert result.price_including_tax == Decimal("110.00")
    assert result.price_excluding_tax == Decimal("100.00")


def test_product_tax_with_price_and_location(taxes):
    result = taxes.calculate_product_tax(1, price=Decimal("50"), location=US_CA)

    assert result.tax_amount == Decimal("6.10")
    assert len(result.rates) == 2


def test_product_tax_exempt_or_unknown(taxes):
    assert taxes.calculate_product_tax(3).taxable is False
    assert taxes.calculate_product_tax(999).taxable is False


def test_product_tax_inclusive(rates, catalog):
    taxes = make_taxes(rates, catalog=catalog, prices_include_tax=True)

    result = taxes.calculate_product_tax(1, price=Decimal("110"))

    assert result.tax_amount == Decimal("10.00")
    assert result.price_excluding_tax == Decimal("100.00")


def test_product_tax_error_is_reported(rates):
    taxes = make_taxes(rates, catalog=BrokenCatalog())

    result = taxes.calculate_product_tax(1, price=Decimal("5"))

    assert result.taxable is False
    assert result.error == "catalog unavailable"
    assert result.price_including_tax == Decimal("5")


def test_settings_and_stats(taxes):
    taxes.calculate_cart_taxes([item("a", "1.00")])

    settings = taxes.get_tax_settings()
    assert settings["taxes_enabled"] is True
    assert settings["default_location"]["state"] == "NY"

    stats = taxes.get_cache_stats()
    assert stats["calculation_mode"] == "excl"
    assert stats["cache"]["sets"] == 1
