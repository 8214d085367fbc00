#!/usr/bin/env python3
"""
Demo script for the POS cart core.

Runs entirely in-process: an in-memory store, a small seeded catalog and a
static tax table. Two terminals share the store the way two tills share
Redis in production.
"""

from decimal import Decimal

from pos_cart.config import configure_logging
from pos_cart.entities import Coupon, Product, TaxRate
from pos_cart.errors import PosError
from pos_cart.repositories import (
    InMemoryCatalog,
    InMemoryKeyValueStore,
    StaticTaxRateProvider,
    TaxRateRule,
)
from pos_cart.services import PosServices


def print_section(title: str):
    """Print section header."""
    print(f"\n{'=' * 70}")
    print(f"  {title}")
    print(f"{'=' * 70}\n")


def build_services() -> PosServices:
    catalog = InMemoryCatalog(
        products=[
            Product(id=1, name="Espresso beans 1kg", price=Decimal("24.00"), stock_quantity=5, manage_stock=True),
            Product(
                id=2,
                name="Paper filters",
                price=Decimal("4.50"),
                stock_quantity=2,
                manage_stock=True,
                tax_class="reduced",
            ),
            Product(id=3, name="Gift card", price=Decimal("25.00"), tax_status="none"),
        ],
        coupons=[Coupon(code="welcome", discount_type="percent", amount=Decimal("10"))],
    )
    rates = StaticTaxRateProvider(
        [
            TaxRateRule(TaxRate(id="us-std", rate=Decimal("8"), label="Sales Tax"), country="US"),
            TaxRateRule(TaxRate(id="us-red", rate=Decimal("4"), label="Reduced Tax"), country="US", tax_class="reduced"),
            TaxRateRule(
                TaxRate(id="ca-sur", rate=Decimal("1.5"), label="City Surcharge", compound=True, priority=2),
                country="US",
                state="CA",
            ),
        ]
    )
    return PosServices.create(InMemoryKeyValueStore(), catalog, rates)


def demo_cart(services: PosServices):
    """Build a cart on one terminal and price it."""
    print_section("Demo 1: Cart and Totals")

    resolved = services.sessions.resolve_session("till-1", user_id=7)
    cart = services.cart_for(resolved.session)
    print(f"🧾 Session {resolved.session.id[:8]}… on terminal {resolved.session.terminal_id}")

    cart.add_item(1, 2)
    cart.add_item(2, 1)
    cart.add_item(3, 1)
    for item in cart.cart.items.values():
        print(f"  + {item.quantity} x {item.name} @ {item.unit_price}")

    totals = cart.get_totals()
    print(f"\n💰 Subtotal: {totals.formatted['subtotal']}")
    print(f"   Tax:      {totals.formatted['total_tax']}")
    print(f"   Total:    {totals.formatted['cart_total']}")

    cart.apply_coupon("welcome")
    print(f"\n🏷️  Coupon 'welcome' applied: {cart.get_totals().formatted['cart_total']}")

    cart.set_customer_location({"country": "US", "state": "CA", "postcode": "94107"})
    totals = cart.get_totals()
    print(f"📍 Shipping to CA: {totals.formatted['cart_total']}")
    for line in totals.tax_lines:
        print(f"   {line.label}: {line.tax_total}")

    return cart


def demo_shared_stock(services: PosServices):
    """Show a second terminal seeing the first terminal's reservations."""
    print_section("Demo 2: Stock Shared Between Terminals")

    view = services.inventory.get_real_time_stock(2, use_cache=False)
    print(f"📦 Paper filters: stock {view.current_stock}, reserved {view.reserved_stock}, available {view.available_stock}")

    other = services.cart_for(services.sessions.resolve_session("till-2", user_id=8).session)
    try:
        other.add_item(2, 2)
        print("✅ till-2 reserved 2 filters")
    except PosError as e:
        print(f"⛔ till-2 refused: [{e.code}] {e.message}")

    other.add_item(2, 1)
    print("✅ till-2 reserved the last filter")


def demo_release(services: PosServices, cart):
    """Clearing a cart hands its stock back."""
    print_section("Demo 3: Releasing Reservations")

    cart.clear()
    view = services.inventory.get_real_time_stock(1, use_cache=False)
    print(f"🧹 Cart cleared; espresso beans available again: {view.available_stock}")

    result = services.run_maintenance()
    print(f"🔧 Maintenance: {result}")


def demo_cache(services: PosServices):
    """Show the shared cache statistics."""
    print_section("Demo 4: Cache Statistics")

    stats = services.cache.stats()
    print(f"📊 Hits: {stats['hits']}, misses: {stats['misses']}")
    print(f"   Hit rate: {stats['hit_rate']}%")
    print(f"   Health: {services.cache.get_cache_health()['status']}")


def main():
    """Run all demos."""
    configure_logging("WARNING")

    print("\n🚀 POS Cart Demo")
    print("=" * 70)
    print("This demo showcases cart pricing, tax and shared stock reservations")
    print("across two terminals")

    try:
        services = build_services()
        cart = demo_cart(services)
        demo_shared_stock(services)
        demo_release(services, cart)
        demo_cache(services)

        print("\n" + "=" * 70)
        print("✅ Demo completed successfully!")
        print("=" * 70)

    except PosError as e:
        print(f"\n❌ Error: [{e.code}] {e.message}")


if __name__ == "__main__":
    main()
