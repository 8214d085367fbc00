"""
Shared fixtures: a controllable clock, an in-memory store, a seeded
catalog and a tax table.
"""

from decimal import Decimal

import pytest

from pos_cart.entities import Coupon, CustomerLocation, Product, TaxRate
from pos_cart.repositories import (
    InMemoryCatalog,
    InMemoryKeyValueStore,
    StaticTaxRateProvider,
    TaxRateRule,
)
from pos_cart.services import (
    CacheService,
    InventoryService,
    PosServices,
    SessionService,
    TaxService,
)

START = 1_700_000_000.0


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def catalog():
    """Products used across the suites.

    1  Widget        100.00, 10 in stock, standard class
    2  Gadget         25.00, 3 in stock, reduced class
    3  Gift card      50.00, unmanaged, not taxable
    4  Sold out        5.00, 0 in stock
    5  Backorderable  10.00, 0 in stock, backorders allowed
    10 T-shirt        parent of variations 11 (S) and 12 (M)
    """
    return InMemoryCatalog(
        products=[
            Product(id=1, name="Widget", price=Decimal("100.00"), stock_quantity=10, manage_stock=True),
            Product(
                id=2,
                name="Gadget",
                price=Decimal("25.00"),
                stock_quantity=3,
                manage_stock=True,
                tax_class="reduced",
                low_stock_amount=5,
            ),
            Product(id=3, name="Gift card", price=Decimal("50.00"), tax_status="none"),
            Product(
                id=4,
                name="Sold out",
                price=Decimal("5.00"),
                stock_quantity=0,
                manage_stock=True,
                stock_status="outofstock",
            ),
            Product(
                id=5,
                name="Backorderable",
                price=Decimal("10.00"),
                stock_quantity=0,
                manage_stock=True,
                backorders="yes",
                stock_status="onbackorder",
            ),
            Product(id=10, name="T-shirt", price=Decimal("20.00")),
            Product(
                id=11,
                name="T-shirt S",
                price=Decimal("20.00"),
                stock_quantity=4,
                manage_stock=True,
                parent_id=10,
                attributes={"size": "S"},
            ),
            Product(
                id=12,
                name="T-shirt M",
                price=Decimal("22.00"),
                stock_quantity=6,
                manage_stock=True,
                parent_id=10,
                attributes={"size": "M"},
            ),
        ],
        coupons=[
            Coupon(code="tenoff", discount_type="fixed_cart", amount=Decimal("10")),
            Coupon(code="half", discount_type="percent", amount=Decimal("50")),
            Coupon(code="widget5", discount_type="fixed_product", amount=Decimal("5"), product_ids=[1]),
            Coupon(code="bigspend", discount_type="fixed_cart", amount=Decimal("5"), minimum_amount=Decimal("500")),
            Coupon(code="old", amount=Decimal("5"), expires_at=START - 1),
            Coupon(code="off", amount=Decimal("5"), enabled=False),
        ],
    )


@pytest.fixture
def rates():
    """US: 10 % standard everywhere, 5 % reduced; CA adds a 2 % compound city surcharge."""
    return StaticTaxRateProvider(
        [
            TaxRateRule(TaxRate(id="us-std", rate=Decimal("10"), label="Sales Tax"), country="US"),
            TaxRateRule(TaxRate(id="us-red", rate=Decimal("5"), label="Reduced Tax"), country="US", tax_class="reduced"),
            TaxRateRule(
                TaxRate(id="ca-sur", rate=Decimal("2"), label="City Surcharge", compound=True, priority=2),
                country="US",
                state="CA",
            ),
        ]
    )


@pytest.fixture
def cache(store, clock):
    return CacheService(store=store, clock=clock)


@pytest.fixture
def sessions(store, clock):
    return SessionService(store=store, clock=clock, cookie_secure=False)


@pytest.fixture
def inventory(store, catalog, cache, clock):
    return InventoryService(store=store, catalog=catalog, cache=cache, clock=clock, lock_wait=0.1)


@pytest.fixture
def taxes(rates, cache, catalog):
    return TaxService(
        rates=rates,
        cache=cache,
        catalog=catalog,
        taxes_enabled=True,
        prices_include_tax=False,
        round_at_subtotal=False,
        display_mode="excl",
        base_location=CustomerLocation(country="US", state="NY"),
        currency_symbol="$",
        decimals=2,
    )


@pytest.fixture
def services(store, catalog, rates, cache, sessions, inventory, taxes, clock):
    return PosServices(
        store=store,
        catalog=catalog,
        cache=cache,
        sessions=sessions,
        inventory=inventory,
        taxes=taxes,
        rates=rates,
        clock=clock,
    )


@pytest.fixture
def session(sessions):
    return sessions.resolve_session("T1", user_id=7).session


@pytest.fixture
def cart(services, session):
    return services.cart_for(session)
