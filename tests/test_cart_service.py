"""
Tests for the cart coordinator.
"""

from decimal import Decimal

import pytest

from pos_cart.entities import CustomerLocation, Product, generate_item_key
from pos_cart.errors import (
    CouponAlreadyAppliedError,
    CouponInvalidError,
    InsufficientStockError,
    InternalError,
    InvalidProductError,
    InvalidQuantityError,
    ItemNotFoundError,
    OutOfStockError,
    SessionInvalidError,
    ValidationError,
)
from pos_cart.services import CartService, resolve_unit_price

US_CA = CustomerLocation(country="US", state="CA", postcode="94107")


class UnreachableCatalog:
    """Catalog whose lookups for some products fail at the transport level."""

    def __init__(self, inner, broken_ids):
        self.inner = inner
        self.broken_ids = set(broken_ids)

    def get_product(self, product_id):
        if product_id in self.broken_ids:
            raise ConnectionError("catalog unreachable")
        return self.inner.get_product(product_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class FailingLedger:
    """Inventory whose reservation writes for one product fail."""

    def __init__(self, inner, product_id):
        self.inner = inner
        self.product_id = product_id

    def reserve(self, product_id, *args, **kwargs):
        if product_id == self.product_id:
            raise RuntimeError("ledger write failed")
        return self.inner.reserve(product_id, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self.inner, name)


def available(inventory, product_id):
    return inventory.get_real_time_stock(product_id, use_cache=False).available_stock


@pytest.fixture
def other_cart(services, sessions):
    """A cart on a second terminal sharing the same store."""
    return services.cart_for(sessions.resolve_session("T2", user_id=8).session)


def test_resolve_unit_price():
    product = Product(id=1, name="Widget", price=Decimal("100.00"))

    assert resolve_unit_price(product) == Decimal("100.00")
    assert resolve_unit_price(product, {"custom_price": "80"}) == Decimal("80")
    assert resolve_unit_price(product, {"discount_percent": 10}) == Decimal("90")
    assert resolve_unit_price(product, {"discount_percent": 150}) == Decimal("0")
    assert resolve_unit_price(product, {"discount_amount": "120"}) == Decimal("0")
    assert resolve_unit_price(product, {"custom_price": "oops", "discount_amount": 5}) == Decimal("95.00")


def test_add_item_reserves_stock(cart, inventory):
    item = cart.add_item(1, 2)

    assert item.quantity == 2
    assert item.reservation_id is not None
    assert item.unit_price == Decimal("100.00")
    assert available(inventory, 1) == 8
    assert cart.cart.is_dirty


def test_adding_same_selection_merges(cart, inventory):
    """Two adds of one selection give one line with the summed quantity."""
    first = cart.add_item(1, 2)
    second = cart.add_item(1, 3)

    assert first.key == second.key
    assert list(cart.cart.items) == [first.key]
    assert cart.cart.items[first.key].quantity == 5
    assert available(inventory, 1) == 5
    assert len(inventory.get_order_reservations(cart.cart.order_key)) == 1


def test_variation_selections_are_separate_lines(cart, inventory):
    small = cart.add_item(10, 1, variation_id=11, variation={"size": "S"})
    medium = cart.add_item(10, 2, variation_id=12, variation={"size": "M"})

    assert small.key != medium.key
    assert small.key == generate_item_key(10, 11, {"size": "S"})
    assert cart.cart.item_count() == 3
    assert available(inventory, 11) == 3
    assert available(inventory, 12) == 4


def test_add_item_validation(cart):
    with pytest.raises(InvalidQuantityError):
        cart.add_item(1, 0)
    with pytest.raises(InvalidProductError):
        cart.add_item(0)
    with pytest.raises(InvalidProductError):
        cart.add_item(999)
    assert cart.cart.is_empty


def test_out_of_stock_and_insufficient(cart):
    with pytest.raises(OutOfStockError):
        cart.add_item(4)
    with pytest.raises(InsufficientStockError):
        cart.add_item(2, 5)
    assert cart.cart.is_empty


def test_backorders_and_unmanaged_products(cart):
    backordered = cart.add_item(5, 3)
    gift_card = cart.add_item(3, 1)

    assert backordered.reservation_id is None
    assert gift_card.reservation_id is None
    assert cart.cart.item_count() == 4


def test_own_reservation_counts_towards_availability(cart):
    item = cart.add_item(2, 3)

    assert cart.update_item_quantity(item.key, 2).quantity == 2
    assert cart.update_item_quantity(item.key, 3).quantity == 3
    with pytest.raises(InsufficientStockError):
        cart.add_item(2, 1)
    assert cart.cart.items[item.key].quantity == 3


def test_other_terminal_cannot_take_reserved_units(cart, other_cart):
    cart.add_item(2, 3)

    with pytest.raises(OutOfStockError):
        other_cart.add_item(2, 1)


def test_update_to_zero_equals_remove(cart, inventory):
    """Quantity 0 and remove_item both drop the line and its reservation."""
    widget = cart.add_item(1, 3)
    gadget = cart.add_item(2, 1)

    assert cart.update_item_quantity(widget.key, 0) is None
    cart.remove_item(gadget.key)

    assert widget.key not in cart.cart.items
    assert gadget.key not in cart.cart.items
    assert available(inventory, 1) == 10
    assert available(inventory, 2) == 3
    assert inventory.get_order_reservations(cart.cart.order_key) == []


def test_missing_line(cart):
    with pytest.raises(ItemNotFoundError):
        cart.remove_item("nope")
    with pytest.raises(ItemNotFoundError):
        cart.update_item_quantity("nope", 2)


def test_totals_recomputed_once_per_change(cart):
    cart.add_item(1, 2)

    first = cart.get_totals()
    second = cart.get_totals()

    assert cart.metrics.recalculations == 1
    assert second == first

    cart.apply_coupon("tenoff")
    cart.get_totals()
    cart.get_totals()
    assert cart.metrics.recalculations == 2


def test_totals_and_coupon(cart):
    """100.00 x 2 at 10 % is 200 + 20; a 10.00 coupon brings it to 210."""
    cart.add_item(1, 2)

    totals = cart.get_totals()
    assert totals.subtotal == Decimal("200.00")
    assert totals.total_tax == Decimal("20.00")
    assert totals.cart_total == Decimal("220.00")
    assert totals.formatted["cart_total"] == "$220.00"

    cart.apply_coupon("tenoff")
    totals = cart.get_totals()
    assert totals.subtotal == Decimal("200.00")
    assert totals.discount_total == Decimal("10.00")
    assert totals.cart_total == Decimal("210.00")


def test_percent_and_product_coupons(cart):
    cart.add_item(1, 2)
    cart.add_item(2, 1)

    cart.apply_coupon("widget5")
    assert cart.get_totals().discount_total == Decimal("10.00")

    cart.remove_coupon("widget5")
    cart.apply_coupon("half")
    assert cart.get_totals().discount_total == Decimal("112.50")


def test_discount_never_exceeds_subtotal(cart):
    cart.add_item(3, 1, data={"custom_price": "5.00"})
    cart.apply_coupon("tenoff")

    totals = cart.get_totals()

    assert totals.discount_total == Decimal("5.00")
    assert totals.cart_total == Decimal("0")


def test_coupon_validation(cart):
    cart.add_item(1, 1)

    assert cart.apply_coupon(" TENOFF ").code == "tenoff"
    with pytest.raises(CouponAlreadyAppliedError):
        cart.apply_coupon("tenoff")
    for code in ("", "nope", "old", "off", "bigspend"):
        with pytest.raises(CouponInvalidError):
            cart.apply_coupon(code)

    assert cart.remove_coupon("tenoff") is True
    assert cart.remove_coupon("tenoff") is False
    assert cart.cart.applied_coupons == []


def test_location_changes_tax(cart):
    cart.add_item(1, 1)
    assert cart.get_totals().total_tax == Decimal("10.00")

    cart.set_customer_location({"country": "US", "state": "CA", "postcode": "94107"})

    assert cart.get_totals().total_tax == Decimal("12.20")
    assert cart.cart.location == US_CA


def test_set_customer(cart, sessions, session):
    cart.set_customer(42)

    assert cart.cart.customer_id == 42
    assert sessions.get_customer_id(session) == 42
    with pytest.raises(ValidationError):
        cart.set_customer(-1)
    assert cart.cart.customer_id == 42


def test_clear(cart, inventory):
    cart.add_item(1, 2)
    cart.add_item(2, 1)
    cart.apply_coupon("tenoff")

    cart.clear()

    assert cart.cart.is_empty
    assert cart.cart.applied_coupons == []
    assert not cart.cart.is_dirty
    assert cart.get_totals().cart_total == Decimal("0")
    assert available(inventory, 1) == 10
    assert available(inventory, 2) == 3


def test_failed_mutation_leaves_no_trace(cart, sessions, session, inventory):
    """A persistence failure rolls the cart back and releases the new reservation."""
    sessions.destroy(session)

    with pytest.raises(SessionInvalidError):
        cart.add_item(1, 4)

    assert cart.cart.is_empty
    assert available(inventory, 1) == 10


def test_batch_add_recomputes_once(cart, services, session):
    result = cart.batch_add(
        [
            {"product_id": 1, "quantity": 1},
            {"product_id": 999},
            {"product_id": 2, "quantity": 10},
            {"product_id": 10, "variation_id": 12, "variation": {"size": "M"}},
        ]
    )

    assert result["success"] is False
    assert len(result["added"]) == 2
    assert [(e["index"], e["code"]) for e in result["errors"]] == [(1, "invalid_product"), (2, "insufficient_stock")]
    assert result["totals"]["subtotal"] == "122.00"
    assert cart.metrics.recalculations == 1

    reloaded = services.cart_for(session)
    assert reloaded.cart.item_count() == 2
    assert not reloaded.cart.is_dirty


def test_snapshot_survives_reload(cart, services, session):
    cart.add_item(1, 2)
    cart.apply_coupon("tenoff")

    reloaded = services.cart_for(session)

    assert reloaded.cart.order_key == cart.cart.order_key
    assert reloaded.cart.applied_coupons == ["tenoff"]
    assert reloaded.get_totals().cart_total == Decimal("210.00")


def test_check_status_reports_stock_drift(cart, inventory):
    item = cart.add_item(1, 5)
    assert cart.check_status()["valid"] is True

    inventory.update_stock(1, 2)
    status = cart.check_status()

    assert status["valid"] is False
    assert status["session_valid"] is True
    assert status["stock_issues"][0]["key"] == item.key
    assert status["stock_issues"][0]["error"] == "insufficient_stock"
    assert status["stock_issues"][0]["available"] == 2


def test_check_status_with_expired_session(cart, sessions, clock):
    clock.advance(sessions.timeout + 1)

    status = cart.check_status()

    assert status["session_valid"] is False
    assert status["valid"] is False


def test_contents_and_summary(cart):
    cart.add_item(1, 2)

    stale = cart.get_contents(calculate=False)
    assert stale["dirty"] is True
    assert stale["count"] == 2

    contents = cart.get_contents()
    assert contents["dirty"] is False
    assert contents["totals"]["cart_total"] == "220.00"
    assert contents["hash"] == stale["hash"]

    summary = cart.get_summary()
    assert summary["unique_items"] == 1
    assert summary["cart_total"] == "$220.00"


def test_totals_without_tax_engine(services, session):
    cart = CartService(
        session,
        sessions=services.sessions,
        inventory=services.inventory,
        taxes=None,
        catalog=services.catalog,
        clock=services.clock,
    )
    cart.add_item(1, 1)

    totals = cart.get_totals()

    assert totals.tax_error is True
    assert totals.total_tax == Decimal("0")
    assert totals.cart_total == Decimal("100.00")


def test_performance_metrics(cart):
    cart.add_item(1, 1)
    cart.get_totals()

    metrics = cart.get_performance_metrics()

    assert metrics["operations"]["add_item"]["count"] == 1
    assert metrics["operations"]["calculate_totals"]["count"] == 1
    assert metrics["recalculations"] == 1


def cart_with_catalog(services, session, catalog, inventory=None):
    return CartService(
        session,
        sessions=services.sessions,
        inventory=inventory or services.inventory,
        taxes=services.taxes,
        catalog=catalog,
        clock=services.clock,
    )


def test_catalog_failure_is_reported_as_internal_error(services, session, inventory):
    cart = cart_with_catalog(services, session, UnreachableCatalog(services.catalog, [2]))
    cart.add_item(1, 1)

    with pytest.raises(InternalError) as exc_info:
        cart.add_item(2, 1)

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert list(cart.cart.items) == [generate_item_key(1)]
    assert available(inventory, 2) == 3


def test_batch_add_undone_when_catalog_fails(services, session, inventory):
    """Holds taken for earlier entries are released when a later lookup fails."""
    cart = cart_with_catalog(services, session, UnreachableCatalog(services.catalog, [999]))

    with pytest.raises(InternalError):
        cart.batch_add([{"product_id": 1, "quantity": 4}, {"product_id": 999}])

    assert cart.cart.is_empty
    assert services.cart_for(session).cart.is_empty
    assert available(inventory, 1) == 10
    assert inventory.get_order_reservations(cart.cart.order_key) == []


def test_batch_add_failed_entry_keeps_earlier_entries(cart, inventory):
    """A rejected merge leaves the line as the earlier entry left it."""
    result = cart.batch_add([{"product_id": 2, "quantity": 2}, {"product_id": 2, "quantity": 5}])

    assert [e["code"] for e in result["errors"]] == ["insufficient_stock"]
    assert result["added"][0]["quantity"] == 2
    assert cart.cart.item_count() == 2
    assert available(inventory, 2) == 1


def test_batch_add_undone_when_reservation_write_fails(services, session, inventory):
    ledger = FailingLedger(services.inventory, 2)
    cart = cart_with_catalog(services, session, services.catalog, inventory=ledger)

    with pytest.raises(InternalError):
        cart.batch_add([{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}])

    assert cart.cart.is_empty
    assert available(inventory, 1) == 10
    assert available(inventory, 2) == 3
