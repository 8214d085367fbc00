"""
Tests for the inventory coordinator: reservations, availability and stock events.
"""

import logging
import threading

import pytest

from pos_cart.entities import Order, OrderLine, ReservationStatus
from pos_cart.errors import (
    InsufficientStockError,
    InvalidProductError,
    InvalidQuantityError,
    LockTimeoutError,
    NegativeStockError,
    ProductNotFoundError,
    ReservationNotFoundError,
    StockNotManagedError,
    StockTooHighError,
    ValidationError,
)
from pos_cart.services import InventoryService, calculate_new_stock


def available(inventory, product_id):
    return inventory.get_real_time_stock(product_id, use_cache=False).available_stock


def test_calculate_new_stock():
    assert calculate_new_stock(10, 4, "set") == 4
    assert calculate_new_stock(10, 4, "increase") == 14
    assert calculate_new_stock(10, 4, "decrease") == 6
    with pytest.raises(ValidationError):
        calculate_new_stock(10, 4, "multiply")


def test_reservations_never_oversell(inventory):
    """Stock 10: reserving 7 leaves 3, 5 more is refused, 3 more empties it."""
    inventory.reserve(1, 7, "order-a")
    assert available(inventory, 1) == 3

    with pytest.raises(InsufficientStockError) as exc_info:
        inventory.reserve(1, 5, "order-b")
    assert exc_info.value.message == "Insufficient stock. Available: 3, Requested: 5"
    assert available(inventory, 1) == 3

    inventory.reserve(1, 3, "order-b")
    assert available(inventory, 1) == 0


def test_reserved_total_never_exceeds_stock(inventory):
    granted = 0
    for i in range(8):
        try:
            granted += inventory.reserve(2, 1, f"order-{i}").quantity
        except InsufficientStockError:
            pass

    assert granted == 3
    view = inventory.get_real_time_stock(2, use_cache=False)
    assert view.reserved_stock == 3
    assert view.available_stock == 0


def test_concurrent_reservations_never_oversell(store, catalog, cache, clock):
    """Twenty terminals race for the last three units; exactly three win."""
    inventory = InventoryService(store=store, catalog=catalog, cache=cache, clock=clock, lock_wait=10)
    barrier = threading.Barrier(20)
    granted = []
    refused = []

    def terminal(n):
        barrier.wait()
        try:
            granted.append(inventory.reserve(2, 1, f"order-{n}", owner=f"T{n}"))
        except InsufficientStockError:
            refused.append(n)

    threads = [threading.Thread(target=terminal, args=(n,)) for n in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(granted) == 3
    assert len(refused) == 17
    assert available(inventory, 2) == 0
    assert sum(r.quantity for r in inventory.get_product_reservations(2)) == 3


def test_expired_reservation_frees_stock(inventory, clock):
    """A lapsed lease stops counting before any sweep runs."""
    inventory.reserve(1, 7, "order-a")
    assert available(inventory, 1) == 3

    clock.advance(inventory.reservation_timeout + 1)

    assert available(inventory, 1) == 10


def test_cached_view_drops_lapsed_reservations(inventory, clock):
    inventory.reserve(1, 4, "order-a", ttl=30)
    assert inventory.get_real_time_stock(1).available_stock == 6

    clock.advance(31)
    view = inventory.get_real_time_stock(1)

    assert view.from_cache is True
    assert view.reserved_stock == 0
    assert view.available_stock == 10


def test_cached_view_not_stale_after_reservation_during_build(store, catalog, cache, clock, monkeypatch):
    """A reservation racing the view build is visible to the next cached read."""
    inventory = InventoryService(store=store, catalog=catalog, cache=cache, clock=clock, lock_wait=10)
    write_cache = cache.set_stock_cache
    racers = []

    def set_stock_cache(key, data):
        if not racers:
            racer = threading.Thread(target=inventory.reserve, args=(1, 4, "order-b"))
            racers.append(racer)
            racer.start()
            racer.join(timeout=0.2)
        return write_cache(key, data)

    monkeypatch.setattr(cache, "set_stock_cache", set_stock_cache)
    assert inventory.get_real_time_stock(1).available_stock == 10
    racers[0].join()

    view = inventory.get_real_time_stock(1)
    assert view.reserved_stock == 4
    assert view.available_stock == 6


def test_view_served_uncached_while_lock_busy(inventory, store):
    inventory.reserve(1, 2, "order-a")

    with store.lock("stock:1", timeout=5, wait=0):
        view = inventory.get_real_time_stock(1)
    assert view.available_stock == 8
    assert view.from_cache is False

    assert inventory.get_real_time_stock(1).from_cache is False
    assert inventory.get_real_time_stock(1).from_cache is True


def test_reserve_validation(inventory):
    with pytest.raises(InvalidQuantityError):
        inventory.reserve(1, 0, "order-a")
    with pytest.raises(ValidationError):
        inventory.reserve(1, 1, "")
    with pytest.raises(InvalidProductError):
        inventory.reserve(0, 1, "order-a")
    with pytest.raises(ProductNotFoundError):
        inventory.reserve(999, 1, "order-a")
    with pytest.raises(StockNotManagedError):
        inventory.reserve(3, 1, "order-a")


def test_reserve_times_out_on_busy_lock(inventory, store):
    with store.lock("stock:1", timeout=5, wait=0):
        with pytest.raises(LockTimeoutError):
            inventory.reserve(1, 1, "order-a")

    assert inventory.reserve(1, 1, "order-a").quantity == 1


def test_update_reservation_grows_and_shrinks(inventory):
    reservation = inventory.reserve(1, 5, "order-a")

    grown = inventory.update_reservation(reservation.id, 3)
    assert grown.action == "updated"
    assert grown.quantity == 8
    assert available(inventory, 1) == 2

    shrunk = inventory.update_reservation(reservation.id, -6)
    assert shrunk.quantity == 2
    assert available(inventory, 1) == 8


def test_update_reservation_growth_excludes_own_hold(inventory):
    mine = inventory.reserve(1, 5, "order-a")
    inventory.reserve(1, 3, "order-b")

    assert inventory.update_reservation(mine.id, 2).quantity == 7
    with pytest.raises(InsufficientStockError):
        inventory.update_reservation(mine.id, 1)


def test_update_reservation_to_zero_deletes(inventory):
    reservation = inventory.reserve(1, 2, "order-a")

    result = inventory.update_reservation(reservation.id, -2)

    assert result.action == "deleted"
    assert result.reservation is None
    assert available(inventory, 1) == 10
    with pytest.raises(ReservationNotFoundError):
        inventory.update_reservation(reservation.id, 1)


def test_update_reservation_renews_lease(inventory, clock):
    reservation = inventory.reserve(1, 2, "order-a")
    clock.advance(200)

    inventory.update_reservation(reservation.id, 1)
    clock.advance(200)

    assert inventory.get_reservation(reservation.id).status is ReservationStatus.ACTIVE


def test_release_is_idempotent(inventory):
    reservation = inventory.reserve(1, 4, "order-a")

    assert inventory.release(reservation.id).released_count == 1
    assert inventory.release(reservation.id).released_count == 0
    assert inventory.release("").released_count == 0
    assert available(inventory, 1) == 10


def test_release_by_order_key(inventory):
    inventory.reserve(1, 2, "order-a")
    inventory.reserve(2, 1, "order-a")
    inventory.reserve(1, 1, "order-b")

    result = inventory.release("order-a")

    assert result.released_count == 2
    assert result.released_products == (1, 2)
    assert available(inventory, 1) == 9
    assert [r.order_key for r in inventory.get_product_reservations(1)] == ["order-b"]


def test_release_by_order_key_for_one_product(inventory):
    inventory.reserve(1, 2, "order-a")
    inventory.reserve(2, 1, "order-a")

    result = inventory.release("order-a", product_id=2)

    assert result.released_products == (2,)
    assert len(inventory.get_order_reservations("order-a")) == 1


def test_get_reservation_reports_expiry(inventory, clock):
    reservation = inventory.reserve(1, 1, "order-a")
    assert inventory.get_reservation(reservation.id).status is ReservationStatus.ACTIVE

    clock.advance(inventory.reservation_timeout)

    assert inventory.get_reservation(reservation.id).status is ReservationStatus.EXPIRED
    with pytest.raises(ReservationNotFoundError):
        inventory.get_reservation("missing")


def test_cleanup_expired_reservations(inventory, store, clock):
    inventory.reserve(1, 1, "order-a")
    keep = inventory.reserve(2, 1, "order-b", ttl=3600)
    clock.advance(inventory.reservation_timeout + 1)

    assert inventory.cleanup_expired_reservations() == 1

    assert inventory.get_reservation(keep.id).status is ReservationStatus.ACTIVE
    assert len(store.scan("reservation_product:1:")) == 0
    assert len(store.scan("reservation_product:2:")) == 1


def test_variation_stock_view(inventory):
    inventory.reserve(11, 3, "order-a")

    view = inventory.get_real_time_stock(10, use_cache=False)

    variations = {v["variation_id"]: v for v in view.variations}
    assert variations[11]["available_stock"] == 1
    assert variations[12]["available_stock"] == 6
    assert view.available_stock is None


def test_batch_check_availability(inventory):
    inventory.reserve(2, 2, "order-a")

    result = inventory.batch_check_availability({1: 5, 2: 2, 3: 100, 999: 1, 4: 0})

    assert result.overall_available is False
    assert result.products[1].available is True
    assert result.products[2].available is False
    assert result.products[2].error == "insufficient_stock"
    assert result.products[2].available_stock == 1
    assert result.products[3].available is True
    assert result.products[3].to_dict()["available_stock"] == "unlimited"
    assert result.products[999].error == "product_not_found"
    assert result.products[4].error == "invalid_quantity"


def test_update_stock(inventory, catalog):
    result = inventory.update_stock(1, 4, operation="increase", terminal_id="T1", user_id=7)

    assert result.previous_stock == 10
    assert result.new_stock == 14
    assert catalog.get_product(1).stock_quantity == 14


def test_update_stock_refreshes_cached_view(inventory):
    assert inventory.get_real_time_stock(1).current_stock == 10

    inventory.update_stock(1, 20)

    view = inventory.get_real_time_stock(1)
    assert view.current_stock == 20
    assert view.from_cache is False


def test_update_stock_rejects_bad_results(inventory):
    with pytest.raises(NegativeStockError):
        inventory.update_stock(1, 11, operation="decrease")
    with pytest.raises(StockTooHighError):
        inventory.update_stock(1, 10_000_000)
    with pytest.raises(ValidationError):
        inventory.update_stock(1, 1, operation="multiply")
    with pytest.raises(InvalidQuantityError):
        inventory.update_stock(1, -1)
    with pytest.raises(StockNotManagedError):
        inventory.update_stock(3, 1)


def test_update_stock_allows_negative_with_backorders_or_force(inventory):
    assert inventory.update_stock(5, 3, operation="decrease").new_stock == -3
    assert inventory.update_stock(1, 12, operation="decrease", force=True).new_stock == -2


def test_low_stock_alert(inventory, caplog):
    with caplog.at_level(logging.WARNING, logger="pos_cart.services.inventory_service"):
        inventory.update_stock(2, 4)

    assert "Low stock alert" in caplog.text
    assert inventory.get_real_time_stock(2).is_low_stock is True


def test_order_lifecycle(inventory):
    order = Order(
        order_id=100,
        order_key="wc_order_100",
        items=(OrderLine(product_id=1, quantity=2), OrderLine(product_id=10, quantity=1, variation_id=11)),
    )

    held = inventory.handle_order_pending(order)
    assert sorted(r.product_id for r in held) == [1, 11]
    assert available(inventory, 11) == 3

    assert inventory.handle_order_completed(order).released_count == 2
    assert available(inventory, 11) == 4


def test_order_cancelled_releases(inventory):
    order = Order(order_id=101, order_key="wc_order_101", items=(OrderLine(product_id=1, quantity=3),))
    inventory.handle_order_pending(order)

    assert inventory.handle_order_cancelled(order).released_count == 1
    assert available(inventory, 1) == 10


def test_order_lines_that_cannot_be_held_are_skipped(inventory):
    order = Order(
        order_id=102,
        order_key="wc_order_102",
        items=(OrderLine(product_id=2, quantity=50), OrderLine(product_id=1, quantity=1)),
    )

    held = inventory.reserve_order_stock(order)

    assert [r.product_id for r in held] == [1]


def test_non_pos_orders_are_ignored(inventory):
    order = Order(order_id=103, order_key="web", is_pos_order=False, items=(OrderLine(product_id=1, quantity=1),))

    assert inventory.handle_order_pending(order) == []
    assert inventory.handle_order_processing(order).released_count == 0
    assert available(inventory, 1) == 10


def test_stock_status_report(inventory):
    inventory.reserve(1, 1, "order-a")

    report = inventory.get_stock_status_report()

    assert report.total_products == 6
    assert report.in_stock == 4
    assert report.out_of_stock == 1
    assert report.total_reservations == 1
    assert report.products[2]["is_low_stock"] is True
    assert "summary" in report.to_dict()


def test_force_refresh_stock_cache(inventory):
    result = inventory.force_refresh_stock_cache([1, 999])

    assert result["products_refreshed"] == 2
    assert result["results"]["1"]["success"] is True
    assert result["results"]["999"]["success"] is False
    assert result["results"]["999"]["error"]["code"] == "product_not_found"
