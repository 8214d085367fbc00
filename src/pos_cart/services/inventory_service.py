"""Inventory coordinator: real-time stock, reservation ledger and stock events.

Records:

    reservation:{id}                               StockReservation
    reservation_product:{product_id}:{id}          product index
    reservation_order:{md5(order_key)}:{id}        order index

A reservation and its index entries are written in one ``set_many`` and
kept for a grace period after expiry; availability only ever counts
reservations that are active and unexpired at read time.

Every operation that checks availability and then writes (reserve,
update_reservation, update_stock, release) runs under the per-product
lock ``stock:{product_id}``, so two terminals can never both be granted
the same unit.
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from pos_cart.config import settings
from pos_cart.entities import (
    BatchAvailability,
    Order,
    Product,
    ProductAvailability,
    ReleaseResult,
    ReservationStatus,
    ReservationUpdate,
    StockReservation,
    StockStatusReport,
    StockUpdateResult,
    StockView,
)
from pos_cart.errors import (
    InsufficientStockError,
    InvalidProductError,
    InvalidQuantityError,
    LockTimeoutError,
    NegativeStockError,
    PosError,
    ProductNotFoundError,
    ReservationNotFoundError,
    StockNotManagedError,
    StockTooHighError,
    ValidationError,
)
from pos_cart.protocols import CatalogProvider, KeyValueStore
from pos_cart.utils import md5_hex

from .cache_service import GROUP_STOCK, CacheService

logger = logging.getLogger(__name__)

RESERVATION_PREFIX = "reservation:"
PRODUCT_INDEX_PREFIX = "reservation_product:"
ORDER_INDEX_PREFIX = "reservation_order:"

STOCK_OPERATIONS = ("set", "increase", "decrease")


def calculate_new_stock(current_stock: int, quantity: int, operation: str) -> int:
    """Apply a stock operation to ``current_stock``."""
    if operation == "set":
        return quantity
    if operation == "increase":
        return current_stock + quantity
    if operation == "decrease":
        return current_stock - quantity
    raise ValidationError(f"Unknown stock operation {operation!r}.", operation=operation)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class InventoryService:
    """Stock availability and reservations shared by all terminals.

    Example:
        ```python
        inventory = InventoryService(store=store, catalog=catalog, cache=cache)
        hold = inventory.reserve(42, 2, order_key="cart_abc")
        inventory.get_real_time_stock(42).available_stock
        inventory.release("cart_abc")
        ```
    """

    def __init__(
        self,
        store: KeyValueStore,
        catalog: CatalogProvider,
        cache: CacheService,
        clock: Callable[[], float] = time.time,
        reservation_timeout: int | None = None,
        reservation_grace: int | None = None,
        lock_timeout: float | None = None,
        lock_wait: float | None = None,
        low_stock_amount: int | None = None,
        max_stock_quantity: int | None = None,
    ) -> None:
        """Initialize the inventory coordinator.

        Args:
            store: Shared key-value backend for the reservation ledger.
            catalog: Authoritative product and stock source.
            cache: Cache service used for short-lived stock snapshots.
            clock: Time source in epoch seconds.
            reservation_timeout: Default lease length (seconds).
            reservation_grace: How long lapsed records stay visible to sweeps.
            lock_timeout: Auto-release time of the per-product lock.
            lock_wait: How long to wait for the per-product lock.
            low_stock_amount: Threshold used when a product has none.
            max_stock_quantity: Upper bound accepted by ``update_stock``.
        """
        self._store = store
        self._catalog = catalog
        self._cache = cache
        self._clock = clock
        self._timeout = reservation_timeout or settings.reservation_timeout
        self._grace = settings.reservation_grace if reservation_grace is None else reservation_grace
        self._lock_timeout = lock_timeout or settings.stock_lock_timeout
        self._lock_wait = settings.stock_lock_wait if lock_wait is None else lock_wait
        self._low_stock_amount = settings.low_stock_amount if low_stock_amount is None else low_stock_amount
        self._max_stock = max_stock_quantity or settings.max_stock_quantity

    @classmethod
    def create(
        cls,
        store: KeyValueStore,
        catalog: CatalogProvider,
        cache: CacheService,
        clock: Callable[[], float] | None = None,
    ) -> "InventoryService":
        return cls(store=store, catalog=catalog, cache=cache, clock=clock or time.time)

    @property
    def reservation_timeout(self) -> int:
        return self._timeout

    # Keys and records

    @staticmethod
    def _reservation_key(reservation_id: str) -> str:
        return f"{RESERVATION_PREFIX}{reservation_id}"

    @staticmethod
    def _product_index_key(product_id: int, reservation_id: str = "") -> str:
        return f"{PRODUCT_INDEX_PREFIX}{product_id}:{reservation_id}"

    @staticmethod
    def _order_index_key(order_key: str, reservation_id: str = "") -> str:
        return f"{ORDER_INDEX_PREFIX}{md5_hex(order_key)}:{reservation_id}"

    @staticmethod
    def _stock_cache_key(product_id: int) -> str:
        return f"product_{product_id}"

    def _lock(self, product_id: int):
        return self._store.lock(f"stock:{product_id}", timeout=self._lock_timeout, wait=self._lock_wait)

    def _save_reservation(self, reservation: StockReservation) -> None:
        ttl = max(1.0, reservation.expires_at - self._clock()) + self._grace
        self._store.set_many(
            {
                self._reservation_key(reservation.id): reservation.to_dict(),
                self._product_index_key(reservation.product_id, reservation.id): reservation.id,
                self._order_index_key(reservation.order_key, reservation.id): reservation.id,
            },
            ttl=ttl,
        )

    def _delete_reservations(self, reservations: Iterable[StockReservation]) -> int:
        keys: list[str] = []
        count = 0
        for reservation in reservations:
            keys.append(self._reservation_key(reservation.id))
            keys.append(self._product_index_key(reservation.product_id, reservation.id))
            keys.append(self._order_index_key(reservation.order_key, reservation.id))
            count += 1
        if keys:
            self._store.delete_many(keys)
        return count

    def _load_reservation(self, reservation_id: str) -> StockReservation | None:
        data = self._store.get(self._reservation_key(reservation_id))
        return None if data is None else StockReservation.from_dict(data)

    def _load_indexed(self, prefix: str) -> list[StockReservation]:
        index_keys = self._store.scan(prefix)
        ids = [key[len(prefix):] for key in index_keys]
        records = self._store.get_many([self._reservation_key(rid) for rid in ids])
        return [StockReservation.from_dict(data) for data in records.values()]

    def _active_for_product(self, product_id: int) -> list[StockReservation]:
        now = self._clock()
        return [
            reservation
            for reservation in self._load_indexed(self._product_index_key(product_id))
            if reservation.product_id == product_id and reservation.is_active(now)
        ]

    def _reserved_quantity(self, product_id: int, exclude_id: str | None = None) -> int:
        return sum(r.quantity for r in self._active_for_product(product_id) if r.id != exclude_id)

    def _invalidate_stock(self, product_id: int) -> None:
        self._cache.invalidate_key(GROUP_STOCK, self._stock_cache_key(product_id))

    def _require_product(self, product_id: int) -> Product:
        if not _positive_int(product_id):
            raise InvalidProductError("Invalid product ID.", product_id=product_id)
        product = self._catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id=product_id)
        return product

    def low_stock_threshold(self, product: Product) -> int:
        if product.low_stock_amount is not None:
            return int(product.low_stock_amount)
        return self._low_stock_amount

    def is_low_stock(self, product: Product, stock_quantity: int | None = None) -> bool:
        if not product.manage_stock:
            return False
        quantity = product.stock_quantity if stock_quantity is None else stock_quantity
        return (quantity or 0) <= self.low_stock_threshold(product)

    # Stock views

    def _available(self, product: Product, reserved: int) -> int | None:
        if not product.manage_stock:
            return None
        return max(0, (product.stock_quantity or 0) - reserved)

    def _build_view(self, product: Product) -> StockView:
        reservations = self._active_for_product(product.id)
        reserved = sum(r.quantity for r in reservations)
        variations = []
        for variation_id in product.variation_ids:
            variation = self._catalog.get_product(variation_id)
            if variation is None:
                continue
            variations.append(
                {
                    "variation_id": variation.id,
                    "stock_quantity": variation.stock_quantity,
                    "stock_status": variation.stock_status,
                    "manage_stock": variation.manage_stock,
                    "available_stock": self._available(variation, self._reserved_quantity(variation.id)),
                }
            )
        return StockView(
            product_id=product.id,
            current_stock=product.stock_quantity,
            stock_status=product.stock_status,
            manage_stock=product.manage_stock,
            backorders=product.backorders,
            low_stock_amount=product.low_stock_amount,
            low_stock_threshold=self.low_stock_threshold(product),
            reserved_stock=reserved,
            available_stock=self._available(product, reserved),
            is_low_stock=self.is_low_stock(product),
            last_updated=self._clock(),
            reservations=[r.to_dict() for r in reservations],
            variations=variations,
        )

    def _refresh_cached_view(self, view: StockView) -> StockView:
        """Drop reservations that lapsed since the snapshot was cached."""
        now = self._clock()
        live = [r for r in view.reservations if StockReservation.from_dict(r).is_active(now)]
        if len(live) != len(view.reservations):
            view.reservations = live
            view.reserved_stock = sum(int(r["quantity"]) for r in live)
            if view.manage_stock:
                view.available_stock = max(0, (view.current_stock or 0) - view.reserved_stock)
        view.from_cache = True
        return view

    def get_real_time_stock(self, product_id: int, use_cache: bool = True) -> StockView:
        """Current stock, reservations and availability for a product.

        Args:
            product_id: Product or variation id
            use_cache: Serve a snapshot up to the stock-group TTL old

        Raises:
            InvalidProductError: Non-positive id
            ProductNotFoundError: Unknown product
        """
        if use_cache and _positive_int(product_id):
            cached = self._cache.get_stock_cache(self._stock_cache_key(product_id))
            if cached is not None:
                return self._refresh_cached_view(StockView.from_dict(cached))

        # Built under the product lock so a reservation or stock update cannot
        # land between the reads and the cache write.
        try:
            with self._lock(product_id):
                view = self._build_view(self._require_product(product_id))
                self._cache.set_stock_cache(self._stock_cache_key(product_id), view.to_dict())
        except LockTimeoutError:
            logger.debug("Stock lock busy for product %s, serving an uncached view", product_id)
            view = self._build_view(self._require_product(product_id))
        return view

    # Reservations

    def reserve(
        self,
        product_id: int,
        quantity: int,
        order_key: str,
        owner: str = "",
        ttl: int | None = None,
    ) -> StockReservation:
        """Hold ``quantity`` units of a product for ``order_key``.

        Availability is re-read from the ledger inside the product lock,
        never from the stock cache.

        Raises:
            InvalidQuantityError: Quantity is not a positive integer
            ProductNotFoundError: Unknown product
            StockNotManagedError: Product stock is not tracked
            InsufficientStockError: Not enough unreserved stock
            LockTimeoutError: The product lock is busy
        """
        if not _positive_int(quantity):
            raise InvalidQuantityError(quantity=quantity)
        if not order_key:
            raise ValidationError("An order key is required to reserve stock.")

        with self._lock(product_id):
            product = self._require_product(product_id)
            if not product.manage_stock:
                raise StockNotManagedError(product_id=product_id)

            available = self._available(product, self._reserved_quantity(product_id)) or 0
            if available < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock. Available: {available}, Requested: {quantity}",
                    product_id=product_id,
                    available=available,
                    requested=quantity,
                )

            now = self._clock()
            reservation = StockReservation(
                id=uuid.uuid4().hex,
                product_id=product_id,
                quantity=quantity,
                order_key=order_key,
                owner=owner,
                created_at=now,
                expires_at=now + (ttl or self._timeout),
            )
            self._save_reservation(reservation)

        self._invalidate_stock(product_id)
        logger.debug(
            "Reserved %d of product %d for %s (reservation %s)", quantity, product_id, order_key, reservation.id
        )
        return reservation

    def update_reservation(self, reservation_id: str, quantity_delta: int) -> ReservationUpdate:
        """Resize a reservation by ``quantity_delta``; a result of zero or less deletes it.

        Growth is checked against availability excluding the reservation's
        own hold. A successful resize also renews the lease.

        Raises:
            ReservationNotFoundError: Unknown, released or expired reservation
            InsufficientStockError: Not enough unreserved stock for the growth
        """
        if not isinstance(quantity_delta, int) or isinstance(quantity_delta, bool):
            raise InvalidQuantityError(quantity=quantity_delta)

        reservation = self._load_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id=reservation_id)

        with self._lock(reservation.product_id):
            reservation = self._load_reservation(reservation_id)
            now = self._clock()
            if reservation is None or not reservation.is_active(now):
                raise ReservationNotFoundError(reservation_id=reservation_id)

            new_quantity = reservation.quantity + quantity_delta
            if new_quantity <= 0:
                self._delete_reservations([reservation])
                result = ReservationUpdate(reservation_id=reservation_id, action="deleted", quantity=0)
            else:
                if quantity_delta > 0:
                    product = self._require_product(reservation.product_id)
                    reserved_others = self._reserved_quantity(reservation.product_id, exclude_id=reservation_id)
                    available = self._available(product, reserved_others)
                    if available is not None and available < new_quantity:
                        raise InsufficientStockError(
                            f"Insufficient stock. Available: {available}, Requested: {new_quantity}",
                            product_id=reservation.product_id,
                            available=available,
                            requested=new_quantity,
                        )
                reservation.quantity = new_quantity
                reservation.updated_at = now
                reservation.expires_at = max(reservation.expires_at, now + self._timeout)
                self._save_reservation(reservation)
                result = ReservationUpdate(
                    reservation_id=reservation_id,
                    action="updated",
                    quantity=new_quantity,
                    reservation=reservation,
                )

        self._invalidate_stock(reservation.product_id)
        logger.debug("Reservation %s %s to %d", reservation_id, result.action, result.quantity)
        return result

    def release(self, order_key_or_reservation_id: str, product_id: int | None = None) -> ReleaseResult:
        """Release a reservation by id, or every reservation of an order key.

        Releasing something that is already gone succeeds with a zero count.
        """
        return self._release(order_key_or_reservation_id, product_id, ReservationStatus.RELEASED)

    def consume(self, order_key: str) -> ReleaseResult:
        """Drop an order's holds once the authoritative stock has been decremented."""
        return self._release(order_key, None, ReservationStatus.CONSUMED)

    def _release(self, target: str, product_id: int | None, outcome: ReservationStatus) -> ReleaseResult:
        if not target:
            return ReleaseResult(released_count=0)

        single = self._load_reservation(target)
        if single is not None and single.id == target:
            candidates = [single]
        else:
            candidates = [r for r in self._load_indexed(self._order_index_key(target)) if r.order_key == target]
        if product_id is not None:
            candidates = [r for r in candidates if r.product_id == product_id]

        released: list[StockReservation] = []
        for pid in sorted({r.product_id for r in candidates}):
            with self._lock(pid):
                ids = {r.id for r in candidates if r.product_id == pid}
                current = [r for r in (self._load_reservation(rid) for rid in ids) if r is not None]
                self._delete_reservations(current)
                released.extend(current)
            self._invalidate_stock(pid)

        if released:
            logger.debug("Reservations for %s marked %s: %d", target, outcome.value, len(released))
        return ReleaseResult(
            released_count=len(released),
            released_products=tuple(sorted({r.product_id for r in released})),
            reservation_ids=tuple(r.id for r in released),
        )

    def get_reservation(self, reservation_id: str) -> StockReservation:
        """Load a reservation with its effective status (expired if its lease lapsed)."""
        reservation = self._load_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id=reservation_id)
        reservation.status = reservation.effective_status(self._clock())
        return reservation

    def get_product_reservations(self, product_id: int) -> list[StockReservation]:
        return self._active_for_product(product_id)

    def get_order_reservations(self, order_key: str) -> list[StockReservation]:
        now = self._clock()
        return [
            r
            for r in self._load_indexed(self._order_index_key(order_key))
            if r.order_key == order_key and r.is_active(now)
        ]

    # Availability

    def batch_check_availability(self, requests: dict[int, int]) -> BatchAvailability:
        """Check several product quantities at once without reserving anything."""
        results: dict[int, ProductAvailability] = {}
        overall = True
        for product_id, quantity in requests.items():
            if not _positive_int(quantity):
                results[product_id] = ProductAvailability(
                    product_id=product_id,
                    requested=quantity,
                    available=False,
                    error=InvalidQuantityError.code,
                    message="Quantity must be a positive integer",
                )
                overall = False
                continue

            product = self._catalog.get_product(product_id) if _positive_int(product_id) else None
            if product is None:
                results[product_id] = ProductAvailability(
                    product_id=product_id,
                    requested=quantity,
                    available=False,
                    error=ProductNotFoundError.code,
                    message="Product not found",
                )
                overall = False
                continue

            if not product.manage_stock:
                results[product_id] = ProductAvailability(
                    product_id=product_id,
                    requested=quantity,
                    available=True,
                    available_stock=None,
                    current_stock=product.stock_quantity,
                    stock_status=product.stock_status,
                    backorders=product.backorders,
                )
                continue

            reserved = self._reserved_quantity(product_id)
            available_stock = self._available(product, reserved) or 0
            line = ProductAvailability(
                product_id=product_id,
                requested=quantity,
                available=available_stock >= quantity,
                available_stock=available_stock,
                current_stock=product.stock_quantity,
                reserved_stock=reserved,
                stock_status=product.stock_status,
                backorders=product.backorders,
            )
            if not line.available:
                overall = False
                line.error = InsufficientStockError.code
                line.message = f"Insufficient stock. Available: {available_stock}, Requested: {quantity}"
            results[product_id] = line

        return BatchAvailability(overall_available=overall, products=results, timestamp=self._clock())

    # Stock updates

    def update_stock(
        self,
        product_id: int,
        quantity: int,
        operation: str = "set",
        terminal_id: str = "",
        user_id: int | None = None,
        reason: str = "pos_adjustment",
        note: str = "",
        force: bool = False,
    ) -> StockUpdateResult:
        """Change the authoritative stock of a product under its lock.

        Raises:
            ValidationError: Unknown operation or negative quantity
            ProductNotFoundError: Unknown product
            StockNotManagedError: Product stock is not tracked
            NegativeStockError: Result below zero without backorders or ``force``
            StockTooHighError: Result above the configured maximum
        """
        if operation not in STOCK_OPERATIONS:
            raise ValidationError(f"Unknown stock operation {operation!r}.", operation=operation)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            raise InvalidQuantityError("Quantity must be a non-negative integer.", quantity=quantity)

        with self._lock(product_id):
            product = self._require_product(product_id)
            if not product.manage_stock:
                raise StockNotManagedError(product_id=product_id)

            current = product.stock_quantity or 0
            new_stock = calculate_new_stock(current, quantity, operation)
            if new_stock < 0 and not force and product.backorders == "no":
                raise NegativeStockError(product_id=product_id, new_stock=new_stock)
            if new_stock > self._max_stock:
                raise StockTooHighError(
                    f"Stock quantity cannot exceed {self._max_stock}.", product_id=product_id, new_stock=new_stock
                )
            self._catalog.set_stock_quantity(product_id, new_stock)

        result = StockUpdateResult(
            product_id=product_id,
            previous_stock=current,
            new_stock=new_stock,
            operation=operation,
            quantity_changed=quantity,
            timestamp=self._clock(),
            terminal_id=terminal_id,
            user_id=user_id,
        )
        logger.info(
            "Stock Update: product=%d %d -> %d op=%s user=%s terminal=%s reason=%s note=%s",
            product_id,
            current,
            new_stock,
            operation,
            user_id,
            terminal_id,
            reason,
            note,
        )
        updated = self._catalog.get_product(product_id) or product
        if updated.parent_id is not None:
            self.handle_variation_stock_change(product_id, updated.parent_id, new_stock, current)
        else:
            self.handle_stock_change(product_id, new_stock, current)
        return result

    # Lifecycle events

    def handle_stock_change(self, product_id: int, new_stock: int, old_stock: int) -> None:
        """Catalog stock changed: drop cached snapshots and raise low-stock alerts."""
        self._cache.invalidate_product(product_id)
        if new_stock != old_stock:
            logger.debug("Stock changed for product %d: %d -> %d", product_id, old_stock, new_stock)
        product = self._catalog.get_product(product_id)
        if product is not None and self.is_low_stock(product, new_stock):
            logger.warning(
                "Low stock alert: product %d has %d left (threshold %d)",
                product_id,
                new_stock,
                self.low_stock_threshold(product),
            )

    def handle_variation_stock_change(self, variation_id: int, parent_id: int, new_stock: int, old_stock: int) -> None:
        self._cache.invalidate_product(variation_id)
        self._cache.invalidate_product(parent_id)
        logger.debug(
            "Variation stock changed for %d (parent: %d): %d -> %d", variation_id, parent_id, old_stock, new_stock
        )

    def handle_order_pending(self, order: Order) -> list[StockReservation]:
        if not order.is_pos_order:
            return []
        return self.reserve_order_stock(order)

    def handle_order_processing(self, order: Order) -> ReleaseResult:
        # The order collaborator has already decremented stock
        if not order.is_pos_order:
            return ReleaseResult(released_count=0)
        return self.consume(order.order_key)

    def handle_order_completed(self, order: Order) -> ReleaseResult:
        logger.debug("POS order %d completed", order.order_id)
        if not order.is_pos_order:
            return ReleaseResult(released_count=0)
        return self.consume(order.order_key)

    def handle_order_cancelled(self, order: Order) -> ReleaseResult:
        if not order.is_pos_order:
            return ReleaseResult(released_count=0)
        return self.release(order.order_key)

    def handle_stock_reduction(self, order: Order) -> ReleaseResult:
        if not order.is_pos_order:
            return ReleaseResult(released_count=0)
        result = self.consume(order.order_key)
        logger.debug("Stock reduced for POS order %d", order.order_id)
        return result

    def handle_stock_restoration(self, order: Order) -> None:
        if not order.is_pos_order:
            return
        logger.debug("Stock restored for POS order %d", order.order_id)
        for line in order.items:
            self._cache.invalidate_product(line.stock_product_id)

    def reserve_order_stock(self, order: Order) -> list[StockReservation]:
        """Reserve every line of an order; lines that cannot be held are logged and skipped."""
        reservations = []
        for line in order.items:
            try:
                reservations.append(
                    self.reserve(line.stock_product_id, line.quantity, order.order_key, owner=f"order_{order.order_id}")
                )
            except PosError as exc:
                logger.warning(
                    "Could not reserve %d of product %d for order %d: %s",
                    line.quantity,
                    line.stock_product_id,
                    order.order_id,
                    exc.message,
                )
        return reservations

    # Maintenance and reporting

    def cleanup_expired_reservations(self) -> int:
        """Delete reservations whose lease lapsed and index entries left without a record.

        Returns:
            Number of reservations removed
        """
        now = self._clock()
        keys = self._store.scan(RESERVATION_PREFIX)
        records = [StockReservation.from_dict(data) for data in self._store.get_many(keys).values()]
        expired = [r for r in records if not r.is_active(now)]
        live_ids = {r.id for r in records if r.is_active(now)}

        self._delete_reservations(expired)
        candidates = [
            key
            for prefix in (PRODUCT_INDEX_PREFIX, ORDER_INDEX_PREFIX)
            for key in self._store.scan(prefix)
            if key.rsplit(":", 1)[-1] not in live_ids
        ]
        # Reservations written after the first scan are not in live_ids.
        record_keys = {key: self._reservation_key(key.rsplit(":", 1)[-1]) for key in candidates}
        current = self._store.get_many(list(set(record_keys.values())))
        orphans = []
        for key, record_key in record_keys.items():
            data = current.get(record_key)
            if data is None or not StockReservation.from_dict(data).is_active(now):
                orphans.append(key)
        if orphans:
            self._store.delete_many(orphans)

        for product_id in {r.product_id for r in expired}:
            self._invalidate_stock(product_id)
        if expired:
            logger.info("Cleaned up %d expired stock reservations", len(expired))
        return len(expired)

    def get_stock_status_report(self, product_ids: list[int] | None = None) -> StockStatusReport:
        ids = product_ids or self._catalog.list_product_ids(managed_only=True)
        report = StockStatusReport(timestamp=self._clock())
        for product_id in ids:
            try:
                view = self.get_real_time_stock(product_id)
            except PosError as exc:
                logger.debug("Skipping product %s in stock report: %s", product_id, exc.message)
                continue
            report.products[product_id] = view.to_dict()
            report.total_products += 1
            if view.stock_status == "instock":
                report.in_stock += 1
            elif view.stock_status == "outofstock":
                report.out_of_stock += 1
            if view.is_low_stock:
                report.low_stock += 1
            report.total_reservations += len(view.reservations)
        return report

    def force_refresh_stock_cache(self, product_ids: list[int]) -> dict[str, Any]:
        results: dict[str, Any] = {}
        for product_id in product_ids:
            self._invalidate_stock(product_id)
            try:
                view = self.get_real_time_stock(product_id, use_cache=False)
                results[str(product_id)] = {"success": True, "data": view.to_dict(), "refreshed_at": self._clock()}
            except PosError as exc:
                results[str(product_id)] = {"success": False, "error": exc.to_dict(), "refreshed_at": self._clock()}
        return {"success": True, "products_refreshed": len(results), "results": results}
