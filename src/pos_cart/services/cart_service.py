"""Cart coordinator for one terminal session.

Each public mutation is atomic: it works on the live cart, and on any
error the cart is restored from a copy taken before the call and any
reservation created during the call is released. Reservations that a
successful mutation gives up are released only after the new snapshot
has been persisted.

Totals follow a Clean/Dirty state machine on the cart entity: mutations
mark the cart dirty and ``get_totals`` recomputes at most once per dirty
period.
"""

import copy
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any

from pos_cart.config import settings
from pos_cart.entities import (
    Cart,
    CartItem,
    CartTotals,
    Coupon,
    CustomerLocation,
    Product,
    Session,
    TaxableItem,
    TaxResult,
    generate_item_key,
)
from pos_cart.errors import (
    CouponAlreadyAppliedError,
    CouponInvalidError,
    InsufficientStockError,
    InternalError,
    InvalidProductError,
    InvalidQuantityError,
    ItemNotFoundError,
    OutOfStockError,
    PosError,
    ReservationNotFoundError,
    ValidationError,
)
from pos_cart.models import PerformanceMetrics
from pos_cart.protocols import CatalogProvider
from pos_cart.utils import format_price, quantize_money

from .inventory_service import InventoryService
from .session_service import SessionService
from .tax_service import TaxService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def resolve_unit_price(product: Product, data: dict[str, Any] | None = None) -> Decimal:
    """Unit price after POS adjustments carried in the item data.

    A positive ``custom_price`` replaces the catalog price outright.
    Otherwise ``discount_percent`` (clamped to 0-100) and then
    ``discount_amount`` (floored at zero) are applied.
    """
    data = data or {}
    custom = _decimal(data.get("custom_price", 0))
    if custom > 0:
        return custom

    price = product.price
    percent = _decimal(data.get("discount_percent", 0))
    if percent > 0:
        price = price * (1 - min(HUNDRED, percent) / HUNDRED)
    amount = _decimal(data.get("discount_amount", 0))
    if amount > 0:
        price = max(ZERO, price - amount)
    return price


class CartService:
    """Cart operations bound to a single session.

    Example:
        ```python
        cart = CartService(session, sessions=sessions, inventory=inventory, taxes=taxes, catalog=catalog)
        item = cart.add_item(42, 2)
        cart.apply_coupon("summer")
        cart.get_totals().cart_total
        ```
    """

    def __init__(
        self,
        session: Session,
        sessions: SessionService,
        inventory: InventoryService,
        taxes: TaxService | None,
        catalog: CatalogProvider,
        metrics: PerformanceMetrics | None = None,
        clock: Callable[[], float] = time.time,
        currency_symbol: str | None = None,
        decimals: int | None = None,
    ) -> None:
        """Load the cart snapshot stored in ``session``.

        Args:
            session: Live session owning the cart.
            sessions: Session store used to persist the snapshot.
            inventory: Inventory coordinator for availability and reservations.
            taxes: Tax engine. None computes tax-free totals.
            catalog: Product and coupon source.
            metrics: Shared performance metrics; a private instance by default.
            clock: Time source in epoch seconds.
            currency_symbol: Symbol used in formatted totals.
            decimals: Currency precision.
        """
        self._session = session
        self._sessions = sessions
        self._inventory = inventory
        self._taxes = taxes
        self._catalog = catalog
        self._metrics = metrics or PerformanceMetrics()
        self._clock = clock
        self._currency_symbol = settings.currency_symbol if currency_symbol is None else currency_symbol
        self._decimals = settings.price_decimals if decimals is None else decimals

        self._cart = Cart.from_dict(sessions.get_cart_snapshot(session))
        if not self._cart.order_key:
            self._cart.order_key = f"pos_cart_{session.session_id[:32]}"
        self._depth = 0
        self._rollbacks: list[Callable[[], None]] = []
        self._on_commit: list[Callable[[], None]] = []

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def session(self) -> Session:
        return self._session

    @property
    def metrics(self) -> PerformanceMetrics:
        return self._metrics

    def _format(self, amount: Decimal) -> str:
        return format_price(amount, self._currency_symbol, self._decimals)

    # Transactions

    @contextmanager
    def _translated(self, operation: str) -> Iterator[None]:
        """Re-raise collaborator failures as InternalError."""
        try:
            yield
        except PosError:
            raise
        except Exception as exc:
            logger.error("Cart operation %s failed: %s", operation, exc)
            raise InternalError(f"Cart operation {operation} failed.") from exc

    @contextmanager
    def _mutation(self, operation: str) -> Iterator[None]:
        """Run a mutation atomically.

        A nested call is a savepoint: on error it restores the cart and
        undoes the reservation changes made since it opened, then the
        error reaches the outer call, which decides whether to go on.
        Only the outermost call persists.
        """
        if self._depth:
            snapshot = copy.deepcopy(self._cart)
            undo_mark, commit_mark = len(self._rollbacks), len(self._on_commit)
            self._depth += 1
            try:
                with self._translated(operation):
                    yield
            except PosError:
                self._cart = snapshot
                self._undo(self._rollbacks[undo_mark:])
                del self._rollbacks[undo_mark:]
                del self._on_commit[commit_mark:]
                raise
            finally:
                self._depth -= 1
            return

        snapshot = copy.deepcopy(self._cart)
        started = self._metrics.start()
        self._depth = 1
        self._rollbacks = []
        self._on_commit = []
        try:
            with self._translated(operation):
                yield
                self._cart.updated_at = self._clock()
                self._persist(self._cart)
        except PosError:
            self._rollback(snapshot)
            raise
        finally:
            self._depth = 0
            duration = self._metrics.finish(operation, started)
            if self._metrics.is_slow(duration):
                logger.warning("Slow cart operation %s: %.1f ms", operation, duration)

        for action in self._on_commit:
            try:
                action()
            except PosError as exc:
                logger.warning("Post-commit step of %s failed: %s", operation, exc.message)
        self._on_commit = []

    def _undo(self, rollbacks: list[Callable[[], None]]) -> None:
        for undo in reversed(rollbacks):
            try:
                undo()
            except PosError as exc:
                logger.warning("Could not undo a reservation change: %s", exc.message)

    def _rollback(self, snapshot: Cart) -> None:
        self._cart = snapshot
        self._undo(self._rollbacks)
        self._rollbacks = []
        self._on_commit = []

    def _persist(self, cart: Cart) -> None:
        self._sessions.set_cart_snapshot(self._session, cart.to_dict())

    # Validation helpers

    def _load_product(self, product_id: Any, variation_id: Any = 0) -> Product:
        if not _is_positive_int(product_id):
            raise InvalidProductError("Invalid product ID.", product_id=product_id)
        if variation_id and not _is_positive_int(variation_id):
            raise InvalidProductError("Invalid variation ID.", variation_id=variation_id)

        with self._translated("load_product"):
            product = self._catalog.get_product(variation_id or product_id)
        if product is None:
            raise InvalidProductError("Product not found.", product_id=product_id, variation_id=variation_id)
        if not product.is_purchasable:
            raise InvalidProductError("Product cannot be purchased.", product_id=product.id)
        return product

    def _own_reserved(self, stock_product_id: int) -> int:
        return sum(
            reservation.quantity
            for reservation in self._inventory.get_order_reservations(self._cart.order_key)
            if reservation.product_id == stock_product_id
        )

    def _stock_issue(self, product: Product, quantity: int) -> PosError | None:
        """Return the availability error for ``quantity`` units, if any."""
        if not product.manage_stock:
            if not product.is_in_stock:
                return OutOfStockError(product_id=product.id)
            return None
        if product.backorders_allowed:
            return None

        with self._translated("stock_check"):
            view = self._inventory.get_real_time_stock(product.id, use_cache=False)
            held_by_others = max(0, view.reserved_stock - self._own_reserved(product.id))
        available = max(0, (view.current_stock or 0) - held_by_others)
        if available <= 0:
            return OutOfStockError(product_id=product.id, requested=quantity)
        if available < quantity:
            return InsufficientStockError(
                f"Insufficient stock. Available: {available}, Requested: {quantity}",
                product_id=product.id,
                available=available,
                requested=quantity,
            )
        return None

    def _require_item(self, key: str) -> CartItem:
        item = self._cart.items.get(key)
        if item is None:
            raise ItemNotFoundError(key=key)
        return item

    # Reservations (best effort)

    def _reserve(self, item: CartItem, quantity: int) -> None:
        try:
            reservation = self._inventory.reserve(
                item.stock_product_id, quantity, self._cart.order_key, owner=self._session.terminal_id
            )
        except PosError as exc:
            logger.warning(
                "Could not reserve %d of product %d for cart: %s", quantity, item.stock_product_id, exc.message
            )
            return
        item.reservation_id = reservation.id
        self._rollbacks.append(lambda: self._inventory.release(reservation.id))

    def _resize_reservation(self, item: CartItem, new_quantity: int, delta: int) -> None:
        if item.reservation_id:
            reservation_id = item.reservation_id
            try:
                self._inventory.update_reservation(reservation_id, delta)
                self._rollbacks.append(lambda: self._inventory.update_reservation(reservation_id, -delta))
                return
            except ReservationNotFoundError:
                item.reservation_id = None
            except PosError as exc:
                logger.warning("Could not resize reservation %s: %s", reservation_id, exc.message)
                return
        self._reserve(item, new_quantity)

    def _release_after_commit(self, reservation_id: str | None) -> None:
        if reservation_id:
            self._on_commit.append(lambda: self._inventory.release(reservation_id))

    # Mutations

    def add_item(
        self,
        product_id: int,
        quantity: int = 1,
        variation_id: int = 0,
        variation: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> CartItem:
        """Add a product, merging into the existing line for the same selection.

        Raises:
            InvalidProductError: Unknown, unpurchasable or malformed product
            InvalidQuantityError: Quantity is not a positive integer
            OutOfStockError: Nothing left to sell
            InsufficientStockError: Fewer units available than requested
        """
        if not _is_positive_int(quantity):
            raise InvalidQuantityError(quantity=quantity)
        product = self._load_product(product_id, variation_id)

        key = generate_item_key(product_id, variation_id, variation)
        if key in self._cart.items:
            return self.update_item_quantity(key, self._cart.items[key].quantity + quantity)

        issue = self._stock_issue(product, quantity)
        if issue is not None:
            raise issue

        with self._mutation("add_item"):
            now = self._clock()
            item = CartItem(
                key=key,
                product_id=product_id,
                quantity=quantity,
                variation_id=variation_id or 0,
                variation=dict(variation or {}),
                data=dict(data or {}),
                name=product.name,
                tax_class=product.tax_class,
                unit_price=resolve_unit_price(product, data),
                added_at=now,
                updated_at=now,
            )
            if product.manage_stock:
                self._reserve(item, quantity)
            self._cart.items[key] = item
            self._cart.mark_dirty()

        logger.info("Added %d x product %d to cart (%s)", quantity, item.stock_product_id, key)
        return item

    def update_item_quantity(self, key: str, quantity: int) -> CartItem | None:
        """Set a line's quantity; zero or less removes the line.

        Returns:
            The updated item, or None when the line was removed
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise InvalidQuantityError(quantity=quantity)
        item = self._require_item(key)
        if quantity <= 0:
            self.remove_item(key)
            return None
        if quantity == item.quantity:
            return item

        product = self._load_product(item.product_id, item.variation_id)
        issue = self._stock_issue(product, quantity)
        if issue is not None:
            raise issue

        with self._mutation("update_item_quantity"):
            item = self._cart.items[key]
            delta = quantity - item.quantity
            if product.manage_stock:
                self._resize_reservation(item, quantity, delta)
            item.quantity = quantity
            item.updated_at = self._clock()
            self._cart.mark_dirty()

        logger.info("Updated cart line %s to quantity %d", key, quantity)
        return item

    def remove_item(self, key: str) -> CartItem:
        """Remove a line and release its reservation."""
        self._require_item(key)
        with self._mutation("remove_item"):
            item = self._cart.items.pop(key)
            self._release_after_commit(item.reservation_id)
            self._cart.mark_dirty()

        logger.info("Removed cart line %s", key)
        return item

    def clear(self) -> None:
        """Empty the cart and release every reservation it holds."""
        with self._mutation("clear"):
            order_key = self._cart.order_key
            self._on_commit.append(lambda: self._inventory.release(order_key))
            self._cart.items.clear()
            self._cart.applied_coupons.clear()
            self._cart.mark_clean(CartTotals(formatted=self._formatted(CartTotals())))

        logger.info("Cleared cart for session %s", self._session.session_id[:8])

    def apply_coupon(self, code: str) -> Coupon:
        """Apply a coupon code.

        Raises:
            CouponInvalidError: Unknown, disabled, expired or below minimum spend
            CouponAlreadyAppliedError: The code is already on the cart
        """
        code = (code or "").strip().lower()
        if not code:
            raise CouponInvalidError("Coupon code is required.")
        if code in self._cart.applied_coupons:
            raise CouponAlreadyAppliedError(code=code)

        coupon = self._valid_coupon(code)
        if coupon is None:
            raise CouponInvalidError(code=code)
        if coupon.minimum_amount is not None and self.get_totals().subtotal < coupon.minimum_amount:
            raise CouponInvalidError(
                f"Minimum spend for this coupon is {self._format(coupon.minimum_amount)}.", code=code
            )

        with self._mutation("apply_coupon"):
            self._cart.applied_coupons.append(code)
            self._cart.mark_dirty()

        logger.info("Applied coupon %s", code)
        return coupon

    def remove_coupon(self, code: str) -> bool:
        """Remove a coupon; removing one that is not applied is a no-op."""
        code = (code or "").strip().lower()
        if code not in self._cart.applied_coupons:
            return False
        with self._mutation("remove_coupon"):
            self._cart.applied_coupons.remove(code)
            self._cart.mark_dirty()

        logger.info("Removed coupon %s", code)
        return True

    def set_customer_location(self, location: CustomerLocation | dict[str, Any] | None) -> None:
        if isinstance(location, dict):
            location = CustomerLocation.from_dict(location)
        with self._mutation("set_customer_location"):
            self._cart.location = location
            self._cart.mark_dirty()

    def set_customer(self, customer_id: int | None) -> None:
        if customer_id is not None and not _is_positive_int(customer_id):
            raise ValidationError("Invalid customer ID.", customer_id=customer_id)
        with self._mutation("set_customer"):
            self._cart.customer_id = customer_id
            self._sessions.set_customer_id(self._session, customer_id)
            self._cart.mark_dirty()

    def batch_add(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        """Add several products in one transaction with a single totals recomputation.

        Each entry takes the keyword arguments of ``add_item``. Entries that
        fail validation or stock checks are reported and leave the cart as it
        was before them. An internal failure undoes the whole batch, including
        reservations taken for earlier entries, and is re-raised.
        """
        added: list[str] = []
        errors: list[dict[str, Any]] = []
        with self._mutation("batch_add"):
            for index, entry in enumerate(items):
                try:
                    item = self.add_item(
                        entry.get("product_id"),
                        entry.get("quantity", 1),
                        variation_id=entry.get("variation_id", 0),
                        variation=entry.get("variation"),
                        data=entry.get("data"),
                    )
                    added.append(item.key)
                except InternalError:
                    raise
                except PosError as exc:
                    errors.append({"index": index, "product_id": entry.get("product_id"), **exc.to_dict()})

        if self._cart.is_dirty:
            totals = self.get_totals()
        else:
            totals = self._cart.totals
        return {
            "success": not errors,
            "added": [self._cart.items[key].to_dict() for key in dict.fromkeys(added) if key in self._cart.items],
            "errors": errors,
            "totals": totals.to_dict(),
        }

    # Totals

    def _valid_coupon(self, code: str) -> Coupon | None:
        with self._translated("coupon_lookup"):
            coupon = self._catalog.get_coupon(code)
        if coupon is None or not coupon.enabled or coupon.is_expired(self._clock()):
            return None
        return coupon

    def _taxable_items(self) -> list[TaxableItem]:
        lines = []
        for item in self._cart.items.values():
            product = self._catalog.get_product(item.stock_product_id)
            if product is not None:
                item.unit_price = resolve_unit_price(product, item.data)
                item.tax_class = product.tax_class
            lines.append(
                TaxableItem(
                    key=item.key,
                    product_id=item.stock_product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_class=item.tax_class,
                    taxable=product.is_taxable if product is not None else True,
                    variation_id=item.variation_id,
                )
            )
        return lines

    def _tax_free(self, lines: list[TaxableItem], message: str) -> TaxResult:
        result = TaxResult(error=True, error_message=message)
        for line in lines:
            amount = quantize_money(line.unit_price * line.quantity, self._decimals)
            result.subtotal += amount
        result.total = result.subtotal
        result.cart_total = result.subtotal
        return result

    def _discount(self, coupons: list[Coupon], subtotal: Decimal) -> Decimal:
        discount = ZERO
        for coupon in coupons:
            eligible = [item for item in self._cart.items.values() if coupon.applies_to(item.product_id)
                        or (item.variation_id and coupon.applies_to(item.variation_id))]
            if coupon.discount_type == "percent":
                base = sum((item.line_subtotal for item in eligible), ZERO)
                discount += base * min(HUNDRED, coupon.amount) / HUNDRED
            elif coupon.discount_type == "fixed_product":
                discount += sum(
                    (min(item.line_subtotal, coupon.amount * item.quantity) for item in eligible),
                    ZERO,
                )
            else:
                discount += coupon.amount
        return quantize_money(min(max(discount, ZERO), subtotal), self._decimals)

    def _formatted(self, totals: CartTotals) -> dict[str, str]:
        return {
            "subtotal": self._format(totals.subtotal),
            "subtotal_tax": self._format(totals.subtotal_tax),
            "total": self._format(totals.total),
            "total_tax": self._format(totals.total_tax),
            "discount_total": self._format(totals.discount_total),
            "cart_total": self._format(totals.cart_total),
        }

    def _compute_totals(self) -> CartTotals:
        lines = self._taxable_items()
        if self._taxes is None:
            result = self._tax_free(lines, "Tax engine unavailable")
        else:
            try:
                result = self._taxes.calculate_cart_taxes(lines, self._cart.location)
            except Exception as exc:
                logger.warning("Tax engine unavailable, using tax-free totals: %s", exc)
                result = self._tax_free(lines, str(exc))

        for key, item in self._cart.items.items():
            line = result.items.get(key)
            if line is None:
                amount = quantize_money(item.unit_price * item.quantity, self._decimals)
                item.line_subtotal, item.line_subtotal_tax = amount, ZERO
                item.line_total, item.line_tax = amount, ZERO
                continue
            item.line_subtotal = line.line_subtotal
            item.line_subtotal_tax = line.line_subtotal_tax
            item.line_total = line.line_total
            item.line_tax = line.line_tax

        coupons = [coupon for code in self._cart.applied_coupons if (coupon := self._valid_coupon(code))]
        discount = self._discount(coupons, result.subtotal)
        if result.error:
            logger.warning("Cart totals computed without tax: %s", result.error_message)

        totals = CartTotals(
            subtotal=result.subtotal,
            subtotal_tax=result.subtotal_tax,
            total=result.total,
            total_tax=result.total_tax,
            discount_total=discount,
            discount_tax=ZERO,
            cart_total=max(ZERO, result.total + result.total_tax - discount),
            tax_lines=list(result.tax_lines),
            items_count=self._cart.item_count(),
            tax_error=result.error,
            display_text=result.display_text,
        )
        totals.formatted = self._formatted(totals)
        return totals

    def get_totals(self) -> CartTotals:
        """Totals for the current contents, recomputed only when the cart is dirty."""
        if not self._cart.is_dirty:
            return self._cart.totals

        started = self._metrics.start()
        candidate = copy.deepcopy(self._cart)
        working, self._cart = self._cart, candidate
        try:
            totals = self._compute_totals()
            candidate.mark_clean(totals)
            self._persist(candidate)
        except PosError:
            self._cart = working
            raise
        except Exception as exc:
            self._cart = working
            logger.error("Cart totals computation failed: %s", exc)
            raise InternalError("Cart totals computation failed.") from exc

        self._metrics.record_recalculation()
        duration = self._metrics.finish("calculate_totals", started)
        if self._metrics.is_slow(duration):
            logger.warning("Slow cart operation calculate_totals: %.1f ms", duration)
        return totals

    # Reads

    def get_contents(self, calculate: bool = True) -> dict[str, Any]:
        totals = self.get_totals() if calculate else self._cart.totals
        return {
            "items": [item.to_dict() for item in self._cart.items.values()],
            "totals": totals.to_dict(),
            "count": self._cart.item_count(),
            "hash": self._cart.content_hash(),
            "customer": {
                "id": self._cart.customer_id,
                "location": self._cart.location.to_dict() if self._cart.location else None,
            },
            "coupons": list(self._cart.applied_coupons),
            "dirty": self._cart.is_dirty,
        }

    def check_status(self) -> dict[str, Any]:
        """Re-validate every line against live stock without changing the cart."""
        issues: list[dict[str, Any]] = []
        for item in self._cart.items.values():
            with self._translated("check_status"):
                product = self._catalog.get_product(item.stock_product_id)
            if product is None:
                issues.append(
                    {"key": item.key, "product_id": item.stock_product_id, "error": "product_not_found",
                     "message": "Product no longer exists."}
                )
                continue
            issue = self._stock_issue(product, item.quantity)
            if issue is not None:
                issues.append(
                    {
                        "key": item.key,
                        "product_id": item.stock_product_id,
                        "requested": item.quantity,
                        "available": issue.details.get("available", 0),
                        "error": issue.code,
                        "message": issue.message,
                    }
                )

        session_valid = self._sessions.is_valid(self._session)
        return {"valid": session_valid and not issues, "stock_issues": issues, "session_valid": session_valid}

    def get_summary(self) -> dict[str, Any]:
        totals = self.get_totals()
        return {
            "items_count": self._cart.item_count(),
            "unique_items": len(self._cart.items),
            "is_empty": self._cart.is_empty,
            "subtotal": self._format(totals.subtotal),
            "total_tax": self._format(totals.total_tax),
            "discount_total": self._format(totals.discount_total),
            "cart_total": self._format(totals.cart_total),
            "coupons": list(self._cart.applied_coupons),
            "hash": self._cart.content_hash(),
        }

    def get_performance_metrics(self) -> dict[str, Any]:
        return self._metrics.to_dict()
