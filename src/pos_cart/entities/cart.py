"""Cart domain entities.

A cart is owned by exactly one session and is persisted as a plain
dictionary snapshot inside that session record.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from pos_cart.utils import content_hash, md5_hex

from .catalog import CustomerLocation
from .tax import TaxLine

ZERO = Decimal("0")


class CartState(str, Enum):
    """Totals are trustworthy only in CLEAN."""

    CLEAN = "clean"
    DIRTY = "dirty"


def generate_item_key(product_id: int, variation_id: int = 0, variation: dict[str, str] | None = None) -> str:
    """Deterministic line key from the product selection (never quantity or price)."""
    parts = [str(product_id), str(variation_id or 0)]
    for name in sorted(variation or {}):
        parts.append(f"{name}={variation[name]}")
    return md5_hex("|".join(parts))


@dataclass
class CartItem:
    """One cart line. Price and tax fields are derived, not authoritative."""

    key: str
    product_id: int
    quantity: int
    variation_id: int = 0
    variation: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    tax_class: str = ""
    unit_price: Decimal = ZERO
    line_subtotal: Decimal = ZERO
    line_subtotal_tax: Decimal = ZERO
    line_total: Decimal = ZERO
    line_tax: Decimal = ZERO
    reservation_id: str | None = None
    added_at: float = 0.0
    updated_at: float = 0.0

    @property
    def stock_product_id(self) -> int:
        return self.variation_id or self.product_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "variation": dict(self.variation),
            "quantity": self.quantity,
            "data": dict(self.data),
            "name": self.name,
            "tax_class": self.tax_class,
            "unit_price": str(self.unit_price),
            "line_subtotal": str(self.line_subtotal),
            "line_subtotal_tax": str(self.line_subtotal_tax),
            "line_total": str(self.line_total),
            "line_tax": str(self.line_tax),
            "reservation_id": self.reservation_id,
            "added_at": self.added_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            key=data["key"],
            product_id=int(data["product_id"]),
            variation_id=int(data.get("variation_id") or 0),
            variation=dict(data.get("variation") or {}),
            quantity=int(data["quantity"]),
            data=dict(data.get("data") or {}),
            name=data.get("name", ""),
            tax_class=data.get("tax_class", ""),
            unit_price=Decimal(str(data.get("unit_price", "0"))),
            line_subtotal=Decimal(str(data.get("line_subtotal", "0"))),
            line_subtotal_tax=Decimal(str(data.get("line_subtotal_tax", "0"))),
            line_total=Decimal(str(data.get("line_total", "0"))),
            line_tax=Decimal(str(data.get("line_tax", "0"))),
            reservation_id=data.get("reservation_id"),
            added_at=float(data.get("added_at", 0)),
            updated_at=float(data.get("updated_at", 0)),
        )


@dataclass
class CartTotals:
    """Computed cart totals.

    ``total`` is the tax-exclusive sum of lines; the amount due is
    ``cart_total = max(0, total + total_tax - discount_total)``.
    """

    subtotal: Decimal = ZERO
    subtotal_tax: Decimal = ZERO
    total: Decimal = ZERO
    total_tax: Decimal = ZERO
    discount_total: Decimal = ZERO
    discount_tax: Decimal = ZERO
    cart_total: Decimal = ZERO
    tax_lines: list[TaxLine] = field(default_factory=list)
    items_count: int = 0
    tax_error: bool = False
    display_text: str = ""
    formatted: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "subtotal_tax": str(self.subtotal_tax),
            "total": str(self.total),
            "total_tax": str(self.total_tax),
            "discount_total": str(self.discount_total),
            "discount_tax": str(self.discount_tax),
            "cart_total": str(self.cart_total),
            "tax_lines": [line.to_dict() for line in self.tax_lines],
            "items_count": self.items_count,
            "tax_error": self.tax_error,
            "display_text": self.display_text,
            "formatted": dict(self.formatted),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CartTotals":
        if not data:
            return cls()
        return cls(
            subtotal=Decimal(str(data.get("subtotal", "0"))),
            subtotal_tax=Decimal(str(data.get("subtotal_tax", "0"))),
            total=Decimal(str(data.get("total", "0"))),
            total_tax=Decimal(str(data.get("total_tax", "0"))),
            discount_total=Decimal(str(data.get("discount_total", "0"))),
            discount_tax=Decimal(str(data.get("discount_tax", "0"))),
            cart_total=Decimal(str(data.get("cart_total", "0"))),
            tax_lines=[TaxLine.from_dict(line) for line in data.get("tax_lines", [])],
            items_count=int(data.get("items_count", 0)),
            tax_error=bool(data.get("tax_error", False)),
            display_text=data.get("display_text", ""),
            formatted=dict(data.get("formatted") or {}),
        )


@dataclass
class Cart:
    """Cart contents plus the Clean/Dirty totals state machine."""

    items: dict[str, CartItem] = field(default_factory=dict)
    applied_coupons: list[str] = field(default_factory=list)
    location: CustomerLocation | None = None
    customer_id: int | None = None
    totals: CartTotals = field(default_factory=CartTotals)
    state: CartState = CartState.CLEAN
    order_key: str = ""
    updated_at: float = 0.0

    @property
    def is_dirty(self) -> bool:
        return self.state is CartState.DIRTY

    @property
    def is_empty(self) -> bool:
        return not self.items

    def mark_dirty(self) -> None:
        self.state = CartState.DIRTY

    def mark_clean(self, totals: CartTotals) -> None:
        self.totals = totals
        self.state = CartState.CLEAN

    def item_count(self) -> int:
        """Sum of quantities across lines."""
        return sum(item.quantity for item in self.items.values())

    def content_hash(self) -> str:
        """Fingerprint of items and coupons for client-side change detection."""
        lines = sorted(
            (item.key, item.product_id, item.variation_id, item.quantity, item.data)
            for item in self.items.values()
        )
        return content_hash([list(line) for line in lines], sorted(self.applied_coupons))

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": {key: item.to_dict() for key, item in self.items.items()},
            "applied_coupons": list(self.applied_coupons),
            "location": self.location.to_dict() if self.location else None,
            "customer_id": self.customer_id,
            "totals": self.totals.to_dict(),
            "state": self.state.value,
            "order_key": self.order_key,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Cart":
        if not data:
            return cls()
        location = data.get("location")
        return cls(
            items={key: CartItem.from_dict(item) for key, item in (data.get("items") or {}).items()},
            applied_coupons=list(data.get("applied_coupons") or []),
            location=CustomerLocation.from_dict(location) if location else None,
            customer_id=data.get("customer_id"),
            totals=CartTotals.from_dict(data.get("totals")),
            state=CartState(data.get("state", CartState.CLEAN.value)),
            order_key=data.get("order_key", ""),
            updated_at=float(data.get("updated_at", 0)),
        )
