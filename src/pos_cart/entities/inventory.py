"""Inventory domain entities: reservations, stock views and reports."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ReservationStatus(str, Enum):
    """Lifecycle of a stock hold: NONE -> ACTIVE -> RELEASED | EXPIRED | CONSUMED."""

    ACTIVE = "active"
    RELEASED = "released"
    EXPIRED = "expired"
    CONSUMED = "consumed"


@dataclass
class StockReservation:
    """A time-limited hold on product quantity.

    A reservation past ``expires_at`` counts as expired even while its
    record is still stored.
    """

    id: str
    product_id: int
    quantity: int
    order_key: str
    owner: str
    created_at: float
    expires_at: float
    status: ReservationStatus = ReservationStatus.ACTIVE
    updated_at: float | None = None

    def is_active(self, now: float) -> bool:
        return self.status is ReservationStatus.ACTIVE and now < self.expires_at

    def effective_status(self, now: float) -> ReservationStatus:
        if self.status is ReservationStatus.ACTIVE and now >= self.expires_at:
            return ReservationStatus.EXPIRED
        return self.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "order_key": self.order_key,
            "owner": self.owner,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "status": self.status.value,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StockReservation":
        return cls(
            id=data["id"],
            product_id=int(data["product_id"]),
            quantity=int(data["quantity"]),
            order_key=data.get("order_key", ""),
            owner=data.get("owner", ""),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
            status=ReservationStatus(data.get("status", ReservationStatus.ACTIVE.value)),
            updated_at=data.get("updated_at"),
        )


@dataclass
class StockView:
    """Real-time stock for one product.

    ``available_stock`` is None when stock is unmanaged, meaning unlimited.
    """

    product_id: int
    current_stock: int | None
    stock_status: str
    manage_stock: bool
    backorders: str
    low_stock_amount: int | None
    low_stock_threshold: int
    reserved_stock: int
    available_stock: int | None
    is_low_stock: bool
    last_updated: float
    reservations: list[dict[str, Any]] = field(default_factory=list)
    variations: list[dict[str, Any]] = field(default_factory=list)
    from_cache: bool = False

    @property
    def unlimited(self) -> bool:
        return self.available_stock is None

    def can_fulfil(self, quantity: int) -> bool:
        if self.available_stock is None:
            return True
        return self.available_stock >= quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "current_stock": self.current_stock,
            "stock_status": self.stock_status,
            "manage_stock": self.manage_stock,
            "backorders": self.backorders,
            "low_stock_amount": self.low_stock_amount,
            "low_stock_threshold": self.low_stock_threshold,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "is_low_stock": self.is_low_stock,
            "last_updated": self.last_updated,
            "reservations": list(self.reservations),
            "variations": list(self.variations),
            "from_cache": self.from_cache,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StockView":
        return cls(
            product_id=int(data["product_id"]),
            current_stock=data.get("current_stock"),
            stock_status=data.get("stock_status", "instock"),
            manage_stock=bool(data.get("manage_stock", False)),
            backorders=data.get("backorders", "no"),
            low_stock_amount=data.get("low_stock_amount"),
            low_stock_threshold=int(data.get("low_stock_threshold", 0)),
            reserved_stock=int(data.get("reserved_stock", 0)),
            available_stock=data.get("available_stock"),
            is_low_stock=bool(data.get("is_low_stock", False)),
            last_updated=float(data.get("last_updated", 0)),
            reservations=list(data.get("reservations", [])),
            variations=list(data.get("variations", [])),
            from_cache=bool(data.get("from_cache", False)),
        )


@dataclass
class ProductAvailability:
    """Per-product line of a batch availability check."""

    product_id: int
    requested: int
    available: bool
    available_stock: int | None = 0
    current_stock: int | None = None
    reserved_stock: int = 0
    stock_status: str = ""
    backorders: str = "no"
    error: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
            "available_stock": "unlimited" if self.available_stock is None else self.available_stock,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "stock_status": self.stock_status,
            "backorders": self.backorders,
            "error": self.error,
            "message": self.message,
        }


@dataclass
class BatchAvailability:
    overall_available: bool
    products: dict[int, ProductAvailability]
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_available": self.overall_available,
            "products": {str(pid): line.to_dict() for pid, line in self.products.items()},
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class StockUpdateResult:
    product_id: int
    previous_stock: int
    new_stock: int
    operation: str
    quantity_changed: int
    timestamp: float
    terminal_id: str = ""
    user_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "operation": self.operation,
            "quantity_changed": self.quantity_changed,
            "timestamp": self.timestamp,
            "terminal_id": self.terminal_id,
            "user_id": self.user_id,
        }


@dataclass(frozen=True)
class ReservationUpdate:
    """Outcome of resizing a reservation; ``reservation`` is None when it was deleted."""

    reservation_id: str
    action: str
    quantity: int
    reservation: StockReservation | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "action": self.action,
            "quantity": self.quantity,
            "reservation": self.reservation.to_dict() if self.reservation else None,
        }


@dataclass(frozen=True)
class ReleaseResult:
    released_count: int
    released_products: tuple[int, ...] = ()
    reservation_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "released_count": self.released_count,
            "released_products": list(self.released_products),
            "reservation_ids": list(self.reservation_ids),
        }


@dataclass
class StockStatusReport:
    timestamp: float
    products: dict[int, dict[str, Any]] = field(default_factory=dict)
    total_products: int = 0
    in_stock: int = 0
    out_of_stock: int = 0
    low_stock: int = 0
    total_reservations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "products": {str(pid): view for pid, view in self.products.items()},
            "summary": {
                "total_products": self.total_products,
                "in_stock": self.in_stock,
                "out_of_stock": self.out_of_stock,
                "low_stock": self.low_stock,
                "total_reservations": self.total_reservations,
            },
        }


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    variation_id: int = 0

    @property
    def stock_product_id(self) -> int:
        return self.variation_id or self.product_id


@dataclass(frozen=True)
class Order:
    """The slice of an order the inventory lifecycle handlers need."""

    order_id: int
    order_key: str
    status: str = "pending"
    is_pos_order: bool = True
    items: tuple[OrderLine, ...] = ()
