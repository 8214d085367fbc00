"""Catalog-side entities consumed by the cart core."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

STOCK_STATUS_IN_STOCK = "instock"
STOCK_STATUS_OUT_OF_STOCK = "outofstock"
STOCK_STATUS_ON_BACKORDER = "onbackorder"


@dataclass
class Product:
    """A sellable product or variation as reported by the catalog.

    Attributes:
        id: Product or variation id
        name: Display name
        price: Current price (tax inclusive or exclusive per store mode)
        stock_quantity: Authoritative stock, None when stock is unmanaged
        stock_status: instock, outofstock or onbackorder
        manage_stock: Whether quantities are tracked
        backorders: no, notify or yes
        tax_class: Tax class, "" for the standard class
        tax_status: taxable, shipping or none
        parent_id: Parent product id for variations
    """

    id: int
    name: str
    price: Decimal
    stock_quantity: int | None = None
    stock_status: str = STOCK_STATUS_IN_STOCK
    manage_stock: bool = False
    backorders: str = "no"
    low_stock_amount: int | None = None
    tax_class: str = ""
    tax_status: str = "taxable"
    sku: str = ""
    parent_id: int | None = None
    variation_ids: list[int] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)
    category_ids: list[int] = field(default_factory=list)
    status: str = "publish"
    purchasable: bool = True

    @property
    def is_variation(self) -> bool:
        return self.parent_id is not None

    @property
    def is_taxable(self) -> bool:
        return self.tax_status == "taxable"

    @property
    def backorders_allowed(self) -> bool:
        return self.backorders in ("yes", "notify")

    @property
    def is_in_stock(self) -> bool:
        return self.stock_status != STOCK_STATUS_OUT_OF_STOCK

    @property
    def is_purchasable(self) -> bool:
        return self.purchasable and self.status == "publish"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "stock_quantity": self.stock_quantity,
            "stock_status": self.stock_status,
            "manage_stock": self.manage_stock,
            "backorders": self.backorders,
            "low_stock_amount": self.low_stock_amount,
            "tax_class": self.tax_class,
            "tax_status": self.tax_status,
            "sku": self.sku,
            "parent_id": self.parent_id,
            "variation_ids": list(self.variation_ids),
            "attributes": dict(self.attributes),
            "category_ids": list(self.category_ids),
            "status": self.status,
            "purchasable": self.purchasable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            price=Decimal(str(data.get("price") or "0")),
            stock_quantity=data.get("stock_quantity"),
            stock_status=data.get("stock_status", STOCK_STATUS_IN_STOCK),
            manage_stock=bool(data.get("manage_stock", False)),
            backorders=data.get("backorders", "no"),
            low_stock_amount=data.get("low_stock_amount"),
            tax_class=data.get("tax_class", ""),
            tax_status=data.get("tax_status", "taxable"),
            sku=data.get("sku", ""),
            parent_id=data.get("parent_id"),
            variation_ids=list(data.get("variation_ids", [])),
            attributes=dict(data.get("attributes", {})),
            category_ids=list(data.get("category_ids", [])),
            status=data.get("status", "publish"),
            purchasable=bool(data.get("purchasable", True)),
        )


@dataclass
class Coupon:
    """A discount code.

    ``percent`` takes a percentage of the eligible subtotal, ``fixed_cart``
    a flat amount off the cart and ``fixed_product`` a flat amount per
    eligible unit.
    """

    code: str
    discount_type: str = "fixed_cart"
    amount: Decimal = Decimal("0")
    minimum_amount: Decimal | None = None
    expires_at: float | None = None
    product_ids: list[int] = field(default_factory=list)
    enabled: bool = True

    def applies_to(self, product_id: int) -> bool:
        return not self.product_ids or product_id in self.product_ids

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "discount_type": self.discount_type,
            "amount": str(self.amount),
            "minimum_amount": None if self.minimum_amount is None else str(self.minimum_amount),
            "expires_at": self.expires_at,
            "product_ids": list(self.product_ids),
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coupon":
        minimum = data.get("minimum_amount")
        return cls(
            code=str(data["code"]).lower(),
            discount_type=data.get("discount_type", "fixed_cart"),
            amount=Decimal(str(data.get("amount", "0"))),
            minimum_amount=None if minimum in (None, "") else Decimal(str(minimum)),
            expires_at=data.get("expires_at"),
            product_ids=list(data.get("product_ids", [])),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass(frozen=True)
class CustomerLocation:
    """Address fields used for tax jurisdiction matching."""

    country: str = ""
    state: str = ""
    postcode: str = ""
    city: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.country or self.state or self.postcode or self.city)

    def to_dict(self) -> dict[str, str]:
        return {
            "country": self.country,
            "state": self.state,
            "postcode": self.postcode,
            "city": self.city,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CustomerLocation":
        data = data or {}
        return cls(
            country=str(data.get("country") or ""),
            state=str(data.get("state") or ""),
            postcode=str(data.get("postcode") or ""),
            city=str(data.get("city") or ""),
        )
