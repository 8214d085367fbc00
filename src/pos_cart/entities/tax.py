"""Tax domain entities."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .catalog import CustomerLocation


@dataclass(frozen=True)
class TaxRate:
    """A single jurisdiction rate.

    Attributes:
        id: Rate id, stable across lookups
        rate: Percentage, e.g. Decimal("10") for 10 %
        label: Display label
        compound: Applied on top of the non-compound taxes
        priority: Lookup priority reported by the rate source
    """

    id: str
    rate: Decimal
    label: str = "Tax"
    compound: bool = False
    priority: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rate": str(self.rate),
            "label": self.label,
            "compound": self.compound,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxRate":
        return cls(
            id=str(data["id"]),
            rate=Decimal(str(data["rate"])),
            label=data.get("label", "Tax"),
            compound=bool(data.get("compound", False)),
            priority=int(data.get("priority", 1)),
        )


@dataclass(frozen=True)
class TaxableItem:
    """Input line for a tax calculation."""

    key: str
    product_id: int
    quantity: int
    unit_price: Decimal
    tax_class: str = ""
    taxable: bool = True
    variation_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "tax_class": self.tax_class,
            "taxable": self.taxable,
        }


@dataclass
class TaxLine:
    """Aggregated tax for one rate across the cart."""

    rate_id: str
    label: str
    compound: bool
    rate_percent: Decimal
    tax_total: Decimal
    formatted_tax_total: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "rate_id": self.rate_id,
            "label": self.label,
            "compound": self.compound,
            "rate_percent": str(self.rate_percent),
            "tax_total": str(self.tax_total),
            "formatted_tax_total": self.formatted_tax_total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxLine":
        return cls(
            rate_id=str(data["rate_id"]),
            label=data.get("label", ""),
            compound=bool(data.get("compound", False)),
            rate_percent=Decimal(str(data.get("rate_percent", "0"))),
            tax_total=Decimal(str(data.get("tax_total", "0"))),
            formatted_tax_total=data.get("formatted_tax_total", ""),
        )


@dataclass
class ItemTax:
    """Per-line tax allocation."""

    key: str
    product_id: int
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    line_subtotal_tax: Decimal
    line_total: Decimal
    line_tax: Decimal
    taxes: dict[str, Decimal] = field(default_factory=dict)
    tax_class: str = ""
    taxable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_subtotal": str(self.line_subtotal),
            "line_subtotal_tax": str(self.line_subtotal_tax),
            "line_total": str(self.line_total),
            "line_tax": str(self.line_tax),
            "taxes": {rate_id: str(amount) for rate_id, amount in self.taxes.items()},
            "tax_class": self.tax_class,
            "taxable": self.taxable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemTax":
        return cls(
            key=data["key"],
            product_id=int(data["product_id"]),
            quantity=int(data["quantity"]),
            unit_price=Decimal(data["unit_price"]),
            line_subtotal=Decimal(data["line_subtotal"]),
            line_subtotal_tax=Decimal(data["line_subtotal_tax"]),
            line_total=Decimal(data["line_total"]),
            line_tax=Decimal(data["line_tax"]),
            taxes={rate_id: Decimal(amount) for rate_id, amount in data.get("taxes", {}).items()},
            tax_class=data.get("tax_class", ""),
            taxable=bool(data.get("taxable", True)),
        )


@dataclass
class TaxResult:
    """Cart-level tax computation.

    ``total`` is the sum of tax-exclusive line totals and ``cart_total`` is
    ``total + total_tax``. When ``error`` is set the amounts are a
    zero-tax fallback.
    """

    subtotal: Decimal = Decimal("0")
    subtotal_tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    cart_total: Decimal = Decimal("0")
    tax_lines: list[TaxLine] = field(default_factory=list)
    items: dict[str, ItemTax] = field(default_factory=dict)
    location: CustomerLocation = field(default_factory=CustomerLocation)
    prices_include_tax: bool = False
    display_tax_totals: bool = False
    display_text: str = ""
    error: bool = False
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "subtotal_tax": str(self.subtotal_tax),
            "total": str(self.total),
            "total_tax": str(self.total_tax),
            "cart_total": str(self.cart_total),
            "tax_lines": [line.to_dict() for line in self.tax_lines],
            "items": {key: item.to_dict() for key, item in self.items.items()},
            "location": self.location.to_dict(),
            "prices_include_tax": self.prices_include_tax,
            "display_tax_totals": self.display_tax_totals,
            "display_text": self.display_text,
            "error": self.error,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxResult":
        return cls(
            subtotal=Decimal(data["subtotal"]),
            subtotal_tax=Decimal(data["subtotal_tax"]),
            total=Decimal(data["total"]),
            total_tax=Decimal(data["total_tax"]),
            cart_total=Decimal(data["cart_total"]),
            tax_lines=[TaxLine.from_dict(line) for line in data.get("tax_lines", [])],
            items={key: ItemTax.from_dict(item) for key, item in data.get("items", {}).items()},
            location=CustomerLocation.from_dict(data.get("location")),
            prices_include_tax=bool(data.get("prices_include_tax", False)),
            display_tax_totals=bool(data.get("display_tax_totals", False)),
            display_text=data.get("display_text", ""),
            error=bool(data.get("error", False)),
            error_message=data.get("error_message", ""),
        )


@dataclass(frozen=True)
class ProductTax:
    """Single-product tax lookup for display contexts."""

    taxable: bool
    tax_rate: Decimal
    tax_amount: Decimal
    price_including_tax: Decimal
    price_excluding_tax: Decimal
    rates: tuple[TaxRate, ...] = ()
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "taxable": self.taxable,
            "tax_rate": str(self.tax_rate),
            "tax_amount": str(self.tax_amount),
            "price_including_tax": str(self.price_including_tax),
            "price_excluding_tax": str(self.price_excluding_tax),
            "rates": [rate.to_dict() for rate in self.rates],
            "error": self.error,
        }
