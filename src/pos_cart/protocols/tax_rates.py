"""Tax-rate lookup protocol."""

from typing import Protocol, runtime_checkable

from pos_cart.entities import CustomerLocation, TaxRate


@runtime_checkable
class TaxRateProvider(Protocol):
    """Protocol for jurisdiction-based tax-rate resolution."""

    def find_rates(self, location: CustomerLocation, tax_class: str) -> list[TaxRate]:
        """Resolve the rates that apply to ``tax_class`` at ``location``.

        Args:
            location: Country, state, postcode and city to match
            tax_class: Product tax class ("" is the standard class)

        Returns:
            Matching rates in the jurisdiction's priority order, may be empty

        Raises:
            Exception: Any lookup failure; the tax engine degrades to zero tax
        """
        ...
