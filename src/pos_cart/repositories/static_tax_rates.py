"""Table-driven tax-rate lookup."""

from collections.abc import Iterable
from dataclasses import dataclass

from pos_cart.entities import CustomerLocation, TaxRate


@dataclass(frozen=True)
class TaxRateRule:
    """One row of a rate table.

    Empty location fields match anything. ``postcode`` may end with ``*``
    to match a prefix.
    """

    rate: TaxRate
    country: str = ""
    state: str = ""
    postcode: str = ""
    city: str = ""
    tax_class: str = ""

    def matches(self, location: CustomerLocation, tax_class: str) -> bool:
        if self.tax_class != tax_class:
            return False
        if self.country and self.country.upper() != location.country.upper():
            return False
        if self.state and self.state.upper() != location.state.upper():
            return False
        if self.city and self.city.upper() != location.city.upper():
            return False
        if self.postcode:
            wanted = self.postcode.upper()
            postcode = location.postcode.upper().replace(" ", "")
            if wanted.endswith("*"):
                return postcode.startswith(wanted[:-1])
            return postcode == wanted
        return True

    @property
    def specificity(self) -> int:
        return sum(1 for part in (self.country, self.state, self.postcode, self.city) if part)


class StaticTaxRateProvider:
    """TaxRateProvider backed by an in-memory rule table.

    Like a jurisdiction database, at most one rate is returned per
    priority level: the most specific matching rule wins.
    """

    def __init__(self, rules: Iterable[TaxRateRule] = ()) -> None:
        self._rules = list(rules)

    def add_rule(self, rule: TaxRateRule) -> None:
        self._rules.append(rule)

    def find_rates(self, location: CustomerLocation, tax_class: str) -> list[TaxRate]:
        by_priority: dict[int, TaxRateRule] = {}
        for rule in self._rules:
            if not rule.matches(location, tax_class):
                continue
            current = by_priority.get(rule.rate.priority)
            if current is None or rule.specificity > current.specificity:
                by_priority[rule.rate.priority] = rule
        return [by_priority[priority].rate for priority in sorted(by_priority)]
