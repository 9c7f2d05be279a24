"""
Tax classification of a sale by the customer's jurisdiction.

A sale inside the seller's home state attracts the local pair of taxes
(two equal components, e.g. CGST and SGST). A sale to any other state
attracts the single interstate tax (e.g. IGST).

Rate magnitudes are configuration, see `Settings.tax_policy`.
"""

from dataclasses import dataclass

from .errors import PreconditionFailed, ValidationError
from .models import Customer, TaxRates


def _normalize_jurisdiction(value: str | None) -> str:
    return (value or "").strip().casefold()


@dataclass(frozen=True)
class TaxPolicy:
    """
    Maps a customer to the tax rates applied on its invoices.

    Attributes:
        home_jurisdiction: The seller's own state
        local_rate_pair: Percentages applied to intra-state sales
        interstate_rate: Percentage applied to inter-state sales
    """
    home_jurisdiction: str = "Karnataka"
    local_rate_pair: tuple[float, float] = (9.0, 9.0)
    interstate_rate: float = 18.0

    def __post_init__(self) -> None:
        """Validate configured rates."""
        if not self.home_jurisdiction.strip():
            raise ValidationError.for_field("home_jurisdiction", "must not be empty")
        if len(self.local_rate_pair) != 2:
            raise ValidationError.for_field("local_rate_pair", "must hold exactly two rates")
        for rate in (*self.local_rate_pair, self.interstate_rate):
            if rate < 0:
                raise ValidationError.for_field("tax_rate", f"must not be negative, got {rate}")

    def is_local(self, customer: Customer) -> bool:
        """True if the customer sits in the seller's home jurisdiction."""
        return _normalize_jurisdiction(customer.jurisdiction) == _normalize_jurisdiction(
            self.home_jurisdiction
        )

    def classify(self, customer: Customer | None) -> TaxRates:
        """
        Resolve the tax rates for a sale to `customer`.

        Raises:
            PreconditionFailed: If the customer could not be resolved.
                There is no fallback branch for a missing customer.
        """
        if customer is None:
            raise PreconditionFailed(
                "Cannot compute taxes: invoice customer could not be resolved"
            )

        if self.is_local(customer):
            local_a, local_b = self.local_rate_pair
            return TaxRates(local_a=local_a, local_b=local_b, interstate=0.0)

        return TaxRates(local_a=0.0, local_b=0.0, interstate=self.interstate_rate)
