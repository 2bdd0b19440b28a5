"""Per-tier point pricing"""

from dataclasses import dataclass

from fakedetector_accounts.domain.exceptions import InvalidTierError
from fakedetector_accounts.domain.models import PlanTier

MINOR_UNITS_PER_NAIRA = 100


@dataclass(frozen=True)
class PlanPricing:
    """Price of one detection point per paid tier, in naira"""

    basic: int = 75
    standard: int = 100
    business: int = 130

    @classmethod
    def from_settings(cls, settings) -> "PlanPricing":
        return cls(
            basic=settings.basic_point_price,
            standard=settings.standard_point_price,
            business=settings.business_point_price,
        )

    def price_for(self, tier: PlanTier) -> int:
        if tier is PlanTier.BASIC:
            return self.basic
        if tier is PlanTier.STANDARD:
            return self.standard
        if tier is PlanTier.BUSINESS:
            return self.business
        raise InvalidTierError("Free points cannot be purchased")

    def amount_for_points(self, points: int, tier: PlanTier) -> int:
        """Checkout amount in kobo for a purchase of `points` at `tier`"""
        return points * self.price_for(tier) * MINOR_UNITS_PER_NAIRA

    def points_for_amount(self, amount_minor: int, tier: PlanTier) -> int:
        """
        Whole points covered by a paid amount.

        Used when the gateway does not echo a point count back, e.g. bank
        transfers where the customer types the amount themselves.
        7500 NGN at the basic price of 75 buys 100 points.
        """
        if amount_minor <= 0:
            return 0
        return amount_minor // (self.price_for(tier) * MINOR_UNITS_PER_NAIRA)
