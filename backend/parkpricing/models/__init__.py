"""ORM models package export."""

from parkpricing.models.discount import DiscountRuleRecord
from parkpricing.models.hierarchy import (
    Location,
    ParkingSpot,
    Section,
    SpotStatus,
    Zone,
)
from parkpricing.models.invalidation import PricingInvalidation

__all__ = [
    "DiscountRuleRecord",
    "Location",
    "ParkingSpot",
    "PricingInvalidation",
    "Section",
    "SpotStatus",
    "Zone",
]
