"""Service layer exports."""
from parkpricing.services import (
    discount_service,
    invalidation_service,
    pricing_service,
)

__all__ = [
    "discount_service",
    "invalidation_service",
    "pricing_service",
]
