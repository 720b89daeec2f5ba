"""Error taxonomy shared by the pricing engine and its services."""

from __future__ import annotations


class PricingError(Exception):
    """Base class for pricing engine failures."""


class ValidationError(PricingError, ValueError):
    """Malformed pricing configuration, discount rule or booking window."""


class NotFoundError(PricingError, LookupError):
    """Unknown hierarchy node or discount rule."""


class ConflictError(PricingError):
    """Conflict reported by the persistence layer."""


class ComputationError(PricingError, RuntimeError):
    """Internal invariant violated while computing a price."""


class HierarchyFetchError(PricingError):
    """The hierarchy could not be read within the allotted time."""


__all__ = [
    "ComputationError",
    "ConflictError",
    "HierarchyFetchError",
    "NotFoundError",
    "PricingError",
    "ValidationError",
]
