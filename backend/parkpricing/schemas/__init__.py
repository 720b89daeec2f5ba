"""Schema exports."""

from parkpricing.schemas.discount import (
    DiscountConditionSchema,
    DiscountRuleCreate,
    DiscountRuleRead,
    DiscountRuleUpdate,
)
from parkpricing.schemas.pricing import (
    AppliedDiscountRead,
    CalculateTransactionRequest,
    ChargeLineRead,
    CopyToChildrenRequest,
    CopyToChildrenResult,
    DispatchResult,
    PricingConfigSchema,
    PricingInheritanceRead,
    PricingInvalidationRead,
    PricingTreeNodeRead,
    PricingTreeRead,
    TransactionCalculationRead,
)

__all__ = [
    "AppliedDiscountRead",
    "CalculateTransactionRequest",
    "ChargeLineRead",
    "CopyToChildrenRequest",
    "CopyToChildrenResult",
    "DiscountConditionSchema",
    "DiscountRuleCreate",
    "DiscountRuleRead",
    "DiscountRuleUpdate",
    "DispatchResult",
    "PricingConfigSchema",
    "PricingInheritanceRead",
    "PricingInvalidationRead",
    "PricingTreeNodeRead",
    "PricingTreeRead",
    "TransactionCalculationRead",
]
