"""Discount rule schema definitions."""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from parkpricing.services.discount_catalog import ConditionOperator, DiscountType


class DiscountConditionSchema(BaseModel):
    """Eligibility test against the transaction's discount context."""

    field: str = Field(..., min_length=1, examples=["age"])
    operator: ConditionOperator
    value: Any


class DiscountRuleCreate(BaseModel):
    """Payload for creating a discount rule; ``operator_id`` null means platform-wide."""

    name: str = Field(..., min_length=1, max_length=255)
    type: DiscountType
    percentage: Decimal = Field(..., ge=0, le=100)
    is_vat_exempt: bool = False
    conditions: list[DiscountConditionSchema] = Field(default_factory=list)
    operator_id: uuid.UUID | None = None
    is_active: bool = True


class DiscountRuleUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: DiscountType | None = None
    percentage: Decimal | None = Field(default=None, ge=0, le=100)
    is_vat_exempt: bool | None = None
    conditions: list[DiscountConditionSchema] | None = None
    is_active: bool | None = None


class DiscountRuleRead(BaseModel):
    id: uuid.UUID
    name: str
    type: DiscountType
    percentage: Decimal
    is_vat_exempt: bool
    conditions: list[DiscountConditionSchema]
    operator_id: uuid.UUID | None
    is_active: bool
    created_by: uuid.UUID
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)
