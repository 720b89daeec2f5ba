"""Pricing schema definitions."""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parkpricing.services.hierarchy import HierarchyLevel, PricingSource
from parkpricing.services.pricing_config import PricingConfig


class VehicleTypeRateSchema(BaseModel):
    vehicle_type: str
    rate: Decimal


class TimeBasedRateSchema(BaseModel):
    """Weekday window multiplier; ``day_of_week`` 0 is Sunday."""

    day_of_week: int
    start_time: str = Field(..., examples=["17:00"])
    end_time: str = Field(..., examples=["20:00"])
    multiplier: Decimal
    name: str = ""


class HolidayRateSchema(BaseModel):
    name: str = ""
    date: datetime.date
    multiplier: Decimal
    is_recurring: bool = False


class PricingConfigSchema(BaseModel):
    """Persisted and exchanged shape of a node's pricing policy."""

    base_rate: Decimal
    vehicle_type_rates: list[VehicleTypeRateSchema] = Field(default_factory=list)
    time_based_rates: list[TimeBasedRateSchema] = Field(default_factory=list)
    holiday_rates: list[HolidayRateSchema] = Field(default_factory=list)
    occupancy_multiplier: Decimal = Decimal("1")
    vat_rate: Decimal = Decimal("12")

    def to_config(self) -> PricingConfig:
        """Build the validated domain config (raises ``ValidationError``)."""
        return PricingConfig.from_dict(self.model_dump(mode="json"))


class PricingInheritanceRead(BaseModel):
    """How a node's effective pricing was resolved."""

    level: HierarchyLevel
    id: uuid.UUID
    name: str
    own_pricing: PricingConfigSchema | None = None
    inherited_pricing: PricingConfigSchema | None = None
    effective_pricing: PricingConfigSchema
    source: PricingSource
    source_node_id: uuid.UUID | None = None


class PricingTreeNodeRead(PricingInheritanceRead):
    parent_id: uuid.UUID | None = None


class PricingTreeRead(BaseModel):
    location_id: uuid.UUID
    nodes: list[PricingTreeNodeRead]


class CopyToChildrenRequest(BaseModel):
    override_existing: bool = False


class CopyToChildrenResult(BaseModel):
    updated_children: list[uuid.UUID]


class CalculateTransactionRequest(BaseModel):
    """Input payload for pricing a parking session."""

    node_id: uuid.UUID
    vehicle_type: str = "car"
    start_at: datetime.datetime
    end_at: datetime.datetime
    occupancy_rate: Decimal | None = Field(default=None, ge=0, le=100)
    discount_context: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_window(self) -> "CalculateTransactionRequest":
        if (self.start_at.tzinfo is None) != (self.end_at.tzinfo is None):
            raise ValueError("start_at and end_at must both carry a UTC offset or neither")
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class AppliedDiscountRead(BaseModel):
    rule_id: uuid.UUID
    name: str
    type: str
    percentage: Decimal
    is_vat_exempt: bool
    amount_deducted: Decimal


class ChargeLineRead(BaseModel):
    """One billed unit of the booking window."""

    start: datetime.datetime
    hours: Decimal
    rate: Decimal
    time_multiplier: Decimal
    holiday_multiplier: Decimal
    occupancy_multiplier: Decimal
    amount: Decimal
    time_rate_name: str | None = None
    holiday_name: str | None = None


class TransactionCalculationRead(BaseModel):
    """Priced booking response."""

    node_id: uuid.UUID
    vehicle_type: str
    currency: str
    pricing_source: PricingSource
    occupancy_rate: Decimal | None = None
    subtotal: Decimal
    applied_discounts: list[AppliedDiscountRead]
    discount_total: Decimal
    vat_base: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    vat_exempt: bool
    total: Decimal
    lines: list[ChargeLineRead]


class PricingInvalidationRead(BaseModel):
    id: uuid.UUID
    level: HierarchyLevel
    node_id: uuid.UUID
    created_at: datetime.datetime
    dispatched_at: datetime.datetime | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DispatchResult(BaseModel):
    dispatched: int
    pending: int
