"""Pricing engine operations over the persisted parking hierarchy."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.core.config import get_settings
from parkpricing.core.errors import ComputationError
from parkpricing.models import Location
from parkpricing.services import discount_service
from parkpricing.services.hierarchy import (
    HierarchyLevel,
    PricingInheritanceResult,
    PricingResolver,
    PricingSource,
)
from parkpricing.services.hierarchy_repository import SqlHierarchyStore
from parkpricing.services.pricing_config import PricingConfig, VehicleType
from parkpricing.services.pricing_propagator import PricingPropagator
from parkpricing.services.transaction_calculator import (
    TimeRange,
    TransactionCalculation,
    TransactionCalculator,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PricedTransaction:
    """A transaction calculation together with where its pricing came from."""

    node_id: uuid.UUID
    vehicle_type: VehicleType
    currency: str
    pricing_source: PricingSource
    occupancy_rate: Decimal | None
    calculation: TransactionCalculation

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": str(self.node_id),
            "vehicle_type": self.vehicle_type.value,
            "currency": self.currency,
            "pricing_source": self.pricing_source.value,
            "occupancy_rate": (
                str(self.occupancy_rate) if self.occupancy_rate is not None else None
            ),
            **self.calculation.to_dict(),
        }


def default_pricing() -> PricingConfig:
    """System fallback used when no node in a lineage carries pricing."""
    settings = get_settings()
    return PricingConfig(
        base_rate=settings.default_base_rate,
        occupancy_multiplier=Decimal("1.0"),
        vat_rate=settings.default_vat_rate,
    )


def _resolve_timezone(location: Location) -> ZoneInfo:
    """Zone the location's time and holiday rates are written in."""
    name = location.timezone or get_settings().default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ComputationError(
            f"Location {location.id} has unknown timezone {name!r}"
        ) from exc


def _store(session: AsyncSession) -> SqlHierarchyStore:
    settings = get_settings()
    return SqlHierarchyStore(session, timeout=settings.hierarchy_fetch_timeout_seconds)


async def get_effective_pricing(
    session: AsyncSession, node_id: uuid.UUID
) -> PricingInheritanceResult:
    lineage = await _store(session).load_lineage(node_id)
    return PricingResolver(lineage, default=default_pricing()).resolve_effective(node_id)


async def get_pricing_tree(
    session: AsyncSession, location_id: uuid.UUID
) -> list[dict[str, Any]]:
    """Own and effective pricing of every node under a location, parents first."""
    hierarchy = await _store(session).load_location_tree(location_id)
    resolver = PricingResolver(hierarchy, default=default_pricing())
    return [
        {
            **result.to_dict(),
            "parent_id": (
                str(parent_id)
                if (parent_id := hierarchy.get(result.id).parent_id)
                else None
            ),
        }
        for result in resolver.resolve_tree(location_id)
    ]


async def node_operator_id(
    session: AsyncSession,
    node_id: uuid.UUID,
    *,
    level: HierarchyLevel | None = None,
) -> uuid.UUID:
    """Operator owning the location above ``node_id``."""
    store = _store(session)
    await store.find(node_id, level)
    location = await store.location_for(node_id)
    return location.operator_id


async def set_pricing(
    session: AsyncSession,
    *,
    level: HierarchyLevel,
    node_id: uuid.UUID,
    config: PricingConfig,
) -> None:
    propagator = PricingPropagator(_store(session), default=default_pricing())
    await propagator.set_pricing(node_id, config, level=level)


async def remove_pricing(
    session: AsyncSession, *, level: HierarchyLevel, node_id: uuid.UUID
) -> None:
    propagator = PricingPropagator(_store(session), default=default_pricing())
    await propagator.remove_pricing(node_id, level=level)


async def copy_to_children(
    session: AsyncSession,
    *,
    level: HierarchyLevel,
    node_id: uuid.UUID,
    override_existing: bool = False,
) -> list[uuid.UUID]:
    propagator = PricingPropagator(_store(session), default=default_pricing())
    return await propagator.copy_to_children(
        node_id, override_existing=override_existing, level=level
    )


async def calculate_transaction(
    session: AsyncSession,
    *,
    node_id: uuid.UUID,
    vehicle_type: VehicleType | str,
    window: TimeRange,
    discount_context: Mapping[str, Any] | None = None,
    occupancy_rate: Decimal | None = None,
) -> PricedTransaction:
    """Price a booking window at ``node_id``.

    Discounts are drawn from the platform catalog plus the rules of the operator
    owning the node's location. Without an explicit occupancy rate the live
    spot occupancy of that location is used. Offset-aware windows are moved
    onto the location's wall clock before time and holiday rates apply.
    """
    settings = get_settings()
    vehicle = VehicleType.parse(vehicle_type)
    store = _store(session)
    lineage = await store.load_lineage(node_id)
    effective = PricingResolver(lineage, default=default_pricing()).resolve_effective(
        node_id
    )
    location = await store.location_for(node_id)
    window = window.in_timezone(_resolve_timezone(location))
    if occupancy_rate is None:
        occupancy_rate = await store.occupancy_rate(location.id)

    catalog = await discount_service.load_catalog(
        session, operator_id=location.operator_id
    )
    rules = catalog.find_applicable(discount_context or {}, location.operator_id)
    calculation = TransactionCalculator().calculate(
        effective.effective_pricing,
        vehicle,
        window,
        occupancy_rate=occupancy_rate,
        discounts=rules,
    )
    logger.info(
        "Calculated %s for %s (%s pricing): total %s",
        vehicle.value,
        node_id,
        effective.source.value,
        calculation.total,
    )
    return PricedTransaction(
        node_id=node_id,
        vehicle_type=vehicle,
        currency=settings.currency,
        pricing_source=effective.source,
        occupancy_rate=occupancy_rate,
        calculation=calculation,
    )
