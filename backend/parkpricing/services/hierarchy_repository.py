"""SQL-backed hierarchy reads and pricing writes."""

from __future__ import annotations

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import Any, Awaitable, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parkpricing.core.errors import (
    ComputationError,
    ConflictError,
    HierarchyFetchError,
    NotFoundError,
    ValidationError,
)
from parkpricing.models import Location, ParkingSpot, Section, SpotStatus, Zone
from parkpricing.services.hierarchy import (
    HierarchyLevel,
    HierarchyNode,
    PricingHierarchy,
)
from parkpricing.services.invalidation_service import record_invalidation
from parkpricing.services.pricing_config import PricingConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

HierarchyRecord = Location | Section | Zone | ParkingSpot

_MODELS: dict[HierarchyLevel, type[Any]] = {
    HierarchyLevel.LOCATION: Location,
    HierarchyLevel.SECTION: Section,
    HierarchyLevel.ZONE: Zone,
    HierarchyLevel.SPOT: ParkingSpot,
}

_PARENT_COLUMNS: dict[HierarchyLevel, str] = {
    HierarchyLevel.SECTION: "location_id",
    HierarchyLevel.ZONE: "section_id",
    HierarchyLevel.SPOT: "zone_id",
}

_BUSY_STATUSES = (SpotStatus.OCCUPIED, SpotStatus.RESERVED)


def _to_node(record: HierarchyRecord, level: HierarchyLevel) -> HierarchyNode:
    parent_column = _PARENT_COLUMNS.get(level)
    pricing_config = None
    if record.pricing_config is not None:
        try:
            pricing_config = PricingConfig.from_dict(record.pricing_config)
        except ValidationError as exc:
            raise ComputationError(
                f"Stored pricing of {level.value} {record.id} is invalid: {exc}"
            ) from exc
    return HierarchyNode(
        id=record.id,
        name=record.number if isinstance(record, ParkingSpot) else record.name,
        level=level,
        parent_id=getattr(record, parent_column) if parent_column else None,
        pricing_config=pricing_config,
    )


class SqlHierarchyStore:
    """Hierarchy provider over the location tables of one session.

    Pricing writes stage an outbox row next to the column update, so a commit
    persists both or neither. Reads are bounded by ``timeout`` seconds when set
    and any failure surfaces as ``HierarchyFetchError``.
    """

    def __init__(self, session: AsyncSession, *, timeout: float | None = None) -> None:
        self.session = session
        self.timeout = timeout

    async def _bounded(self, operation: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        except TimeoutError as exc:
            raise HierarchyFetchError(
                f"Hierarchy read exceeded {self.timeout} seconds"
            ) from exc
        except SQLAlchemyError as exc:
            raise HierarchyFetchError("Hierarchy read failed") from exc

    async def find(
        self, node_id: uuid.UUID, level: HierarchyLevel | None = None
    ) -> tuple[HierarchyLevel, HierarchyRecord]:
        levels = [level] if level is not None else list(HierarchyLevel)
        for candidate in levels:
            record = await self.session.get(_MODELS[candidate], node_id)
            if record is not None:
                return candidate, record
        label = level.value if level is not None else "hierarchy node"
        raise NotFoundError(f"No {label} with id {node_id}")

    async def load_lineage(self, node_id: uuid.UUID) -> PricingHierarchy:
        """Snapshot holding ``node_id`` and its ancestors up to the location."""
        return await self._bounded(self._load_lineage(node_id))

    async def _load_lineage(self, node_id: uuid.UUID) -> PricingHierarchy:
        level, record = await self.find(node_id)
        chain = [_to_node(record, level)]
        while chain[-1].parent_id is not None:
            parent_level = level.parent_level or HierarchyLevel.LOCATION
            parent = await self.session.get(_MODELS[parent_level], chain[-1].parent_id)
            if parent is None:
                raise NotFoundError(
                    f"Parent {parent_level.value} {chain[-1].parent_id} is missing"
                )
            level = parent_level
            chain.append(_to_node(parent, level))
        return PricingHierarchy(reversed(chain))

    async def load_children(self, node_id: uuid.UUID) -> list[HierarchyNode]:
        return await self._bounded(self._load_children(node_id))

    async def _load_children(self, node_id: uuid.UUID) -> list[HierarchyNode]:
        level, _ = await self.find(node_id)
        child_level = level.child_level
        if child_level is None:
            return []
        model = _MODELS[child_level]
        order_by = model.number if child_level is HierarchyLevel.SPOT else model.name
        result = await self.session.execute(
            select(model)
            .where(getattr(model, _PARENT_COLUMNS[child_level]) == node_id)
            .order_by(order_by)
        )
        return [_to_node(record, child_level) for record in result.scalars().all()]

    async def load_location_tree(self, location_id: uuid.UUID) -> PricingHierarchy:
        return await self._bounded(self._load_location_tree(location_id))

    async def _load_location_tree(self, location_id: uuid.UUID) -> PricingHierarchy:
        result = await self.session.execute(
            select(Location)
            .options(
                selectinload(Location.sections)
                .selectinload(Section.zones)
                .selectinload(Zone.spots)
            )
            .where(Location.id == location_id)
        )
        location = result.scalars().unique().one_or_none()
        if location is None:
            raise NotFoundError(f"No location with id {location_id}")
        hierarchy = PricingHierarchy([_to_node(location, HierarchyLevel.LOCATION)])
        for section in sorted(location.sections, key=lambda item: item.name):
            hierarchy.add(_to_node(section, HierarchyLevel.SECTION))
            for zone in sorted(section.zones, key=lambda item: item.name):
                hierarchy.add(_to_node(zone, HierarchyLevel.ZONE))
                for spot in sorted(zone.spots, key=lambda item: item.number):
                    hierarchy.add(_to_node(spot, HierarchyLevel.SPOT))
        return hierarchy

    async def write_pricing(
        self, node: HierarchyNode, config: PricingConfig | None
    ) -> None:
        _, record = await self.find(node.id, node.level)
        record.pricing_config = config.to_dict() if config is not None else None
        record_invalidation(self.session, level=node.level.value, node_id=node.id)

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError("Pricing write conflicts with stored data") from exc

    async def rollback(self) -> None:
        await self.session.rollback()

    async def location_for(self, node_id: uuid.UUID) -> Location:
        """The location at the root of ``node_id``'s lineage."""
        lineage = await self.load_lineage(node_id)
        root = lineage.ancestors(node_id)[-1]
        location = await self.session.get(Location, root.id)
        if location is None:
            raise NotFoundError(f"No location with id {root.id}")
        return location

    async def occupancy_rate(self, location_id: uuid.UUID) -> Decimal | None:
        """Percent of the location's spots that are occupied or reserved."""
        result = await self.session.execute(
            select(ParkingSpot.status, func.count(ParkingSpot.id))
            .join(Zone, ParkingSpot.zone_id == Zone.id)
            .join(Section, Zone.section_id == Section.id)
            .where(Section.location_id == location_id)
            .group_by(ParkingSpot.status)
        )
        counts = {status: count for status, count in result.all()}
        total = sum(counts.values())
        if not total:
            return None
        busy = sum(counts.get(status, 0) for status in _BUSY_STATUSES)
        rate = (Decimal(busy) * Decimal("100") / Decimal(total)).quantize(Decimal("0.01"))
        logger.debug("Location %s occupancy %s%% (%s/%s)", location_id, rate, busy, total)
        return rate
