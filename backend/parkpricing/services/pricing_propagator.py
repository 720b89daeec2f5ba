"""Writes of a node's own pricing and one-level copy-down to its children."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Protocol

from parkpricing.core.errors import NotFoundError
from parkpricing.services.hierarchy import (
    HierarchyLevel,
    HierarchyNode,
    PricingHierarchy,
    PricingResolver,
)
from parkpricing.services.invalidation_service import (
    InvalidationChannel,
    PricingInvalidated,
)
from parkpricing.services.pricing_config import DEFAULT_PRICING, PricingConfig

logger = logging.getLogger(__name__)


class HierarchyStore(Protocol):
    """Hierarchy collaborator the propagator reads from and writes through.

    Writes are staged until ``commit``; each staged write carries its own
    invalidation so the write and its notification land together.
    """

    async def load_lineage(self, node_id: uuid.UUID) -> PricingHierarchy: ...

    async def load_children(self, node_id: uuid.UUID) -> list[HierarchyNode]: ...

    async def write_pricing(
        self, node: HierarchyNode, config: PricingConfig | None
    ) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class InMemoryHierarchyStore:
    """Store over a ``PricingHierarchy`` snapshot, publishing on commit."""

    def __init__(
        self,
        hierarchy: PricingHierarchy,
        channel: InvalidationChannel | None = None,
    ) -> None:
        self.hierarchy = hierarchy
        self._channel = channel
        self._staged: list[tuple[uuid.UUID, HierarchyLevel, PricingConfig | None]] = []

    async def load_lineage(self, node_id: uuid.UUID) -> PricingHierarchy:
        self.hierarchy.get(node_id)
        return self.hierarchy

    async def load_children(self, node_id: uuid.UUID) -> list[HierarchyNode]:
        return self.hierarchy.children(node_id)

    async def write_pricing(
        self, node: HierarchyNode, config: PricingConfig | None
    ) -> None:
        self.hierarchy.get(node.id)
        self._staged.append((node.id, node.level, config))

    async def commit(self) -> None:
        staged, self._staged = self._staged, []
        for node_id, _, config in staged:
            self.hierarchy.set_pricing(node_id, config)
        if self._channel is None:
            return
        for node_id, level, _ in staged:
            await self._channel.publish(
                PricingInvalidated(
                    level=level.value, node_id=node_id, occurred_at=datetime.now(UTC)
                )
            )

    async def rollback(self) -> None:
        self._staged.clear()


class PricingPropagator:
    """Apply pricing writes; inheritance itself stays lazy in the resolver."""

    def __init__(
        self,
        store: HierarchyStore,
        *,
        default: PricingConfig = DEFAULT_PRICING,
    ) -> None:
        self._store = store
        self._default = default

    async def _load_node(
        self, node_id: uuid.UUID, level: HierarchyLevel | None
    ) -> tuple[PricingHierarchy, HierarchyNode]:
        lineage = await self._store.load_lineage(node_id)
        node = lineage.get(node_id)
        if level is not None and node.level is not level:
            raise NotFoundError(f"No {level.value} with id {node_id}")
        return lineage, node

    async def _write(self, node: HierarchyNode, config: PricingConfig | None) -> None:
        try:
            await self._store.write_pricing(node, config)
            await self._store.commit()
        except Exception:
            await self._store.rollback()
            raise

    async def set_pricing(
        self,
        node_id: uuid.UUID,
        config: PricingConfig,
        *,
        level: HierarchyLevel | None = None,
    ) -> None:
        _, node = await self._load_node(node_id, level)
        await self._write(node, config)
        logger.info("Pricing set on %s %s", node.level.value, node.id)

    async def remove_pricing(
        self, node_id: uuid.UUID, *, level: HierarchyLevel | None = None
    ) -> None:
        _, node = await self._load_node(node_id, level)
        await self._write(node, None)
        logger.info("Pricing removed from %s %s", node.level.value, node.id)

    async def copy_to_children(
        self,
        node_id: uuid.UUID,
        *,
        override_existing: bool = False,
        level: HierarchyLevel | None = None,
    ) -> list[uuid.UUID]:
        """Seed direct children with this node's effective pricing.

        Children that own a config are skipped unless ``override_existing``.
        Not recursive. Returns the ids of the children that were written.
        """
        lineage, node = await self._load_node(node_id, level)
        effective = PricingResolver(lineage, default=self._default).resolve_effective(
            node.id
        )
        children = await self._store.load_children(node.id)
        written: list[uuid.UUID] = []
        try:
            for child in children:
                if child.pricing_config is not None and not override_existing:
                    continue
                await self._store.write_pricing(child, effective.effective_pricing)
                written.append(child.id)
            await self._store.commit()
        except Exception:
            await self._store.rollback()
            raise
        logger.info(
            "Copied %s pricing of %s %s to %d of %d children",
            effective.source.value,
            node.level.value,
            node.id,
            len(written),
            len(children),
        )
        return written
