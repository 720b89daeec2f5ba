"""Tests for pricing writes and copy-to-children over an in-memory store."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from parkpricing.core.errors import NotFoundError
from parkpricing.services.hierarchy import (
    HierarchyLevel,
    HierarchyNode,
    PricingHierarchy,
    PricingResolver,
    PricingSource,
)
from parkpricing.services.invalidation_service import BufferedInvalidationChannel
from parkpricing.services.pricing_config import PricingConfig
from parkpricing.services.pricing_propagator import (
    InMemoryHierarchyStore,
    PricingPropagator,
)

pytestmark = pytest.mark.asyncio


class _FailingStore(InMemoryHierarchyStore):
    """Fails on the n-th staged write."""

    def __init__(self, hierarchy: PricingHierarchy, fail_on: int) -> None:
        super().__init__(hierarchy)
        self._fail_on = fail_on
        self._writes = 0
        self.rolled_back = False

    async def write_pricing(self, node, config) -> None:  # type: ignore[override]
        self._writes += 1
        if self._writes == self._fail_on:
            raise RuntimeError("storage unavailable")
        await super().write_pricing(node, config)

    async def rollback(self) -> None:
        self.rolled_back = True
        await super().rollback()


def _build() -> tuple[PricingHierarchy, dict[str, HierarchyNode]]:
    location = HierarchyNode(
        id=uuid.uuid4(),
        name="Mall",
        level=HierarchyLevel.LOCATION,
        pricing_config=PricingConfig(base_rate="50", vat_rate="12"),
    )
    section = HierarchyNode(
        id=uuid.uuid4(),
        name="North",
        level=HierarchyLevel.SECTION,
        parent_id=location.id,
        pricing_config=PricingConfig(base_rate="60"),
    )
    zone_tuned = HierarchyNode(
        id=uuid.uuid4(),
        name="Tuned",
        level=HierarchyLevel.ZONE,
        parent_id=section.id,
        pricing_config=PricingConfig(base_rate="99"),
    )
    zone_plain = HierarchyNode(
        id=uuid.uuid4(), name="Plain", level=HierarchyLevel.ZONE, parent_id=section.id
    )
    spot = HierarchyNode(
        id=uuid.uuid4(), name="P-01", level=HierarchyLevel.SPOT, parent_id=zone_plain.id
    )
    nodes = {
        "location": location,
        "section": section,
        "zone_tuned": zone_tuned,
        "zone_plain": zone_plain,
        "spot": spot,
    }
    return PricingHierarchy(nodes.values()), nodes


async def test_set_and_remove_pricing_publish_invalidations() -> None:
    hierarchy, nodes = _build()
    channel = BufferedInvalidationChannel()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy, channel))
    resolver = PricingResolver(hierarchy)

    await propagator.set_pricing(nodes["zone_plain"].id, PricingConfig(base_rate="75"))
    assert resolver.resolve_effective(nodes["spot"].id).effective_pricing.base_rate == 75

    await propagator.remove_pricing(nodes["zone_plain"].id)
    result = resolver.resolve_effective(nodes["zone_plain"].id)
    assert result.source is PricingSource.INHERITED
    assert result.effective_pricing.base_rate == Decimal("60")

    events = channel.snapshot()
    assert [event.node_id for event in events] == [nodes["zone_plain"].id] * 2
    assert {event.level for event in events} == {"zone"}


async def test_set_pricing_does_not_touch_other_nodes() -> None:
    hierarchy, nodes = _build()
    before = {node.id: node.pricing_config for node in hierarchy}
    await PricingPropagator(InMemoryHierarchyStore(hierarchy)).set_pricing(
        nodes["section"].id, PricingConfig(base_rate="61")
    )
    after = {node.id: node.pricing_config for node in hierarchy}
    changed = [node_id for node_id in after if after[node_id] != before[node_id]]
    assert changed == [nodes["section"].id]


async def test_level_mismatch_is_not_found() -> None:
    hierarchy, nodes = _build()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy))
    with pytest.raises(NotFoundError):
        await propagator.set_pricing(
            nodes["zone_plain"].id,
            PricingConfig(base_rate="1"),
            level=HierarchyLevel.SPOT,
        )
    with pytest.raises(NotFoundError):
        await propagator.remove_pricing(uuid.uuid4())


async def test_copy_without_override_keeps_tuned_children() -> None:
    hierarchy, nodes = _build()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy))

    written = await propagator.copy_to_children(nodes["section"].id)

    assert written == [nodes["zone_plain"].id]
    assert nodes["zone_tuned"].pricing_config.base_rate == Decimal("99")
    assert nodes["zone_plain"].pricing_config == nodes["section"].pricing_config
    # one level only
    assert nodes["spot"].pricing_config is None


async def test_copy_with_override_is_idempotent() -> None:
    hierarchy, nodes = _build()
    channel = BufferedInvalidationChannel()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy, channel))

    first = await propagator.copy_to_children(nodes["section"].id, override_existing=True)
    snapshot = {node.id: node.pricing_config for node in hierarchy.children(nodes["section"].id)}
    second = await propagator.copy_to_children(nodes["section"].id, override_existing=True)

    assert sorted(first) == sorted(second)
    assert {
        node.id: node.pricing_config for node in hierarchy.children(nodes["section"].id)
    } == snapshot
    assert all(config == nodes["section"].pricing_config for config in snapshot.values())
    assert len(channel.snapshot()) == 4


async def test_copy_seeds_inherited_pricing() -> None:
    hierarchy, nodes = _build()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy))

    written = await propagator.copy_to_children(nodes["zone_plain"].id)

    assert written == [nodes["spot"].id]
    assert nodes["spot"].pricing_config == nodes["section"].pricing_config


async def test_copy_from_leaf_writes_nothing() -> None:
    hierarchy, nodes = _build()
    channel = BufferedInvalidationChannel()
    propagator = PricingPropagator(InMemoryHierarchyStore(hierarchy, channel))
    assert await propagator.copy_to_children(nodes["spot"].id) == []
    assert channel.snapshot() == []


async def test_failed_fan_out_applies_nothing() -> None:
    hierarchy, nodes = _build()
    store = _FailingStore(hierarchy, fail_on=2)
    propagator = PricingPropagator(store)

    with pytest.raises(RuntimeError):
        await propagator.copy_to_children(nodes["section"].id, override_existing=True)

    assert store.rolled_back
    assert nodes["zone_tuned"].pricing_config.base_rate == Decimal("99")
    assert nodes["zone_plain"].pricing_config is None
