"""Tests for hierarchy snapshots and effective pricing resolution."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from parkpricing.core.errors import NotFoundError, ValidationError
from parkpricing.services.hierarchy import (
    HierarchyLevel,
    HierarchyNode,
    PricingHierarchy,
    PricingResolver,
    PricingSource,
)
from parkpricing.services.pricing_config import DEFAULT_PRICING, PricingConfig


def _node(level: HierarchyLevel, parent: HierarchyNode | None = None, **kwargs) -> HierarchyNode:
    return HierarchyNode(
        id=uuid.uuid4(),
        name=kwargs.pop("name", level.value),
        level=level,
        parent_id=parent.id if parent else None,
        **kwargs,
    )


@pytest.fixture()
def scenario() -> dict[str, HierarchyNode]:
    location = _node(
        HierarchyLevel.LOCATION,
        pricing_config=PricingConfig(base_rate="50", vat_rate="12"),
    )
    section = _node(HierarchyLevel.SECTION, location)
    zone = _node(HierarchyLevel.ZONE, section)
    spot = _node(
        HierarchyLevel.SPOT, zone, pricing_config=PricingConfig(base_rate="80")
    )
    bare_spot = _node(HierarchyLevel.SPOT, zone)
    return {
        "location": location,
        "section": section,
        "zone": zone,
        "spot": spot,
        "bare_spot": bare_spot,
    }


def _hierarchy(nodes: dict[str, HierarchyNode]) -> PricingHierarchy:
    return PricingHierarchy(nodes.values())


def test_zone_inherits_and_spot_owns(scenario: dict[str, HierarchyNode]) -> None:
    resolver = PricingResolver(_hierarchy(scenario))

    zone = resolver.resolve_effective(scenario["zone"].id)
    assert zone.effective_pricing.base_rate == Decimal("50")
    assert zone.source is PricingSource.INHERITED
    assert zone.own_pricing is None
    assert zone.inherited_pricing == scenario["location"].pricing_config
    assert zone.source_node_id == scenario["location"].id

    spot = resolver.resolve_effective(scenario["spot"].id)
    assert spot.effective_pricing.base_rate == Decimal("80")
    assert spot.source is PricingSource.OWN
    assert spot.inherited_pricing is None


def test_unpriced_nodes_match_their_parent(scenario: dict[str, HierarchyNode]) -> None:
    hierarchy = _hierarchy(scenario)
    resolver = PricingResolver(hierarchy)
    for node in hierarchy:
        if node.pricing_config is not None or node.parent_id is None:
            continue
        own = resolver.resolve_effective(node.id).effective_pricing
        parent = resolver.resolve_effective(node.parent_id).effective_pricing
        assert own == parent


def test_default_used_when_no_ancestor_has_pricing() -> None:
    location = _node(HierarchyLevel.LOCATION)
    section = _node(HierarchyLevel.SECTION, location)
    resolver = PricingResolver(PricingHierarchy([location, section]))

    result = resolver.resolve_effective(section.id)
    assert result.source is PricingSource.DEFAULT
    assert result.effective_pricing is DEFAULT_PRICING
    assert result.source_node_id is None
    assert result.to_dict()["own_pricing"] is None


def test_custom_default_is_honoured() -> None:
    location = _node(HierarchyLevel.LOCATION)
    fallback = PricingConfig(base_rate="35", vat_rate="0")
    resolver = PricingResolver(PricingHierarchy([location]), default=fallback)
    assert resolver.resolve_effective(location.id).effective_pricing is fallback


def test_unknown_node_is_not_found(scenario: dict[str, HierarchyNode]) -> None:
    resolver = PricingResolver(_hierarchy(scenario))
    with pytest.raises(NotFoundError):
        resolver.resolve_effective(uuid.uuid4())


def test_resolution_does_not_mutate_tree(scenario: dict[str, HierarchyNode]) -> None:
    hierarchy = _hierarchy(scenario)
    before = {node.id: node.pricing_config for node in hierarchy}
    resolver = PricingResolver(hierarchy)
    for node in list(hierarchy):
        resolver.resolve_effective(node.id)
    assert {node.id: node.pricing_config for node in hierarchy} == before


def test_repricing_invalidates_cached_subtree(scenario: dict[str, HierarchyNode]) -> None:
    hierarchy = _hierarchy(scenario)
    resolver = PricingResolver(hierarchy)
    assert resolver.resolve_effective(scenario["bare_spot"].id).effective_pricing.base_rate == 50

    hierarchy.set_pricing(scenario["section"].id, PricingConfig(base_rate="65"))
    bare = resolver.resolve_effective(scenario["bare_spot"].id)
    assert bare.effective_pricing.base_rate == Decimal("65")
    assert bare.source_node_id == scenario["section"].id
    assert resolver.resolve_effective(scenario["spot"].id).effective_pricing.base_rate == 80

    hierarchy.set_pricing(scenario["section"].id, None)
    assert resolver.resolve_effective(scenario["bare_spot"].id).effective_pricing.base_rate == 50


def test_resolve_tree_agrees_with_single_resolution(
    scenario: dict[str, HierarchyNode],
) -> None:
    hierarchy = _hierarchy(scenario)
    tree = PricingResolver(hierarchy).resolve_tree(scenario["location"].id)
    assert [result.id for result in tree][0] == scenario["location"].id
    assert len(tree) == len(hierarchy)

    fresh = PricingResolver(hierarchy)
    for result in tree:
        single = fresh.resolve_effective(result.id)
        assert result.effective_pricing == single.effective_pricing
        assert result.source is single.source


def test_children_may_arrive_before_parents() -> None:
    location = _node(HierarchyLevel.LOCATION)
    section = _node(HierarchyLevel.SECTION, location)
    zone = _node(HierarchyLevel.ZONE, section)
    hierarchy = PricingHierarchy([zone, section, location])

    assert [node.id for node in hierarchy.children(location.id)] == [section.id]
    assert [node.id for node in hierarchy.ancestors(zone.id)] == [
        zone.id,
        section.id,
        location.id,
    ]
    assert [node.id for node in hierarchy.descendants(location.id)] == [
        location.id,
        section.id,
        zone.id,
    ]


def test_structural_rules_are_enforced() -> None:
    location = _node(HierarchyLevel.LOCATION)
    hierarchy = PricingHierarchy([location])
    with pytest.raises(ValidationError):
        hierarchy.add(location)
    with pytest.raises(ValidationError):
        hierarchy.add(_node(HierarchyLevel.LOCATION, location))
    with pytest.raises(ValidationError):
        hierarchy.add(_node(HierarchyLevel.ZONE))


def test_level_navigation() -> None:
    assert HierarchyLevel.LOCATION.child_level is HierarchyLevel.SECTION
    assert HierarchyLevel.SPOT.child_level is None
    assert HierarchyLevel.ZONE.parent_level is HierarchyLevel.SECTION
    assert HierarchyLevel.LOCATION.parent_level is None
