"""Location/Section/Zone/Spot arena and effective pricing resolution."""

from __future__ import annotations

import enum
import logging
import threading
import uuid
import weakref
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator

from parkpricing.core.errors import ComputationError, NotFoundError, ValidationError
from parkpricing.services.pricing_config import DEFAULT_PRICING, PricingConfig

logger = logging.getLogger(__name__)


class HierarchyLevel(str, enum.Enum):
    """Depth of a node in the physical hierarchy."""

    LOCATION = "location"
    SECTION = "section"
    ZONE = "zone"
    SPOT = "spot"

    @property
    def child_level(self) -> "HierarchyLevel | None":
        order = list(HierarchyLevel)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None

    @property
    def parent_level(self) -> "HierarchyLevel | None":
        order = list(HierarchyLevel)
        index = order.index(self)
        return order[index - 1] if index > 0 else None


class PricingSource(str, enum.Enum):
    OWN = "own"
    INHERITED = "inherited"
    DEFAULT = "default"


@dataclass(slots=True)
class HierarchyNode:
    """One node of the hierarchy with its optional own pricing."""

    id: uuid.UUID
    name: str
    level: HierarchyLevel
    parent_id: uuid.UUID | None = None
    pricing_config: PricingConfig | None = None
    child_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PricingInheritanceResult:
    """Report of how a node's effective pricing was resolved."""

    level: HierarchyLevel
    id: uuid.UUID
    name: str
    own_pricing: PricingConfig | None
    inherited_pricing: PricingConfig | None
    effective_pricing: PricingConfig
    source: PricingSource
    source_node_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        def _dump(config: PricingConfig | None) -> dict[str, Any] | None:
            return config.to_dict() if config is not None else None

        return {
            "level": self.level.value,
            "id": str(self.id),
            "name": self.name,
            "own_pricing": _dump(self.own_pricing),
            "inherited_pricing": _dump(self.inherited_pricing),
            "effective_pricing": self.effective_pricing.to_dict(),
            "source": self.source.value,
            "source_node_id": str(self.source_node_id) if self.source_node_id else None,
        }


class PricingHierarchy:
    """Adjacency map of hierarchy nodes keyed by id.

    A snapshot may hold a whole location tree or only the ancestor chain of a
    single node; lookups never leave the snapshot.
    """

    def __init__(self, nodes: Iterable[HierarchyNode] = ()) -> None:
        self._nodes: dict[uuid.UUID, HierarchyNode] = {}
        self._orphans: dict[uuid.UUID, list[uuid.UUID]] = {}
        self._listeners: list[weakref.WeakMethod] = []
        for node in nodes:
            self.add(node)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[HierarchyNode]:
        return iter(self._nodes.values())

    def add(self, node: HierarchyNode) -> None:
        if node.id in self._nodes:
            raise ValidationError(f"Duplicate hierarchy node {node.id}")
        if node.level is HierarchyLevel.LOCATION and node.parent_id is not None:
            raise ValidationError("A location cannot have a parent")
        if node.level is not HierarchyLevel.LOCATION and node.parent_id is None:
            raise ValidationError(f"A {node.level.value} needs a parent")
        self._nodes[node.id] = node
        if node.parent_id is not None:
            parent = self._nodes.get(node.parent_id)
            if parent is None:
                # Parent arrives later (or never, for lineage snapshots).
                self._orphans.setdefault(node.parent_id, []).append(node.id)
            elif node.id not in parent.child_ids:
                parent.child_ids.append(node.id)
        for child_id in self._orphans.pop(node.id, []):
            if child_id not in node.child_ids:
                node.child_ids.append(child_id)

    def get(self, node_id: uuid.UUID) -> HierarchyNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFoundError(f"Hierarchy node {node_id} not found") from None

    def ancestors(self, node_id: uuid.UUID) -> list[HierarchyNode]:
        """Return the node and its ancestors ordered nearest-first."""
        chain: list[HierarchyNode] = []
        seen: set[uuid.UUID] = set()
        current: uuid.UUID | None = node_id
        while current is not None and current in self._nodes:
            if current in seen:
                raise ComputationError(f"Cycle in hierarchy at node {current}")
            seen.add(current)
            node = self._nodes[current]
            chain.append(node)
            current = node.parent_id
        if not chain:
            raise NotFoundError(f"Hierarchy node {node_id} not found")
        return chain

    def children(self, node_id: uuid.UUID) -> list[HierarchyNode]:
        return [self._nodes[child_id] for child_id in self.get(node_id).child_ids]

    def descendants(self, node_id: uuid.UUID) -> Iterator[HierarchyNode]:
        """Breadth-first walk of the subtree below (and including) ``node_id``."""
        queue = deque([self.get(node_id)])
        while queue:
            node = queue.popleft()
            yield node
            queue.extend(self._nodes[child_id] for child_id in node.child_ids)

    def set_pricing(self, node_id: uuid.UUID, config: PricingConfig | None) -> None:
        self.get(node_id).pricing_config = config
        alive = []
        for ref in self._listeners:
            listener = ref()
            if listener is not None:
                alive.append(ref)
                listener(node_id)
        self._listeners = alive

    def subscribe(self, listener: Callable[[uuid.UUID], None]) -> None:
        """Register a bound method called with the id of every repriced node."""
        self._listeners.append(weakref.WeakMethod(listener))  # type: ignore[arg-type]


class PricingResolver:
    """Resolve effective pricing by inheritance: own, then nearest ancestor, then default."""

    def __init__(
        self,
        hierarchy: PricingHierarchy,
        *,
        default: PricingConfig = DEFAULT_PRICING,
    ) -> None:
        self._hierarchy = hierarchy
        self._default = default
        self._cache: dict[uuid.UUID, PricingInheritanceResult] = {}
        self._generation = 0
        self._lock = threading.Lock()
        hierarchy.subscribe(self.invalidate)

    @property
    def default(self) -> PricingConfig:
        return self._default

    def resolve_effective(self, node_id: uuid.UUID) -> PricingInheritanceResult:
        cached = self._cache.get(node_id)
        if cached is not None:
            return cached

        generation = self._generation
        chain = self._hierarchy.ancestors(node_id)
        target = chain[0]
        supplier = next((node for node in chain if node.pricing_config is not None), None)
        if supplier is None:
            logger.debug("No pricing in chain of %s; using default", node_id)
            result = PricingInheritanceResult(
                level=target.level,
                id=target.id,
                name=target.name,
                own_pricing=None,
                inherited_pricing=None,
                effective_pricing=self._default,
                source=PricingSource.DEFAULT,
            )
        else:
            own = supplier is target
            result = PricingInheritanceResult(
                level=target.level,
                id=target.id,
                name=target.name,
                own_pricing=target.pricing_config,
                inherited_pricing=None if own else supplier.pricing_config,
                effective_pricing=supplier.pricing_config,  # type: ignore[arg-type]
                source=PricingSource.OWN if own else PricingSource.INHERITED,
                source_node_id=supplier.id,
            )
        with self._lock:
            # An invalidation ran while resolving; do not cache a stale answer.
            if generation == self._generation:
                self._cache[node_id] = result
        return result

    def resolve_tree(self, root_id: uuid.UUID) -> list[PricingInheritanceResult]:
        """Resolve every node below ``root_id`` top-down in a single pass."""
        root_result = self.resolve_effective(root_id)
        results = [root_result]
        queue = deque(
            (child, root_result)
            for child in self._hierarchy.children(root_id)
        )
        while queue:
            node, parent_result = queue.popleft()
            if node.pricing_config is not None:
                result = PricingInheritanceResult(
                    level=node.level,
                    id=node.id,
                    name=node.name,
                    own_pricing=node.pricing_config,
                    inherited_pricing=None,
                    effective_pricing=node.pricing_config,
                    source=PricingSource.OWN,
                    source_node_id=node.id,
                )
            else:
                result = PricingInheritanceResult(
                    level=node.level,
                    id=node.id,
                    name=node.name,
                    own_pricing=None,
                    inherited_pricing=(
                        parent_result.effective_pricing
                        if parent_result.source is not PricingSource.DEFAULT
                        else None
                    ),
                    effective_pricing=parent_result.effective_pricing,
                    source=(
                        PricingSource.INHERITED
                        if parent_result.source is not PricingSource.DEFAULT
                        else PricingSource.DEFAULT
                    ),
                    source_node_id=parent_result.source_node_id,
                )
            results.append(result)
            queue.extend((child, result) for child in self._hierarchy.children(node.id))
        return results

    def invalidate(self, node_id: uuid.UUID) -> None:
        """Drop cached results for the subtree rooted at ``node_id``."""
        if node_id not in self._hierarchy:
            return
        stale = {node.id for node in self._hierarchy.descendants(node_id)}
        with self._lock:
            self._generation += 1
            self._cache = {
                key: value for key, value in self._cache.items() if key not in stale
            }
