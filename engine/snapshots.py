"""
Renderable state per family.

A snapshot is the domain state at one index of a run plus the highlight and
progress annotations a render adapter needs. Snapshots are frozen, compare by
value, and expose their mappings read-only, so a published snapshot can be
handed to any subscriber without copying.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from .models.graph import Graph
from .models.grid import Coord, Grid
from .models.tree import Tree
from .steps import Family


def _frozen_map(data: Optional[Dict] = None) -> Mapping:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class ArraySnapshot:
    values: Tuple[int, ...]
    comparing: Tuple[int, ...] = ()
    # Indices written by the last swap or overwrite
    changed: Tuple[int, ...] = ()
    pivot: Optional[int] = None
    active_range: Optional[Tuple[int, int]] = None
    sorted_indices: FrozenSet[int] = frozenset()
    complete: bool = False

    family = Family.SORTING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.value,
            "values": list(self.values),
            "comparing": list(self.comparing),
            "changed": list(self.changed),
            "pivot": self.pivot,
            "active_range": list(self.active_range) if self.active_range else None,
            "sorted_indices": sorted(self.sorted_indices),
            "complete": self.complete,
        }


@dataclass(frozen=True)
class GridSnapshot:
    """Search progress over a grid.

    ``distances``/``parents`` belong to the forward search; the backward half
    of a bidirectional search records into the ``backward_*`` maps.
    """

    grid: Grid
    frontier: FrozenSet[Coord] = frozenset()
    visited: Tuple[Coord, ...] = ()
    distances: Mapping[Coord, float] = field(default_factory=_frozen_map)
    parents: Mapping[Coord, Coord] = field(default_factory=_frozen_map)
    backward_distances: Mapping[Coord, float] = field(default_factory=_frozen_map)
    backward_parents: Mapping[Coord, Coord] = field(default_factory=_frozen_map)
    current: Optional[Coord] = None
    path: Tuple[Coord, ...] = ()
    path_cost: Optional[float] = None

    family = Family.PATHFINDING

    def to_dict(self) -> Dict[str, Any]:
        def _coords(items) -> list:
            return [list(c) for c in items]

        def _dist(mapping) -> list:
            return [[r, c, d] for (r, c), d in sorted(mapping.items())]

        return {
            "family": self.family.value,
            "grid": self.grid.to_dict(),
            "frontier": _coords(sorted(self.frontier)),
            "visited": _coords(self.visited),
            "distances": _dist(self.distances),
            "backward_distances": _dist(self.backward_distances),
            "current": list(self.current) if self.current else None,
            "path": _coords(self.path),
            "path_cost": self.path_cost,
        }


@dataclass(frozen=True)
class TreeSnapshot:
    structure: str
    tree: Tree
    highlighted: Tuple[int, ...] = ()
    # Keys emitted so far by a traversal
    output: Tuple[int, ...] = ()
    outcome: Optional[str] = None
    extracted: Optional[int] = None

    family = Family.TREE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.value,
            "structure": self.structure,
            "tree": self.tree.to_dict(),
            "highlighted": list(self.highlighted),
            "output": list(self.output),
            "outcome": self.outcome,
            "extracted": self.extracted,
        }


@dataclass(frozen=True)
class GraphSnapshot:
    graph: Graph
    visited: Tuple[str, ...] = ()
    current: Optional[str] = None
    # edge id -> considered | accepted | rejected
    edge_states: Mapping[str, str] = field(default_factory=_frozen_map)
    # vertex -> component root
    components: Mapping[str, str] = field(default_factory=_frozen_map)
    indegrees: Mapping[str, int] = field(default_factory=_frozen_map)
    total_weight: float = 0
    order: Tuple[str, ...] = ()
    remaining: Tuple[str, ...] = ()
    outcome: Optional[str] = None

    family = Family.GRAPH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.value,
            "graph": self.graph.to_dict(),
            "visited": list(self.visited),
            "current": self.current,
            "edge_states": dict(self.edge_states),
            "components": dict(self.components),
            "indegrees": dict(self.indegrees),
            "total_weight": self.total_weight,
            "order": list(self.order),
            "remaining": list(self.remaining),
            "outcome": self.outcome,
        }


# ============= Initial snapshots =============


def array_snapshot(values: Sequence[int]) -> ArraySnapshot:
    return ArraySnapshot(values=tuple(values))


def grid_snapshot(grid: Grid) -> GridSnapshot:
    return GridSnapshot(grid=grid)


def tree_snapshot(structure: str, tree: Tree) -> TreeSnapshot:
    return TreeSnapshot(structure=structure, tree=tree)


def graph_snapshot(graph: Graph) -> GraphSnapshot:
    return GraphSnapshot(
        graph=graph,
        components=_frozen_map({v: v for v in graph.vertices}),
        indegrees=_frozen_map(graph.indegrees()),
    )
