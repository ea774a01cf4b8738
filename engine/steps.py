"""
Step vocabulary for every algorithm family.

A step is an immutable description of one atomic algorithm action. Steps hold
plain values (indices, coordinates, node ids, keys), never references into a
live structure, so a step stays valid after the structure has moved on.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple

Coord = Tuple[int, int]


class Family(str, Enum):
    """Algorithm family."""

    SORTING = "sorting"
    PATHFINDING = "pathfinding"
    TREE = "tree"
    GRAPH = "graph"


class SortStepType(str, Enum):
    COMPARE = "compare"
    SWAP = "swap"
    OVERWRITE = "overwrite"
    PIVOT_SELECT = "pivot-select"
    PARTITION = "partition"
    MARK_SORTED = "mark-sorted"
    COMPLETE = "complete"


class PathStepType(str, Enum):
    FRONTIER_PUSH = "frontier-push"
    VISIT = "visit"
    RELAX = "relax"
    PATH_RECONSTRUCT = "path-reconstruct"


class TreeStepType(str, Enum):
    NODE_VISIT = "node-visit"
    COMPARE = "compare"
    INSERT = "insert"
    FOUND = "found"
    NOT_FOUND = "not-found"
    DELETE = "delete"
    UPDATE_HEIGHT = "update-height"
    REBALANCE = "rebalance"
    ROTATE = "rotate"
    SWAP = "swap"
    EXTRACT = "extract"
    INVERT = "invert"
    HEAPIFY_NODE = "heapify-node"
    COMPLETE = "complete"


class GraphStepType(str, Enum):
    NODE_VISIT = "node-visit"
    EDGE_CONSIDER = "edge-consider"
    EDGE_ACCEPT = "edge-accept"
    CYCLE_REJECT = "cycle-reject"
    UNION = "union"
    COMPLETE = "complete"
    DISCONNECTED = "disconnected"
    CYCLE_DETECTED = "cycle-detected"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value


class _StepBase:
    """Serialization shared by the step records."""

    family: Family

    def to_dict(self) -> Dict[str, Any]:
        """Convert step to a JSON-ready dict, omitting unset fields."""
        data: Dict[str, Any] = {"family": self.family.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == ():
                continue
            data[f.name] = _plain(value)
        return data


@dataclass(frozen=True)
class SortStep(_StepBase):
    """One action of a sorting algorithm.

    ``values`` holds the new values written at ``indices`` for swap and
    overwrite steps.
    """

    type: SortStepType
    indices: Tuple[int, ...] = ()
    values: Tuple[int, ...] = ()
    range: Optional[Tuple[int, int]] = None

    family = Family.SORTING


@dataclass(frozen=True)
class PathStep(_StepBase):
    """One action of a grid search.

    ``path`` is only set on path-reconstruct and is ordered from end to start.
    ``direction`` is "forward" or "backward" for bidirectional search.
    """

    type: PathStepType
    coord: Optional[Coord] = None
    distance: Optional[float] = None
    parent: Optional[Coord] = None
    direction: Optional[str] = None
    path: Tuple[Coord, ...] = ()
    cost: Optional[float] = None

    family = Family.PATHFINDING


@dataclass(frozen=True)
class TreeStep(_StepBase):
    """One action of a tree operation."""

    type: TreeStepType
    node_id: Optional[int] = None
    key: Optional[int] = None
    # node-visit: "left" | "right" | "equal" while walking a BST
    direction: Optional[str] = None
    # node-visit during traversals: position in the output sequence
    order_index: Optional[int] = None
    # insert
    parent_id: Optional[int] = None
    position: Optional[str] = None
    # delete
    strategy: Optional[str] = None
    successor_id: Optional[int] = None
    # AVL bookkeeping
    height: Optional[int] = None
    balance_factor: Optional[int] = None
    # rotate: "left" | "right"; the pivot moves down, new_root_id moves up
    rotation: Optional[str] = None
    pivot_id: Optional[int] = None
    new_root_id: Optional[int] = None
    case: Optional[str] = None
    # heap compare / swap
    other_id: Optional[int] = None
    will_swap: Optional[bool] = None
    # heapify-node: order_index counts the non-leaf nodes sifted so far
    total: Optional[int] = None
    # complete
    order: Tuple[int, ...] = ()

    family = Family.TREE


@dataclass(frozen=True)
class GraphStep(_StepBase):
    """One action of a graph algorithm."""

    type: GraphStepType
    vertex: Optional[str] = None
    edge_id: Optional[str] = None
    weight: Optional[float] = None
    # Kahn: in-degree of the edge target after the decrement
    indegree: Optional[int] = None
    # union: the absorbed component is relabelled to ``root``
    root: Optional[str] = None
    absorbed: Optional[str] = None
    members: Tuple[str, ...] = ()
    order: Tuple[str, ...] = ()
    total_weight: Optional[float] = None
    remaining: Tuple[str, ...] = ()

    family = Family.GRAPH


STEP_TYPES = {
    Family.SORTING: SortStepType,
    Family.PATHFINDING: PathStepType,
    Family.TREE: TreeStepType,
    Family.GRAPH: GraphStepType,
}
