"""
Algorithm catalog and run creation.

``create_run`` is the single entry point that turns an AlgorithmRequest into a
Run: it validates the parameters, builds the initial snapshot, and
materializes the producer's full step sequence. Invalid input raises
InvalidParameters before any step exists.
"""

import logging
import uuid
from dataclasses import dataclass, field
from itertools import islice
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidParameters
from .producers import PRODUCERS
from .producers.tree import STRUCTURES, build_complete_tree, build_tree
from .reducers import replay
from .snapshots import array_snapshot, graph_snapshot, grid_snapshot, tree_snapshot
from .steps import Family
from .validation import (
    DEFAULT_LIMITS,
    Limits,
    check_graph_algorithm,
    check_heuristic,
    check_tree_operation,
    parse_array,
    parse_graph,
    parse_grid,
    parse_seed,
    parse_tree_keys,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlgorithmInfo:
    """Catalog entry describing one algorithm."""

    id: str
    family: Family
    label: str
    complexity: str
    description: str
    params: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "family": self.family.value,
            "label": self.label,
            "complexity": self.complexity,
            "description": self.description,
            "params": list(self.params),
        }


def _info(family: Family, algo_id: str, label: str, complexity: str, description: str, *params: str) -> AlgorithmInfo:
    return AlgorithmInfo(algo_id, family, label, complexity, description, params)


_S, _P, _T, _G = Family.SORTING, Family.PATHFINDING, Family.TREE, Family.GRAPH
_ARRAY = ("values", "size", "ordering", "seed")
_GRID = ("rows", "cols", "start", "end", "walls", "weights")
_TREE = ("structure", "keys")
_GRAPH = ("vertices", "edges", "directed")

CATALOG: Dict[Family, Dict[str, AlgorithmInfo]] = {
    Family.SORTING: {
        i.id: i
        for i in (
            _info(_S, "bubble", "Bubble Sort", "O(n^2)", "Repeatedly swaps adjacent out-of-order pairs.", *_ARRAY),
            _info(_S, "selection", "Selection Sort", "O(n^2)", "Moves the smallest remaining value to the front.", *_ARRAY),
            _info(_S, "insertion", "Insertion Sort", "O(n^2)", "Sinks each value left into the sorted prefix.", *_ARRAY),
            _info(_S, "gnome", "Gnome Sort", "O(n^2)", "Walks forward, stepping back after each swap.", *_ARRAY),
            _info(_S, "quick", "Quick Sort", "O(n log n)", "Lomuto partition around the last element.", *_ARRAY),
            _info(_S, "merge", "Merge Sort", "O(n log n)", "Sorts halves and merges them back in place.", *_ARRAY),
            _info(_S, "heap", "Heap Sort", "O(n log n)", "Builds a max-heap and extracts the maximum.", *_ARRAY),
        )
    },
    Family.PATHFINDING: {
        i.id: i
        for i in (
            _info(_P, "bfs", "Breadth-First Search", "O(V + E)", "Layer by layer; shortest on unweighted grids.", *_GRID),
            _info(_P, "dfs", "Depth-First Search", "O(V + E)", "Follows one branch as deep as it goes.", *_GRID),
            _info(_P, "dijkstra", "Dijkstra", "O((V + E) log V)", "Settles cells by cheapest known cost.", *_GRID),
            _info(_P, "astar", "A* Search", "O((V + E) log V)", "Cost plus heuristic estimate to the end.", *_GRID, "heuristic"),
            _info(_P, "greedy", "Greedy Best-First", "O((V + E) log V)", "Heuristic only; fast but not optimal.", *_GRID, "heuristic"),
            _info(_P, "bidirectional", "Bidirectional A*", "O((V + E) log V)", "A* from both ends until the frontiers meet.", *_GRID, "heuristic"),
            _info(_P, "flood-fill", "Flood Fill", "O(V + E)", "Fills the whole reachable region first.", *_GRID),
            _info(_P, "random-walk", "Random Walk", "unbounded", "Seeded random moves with a step cap.", *_GRID, "seed"),
        )
    },
    Family.TREE: {
        i.id: i
        for i in (
            _info(_T, "insert", "Insert", "O(h)", "Inserts one value or a list of values.", *_TREE, "value", "values"),
            _info(_T, "search", "Search", "O(h)", "Walks down from the root to a key.", *_TREE, "value"),
            _info(_T, "delete", "Delete", "O(h)", "Removes a key (not available on heaps).", *_TREE, "value"),
            _info(_T, "inorder", "In-order Traversal", "O(n)", "Left, node, right.", *_TREE),
            _info(_T, "preorder", "Pre-order Traversal", "O(n)", "Node, left, right.", *_TREE),
            _info(_T, "postorder", "Post-order Traversal", "O(n)", "Left, right, node.", *_TREE),
            _info(_T, "level-order", "Level-order Traversal", "O(n)", "Breadth-first, top to bottom.", *_TREE),
            _info(_T, "extract-max", "Extract Max", "O(log n)", "Removes the root of a max-heap.", *_TREE),
            _info(_T, "invert", "Invert", "O(n)", "Mirrors the tree by swapping every node's children.", *_TREE),
            _info(_T, "heapify", "Heapify", "O(n)", "Builds a max-heap bottom-up from level-order keys.", *_TREE),
        )
    },
    Family.GRAPH: {
        i.id: i
        for i in (
            _info(_G, "prim", "Prim's MST", "O(E log V)", "Grows one tree along the cheapest frontier edge.", *_GRAPH, "start"),
            _info(_G, "kruskal", "Kruskal's MST", "O(E log E)", "Joins components cheapest edge first.", *_GRAPH),
            _info(_G, "kahn", "Kahn's Topological Sort", "O(V + E)", "Repeatedly removes in-degree zero vertices.", *_GRAPH),
        )
    },
}


def parse_family(value: Any) -> Family:
    try:
        return Family(value)
    except ValueError:
        raise InvalidParameters("unknown-family", f"Unknown algorithm family '{value}'", "family") from None


def get_algorithm(family: Family, algorithm_id: str) -> AlgorithmInfo:
    info = CATALOG[family].get(algorithm_id)
    if info is None:
        raise InvalidParameters(
            "unknown-algorithm",
            f"Unknown {family.value} algorithm '{algorithm_id}'",
            "algorithm_id",
        )
    return info


def parse_structure(params: Mapping[str, Any]) -> str:
    structure = params.get("structure") or "bst"
    if structure not in STRUCTURES:
        raise InvalidParameters("invalid-value", f"Unknown tree structure '{structure}'", "structure")
    return structure


@dataclass(frozen=True)
class AlgorithmRequest:
    """What to run: enough to rebuild an equal Run from scratch."""

    family: Family
    algorithm_id: str
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def create(cls, family: Any, algorithm_id: str, params: Optional[Mapping[str, Any]] = None) -> "AlgorithmRequest":
        return cls(parse_family(family), algorithm_id, MappingProxyType(dict(params or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.value,
            "algorithm_id": self.algorithm_id,
            "params": dict(self.params),
        }


@dataclass(frozen=True)
class Run:
    """Initial snapshot plus the full, immutable step sequence."""

    run_id: str
    request: AlgorithmRequest
    initial: Any
    steps: Tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.steps)

    def final_snapshot(self):
        return replay(self.initial, self.steps, len(self.steps) - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            **self.request.to_dict(),
            "total_steps": len(self.steps),
        }


def build_initial(request: AlgorithmRequest, limits: Limits = DEFAULT_LIMITS):
    """Validate ``request`` and return (initial snapshot, domain, producer kwargs)."""
    params = request.params
    get_algorithm(request.family, request.algorithm_id)

    if request.family == Family.SORTING:
        values = parse_array(params, limits)
        return array_snapshot(values), values, {}

    if request.family == Family.PATHFINDING:
        grid = parse_grid(params, limits)
        kwargs = {
            "heuristic": check_heuristic(params),
            "seed": parse_seed(params),
            "max_steps": limits.random_walk_max_steps,
        }
        return grid_snapshot(grid), grid, kwargs

    if request.family == Family.TREE:
        structure = parse_structure(params)
        keys = parse_tree_keys(params, limits)
        if request.algorithm_id == "heapify":
            tree = build_complete_tree(keys)
        else:
            tree = build_tree(structure, keys)
        kwargs = check_tree_operation(structure, request.algorithm_id, tree, params, limits)
        kwargs["structure"] = structure
        return tree_snapshot(structure, tree), tree, kwargs

    graph = parse_graph(params, limits)
    kwargs = check_graph_algorithm(request.algorithm_id, graph, params)
    return graph_snapshot(graph), graph, kwargs


def materialize(request: AlgorithmRequest, limits: Limits = DEFAULT_LIMITS):
    """Run the producer to exhaustion; returns (initial snapshot, steps)."""
    initial, domain, kwargs = build_initial(request, limits)
    producer = PRODUCERS[request.family][request.algorithm_id]
    steps = tuple(islice(producer(domain, **kwargs), limits.max_steps_per_run + 1))
    if len(steps) > limits.max_steps_per_run:
        raise InvalidParameters(
            "too-many-steps",
            f"Run would exceed {limits.max_steps_per_run} steps",
            "params",
        )
    return initial, steps


def create_run(request: AlgorithmRequest, limits: Limits = DEFAULT_LIMITS, run_id: Optional[str] = None) -> Run:
    initial, steps = materialize(request, limits)
    run = Run(run_id or str(uuid.uuid4()), request, initial, steps)
    logger.debug(
        "Created run %s: %s/%s with %d steps",
        run.run_id,
        request.family.value,
        request.algorithm_id,
        len(steps),
    )
    return run


def catalog_dict(family: Optional[Family] = None) -> Dict[str, List[Dict[str, Any]]]:
    families = [family] if family is not None else list(Family)
    return {f.value: [info.to_dict() for info in CATALOG[f].values()] for f in families}
