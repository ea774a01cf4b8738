"""
Parameter validation.

Turns the loose ``params`` mapping of an algorithm request into domain
models, rejecting anything that cannot start a run with InvalidParameters.
Nothing here mutates the input.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .errors import InvalidParameters
from .models.graph import Edge, Graph
from .models.grid import HEURISTICS, Coord, Grid
from .models.tree import Tree

ORDERINGS = ("random", "sorted", "reversed", "nearly-sorted", "few-unique")


@dataclass
class Limits:
    """Input size limits shared by validation and run creation."""

    max_array_size: int = 50
    max_array_value: int = 999
    max_grid_rows: int = 30
    max_grid_cols: int = 50
    max_tree_nodes: int = 31
    min_tree_key: int = 1
    max_tree_key: int = 99
    max_graph_vertices: int = 50
    max_steps_per_run: int = 200_000
    random_walk_max_steps: int = 1000


DEFAULT_LIMITS = Limits()


# ============= Primitive checks =============


def _require(params: Mapping[str, Any], name: str) -> Any:
    if name not in params or params[name] is None:
        raise InvalidParameters("missing-field", f"'{name}' is required", name)
    return params[name]


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidParameters("invalid-type", f"'{name}' must be an integer", name)
    return int(value)


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise InvalidParameters("invalid-type", f"'{name}' must be a number", name)
    if not math.isfinite(value):
        raise InvalidParameters("invalid-value", f"'{name}' must be finite", name)
    return value


def _int_list(value: Any, name: str) -> List[int]:
    if not isinstance(value, (list, tuple)):
        raise InvalidParameters("invalid-type", f"'{name}' must be a list of integers", name)
    return [_int(v, name) for v in value]


def parse_coord(value: Any, name: str) -> Coord:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise InvalidParameters("invalid-type", f"'{name}' must be a [row, col] pair", name)
    return _int(value[0], name), _int(value[1], name)


def parse_seed(params: Mapping[str, Any]) -> int:
    seed = params.get("seed", 0)
    return 0 if seed is None else _int(seed, "seed")


# ============= Sorting =============


def generate_array(size: int, ordering: str = "random", seed: int = 0, low: int = 5, high: int = 100) -> List[int]:
    """Reproducible sorting input for ``(size, ordering, seed)``."""
    if ordering not in ORDERINGS:
        raise InvalidParameters("invalid-value", f"Unknown ordering '{ordering}'", "ordering")
    rng = np.random.default_rng(seed)
    if ordering == "few-unique":
        pool = rng.integers(low, high, size=4)
        values = rng.choice(pool, size=size)
    else:
        values = rng.integers(low, high, size=size)

    if ordering == "sorted":
        values = np.sort(values)
    elif ordering == "reversed":
        values = np.sort(values)[::-1]
    elif ordering == "nearly-sorted":
        values = np.sort(values)
        for _ in range(max(1, size // 10) if size > 1 else 0):
            i, j = rng.integers(0, size, size=2)
            values[i], values[j] = values[j], values[i]
    return [int(v) for v in values]


def parse_array(params: Mapping[str, Any], limits: Limits = DEFAULT_LIMITS) -> Tuple[int, ...]:
    if params.get("values") is not None:
        values = _int_list(params["values"], "values")
    elif params.get("size") is not None:
        size = _int(params["size"], "size")
        if size < 0:
            raise InvalidParameters("out-of-bounds", "'size' must not be negative", "size")
        if size > limits.max_array_size:
            raise InvalidParameters("too-large", f"At most {limits.max_array_size} values", "size")
        values = generate_array(size, params.get("ordering") or "random", parse_seed(params))
    else:
        raise InvalidParameters("missing-field", "Either 'values' or 'size' is required", "values")

    if len(values) > limits.max_array_size:
        raise InvalidParameters("too-large", f"At most {limits.max_array_size} values", "values")
    if any(abs(v) > limits.max_array_value for v in values):
        raise InvalidParameters(
            "out-of-bounds", f"Values must lie within +/-{limits.max_array_value}", "values"
        )
    return tuple(values)


# ============= Pathfinding =============


def parse_grid(params: Mapping[str, Any], limits: Limits = DEFAULT_LIMITS) -> Grid:
    rows = _int(_require(params, "rows"), "rows")
    cols = _int(_require(params, "cols"), "cols")
    if not 1 <= rows <= limits.max_grid_rows:
        raise InvalidParameters("out-of-bounds", f"'rows' must be 1..{limits.max_grid_rows}", "rows")
    if not 1 <= cols <= limits.max_grid_cols:
        raise InvalidParameters("out-of-bounds", f"'cols' must be 1..{limits.max_grid_cols}", "cols")

    def in_bounds(coord: Coord) -> bool:
        return 0 <= coord[0] < rows and 0 <= coord[1] < cols

    start = parse_coord(_require(params, "start"), "start")
    end = parse_coord(_require(params, "end"), "end")
    for name, coord in (("start", start), ("end", end)):
        if not in_bounds(coord):
            raise InvalidParameters("out-of-bounds", f"'{name}' {list(coord)} is outside the grid", name)
    if start == end:
        raise InvalidParameters("start-equals-end", "Start and end must be different cells", "end")

    walls = set()
    for raw in params.get("walls") or []:
        coord = parse_coord(raw, "walls")
        if not in_bounds(coord):
            raise InvalidParameters("out-of-bounds", f"Wall {list(coord)} is outside the grid", "walls")
        walls.add(coord)
    if start in walls:
        raise InvalidParameters("endpoint-is-wall", "Start cell is a wall", "start")
    if end in walls:
        raise InvalidParameters("endpoint-is-wall", "End cell is a wall", "end")

    weights: Dict[Coord, float] = {}
    for raw in params.get("weights") or []:
        if not isinstance(raw, (list, tuple)) or len(raw) != 3:
            raise InvalidParameters("invalid-type", "Weights are [row, col, weight] triples", "weights")
        coord = parse_coord(raw[:2], "weights")
        weight = _number(raw[2], "weights")
        if not in_bounds(coord):
            raise InvalidParameters("out-of-bounds", f"Weight {list(coord)} is outside the grid", "weights")
        if weight < 1:
            raise InvalidParameters("invalid-weight", "Cell weights must be >= 1", "weights")
        if weight != 1:
            weights[coord] = weight

    return Grid(rows, cols, start, end, frozenset(walls), MappingProxyType(weights))


def check_heuristic(params: Mapping[str, Any]) -> str:
    heuristic = params.get("heuristic") or "manhattan"
    if heuristic not in HEURISTICS:
        raise InvalidParameters("invalid-value", f"Unknown heuristic '{heuristic}'", "heuristic")
    return heuristic


# ============= Trees =============


def _check_key(key: int, field: str, limits: Limits) -> int:
    if not limits.min_tree_key <= key <= limits.max_tree_key:
        raise InvalidParameters(
            "out-of-bounds",
            f"Keys must lie within {limits.min_tree_key}..{limits.max_tree_key}",
            field,
        )
    return key


def parse_tree_keys(params: Mapping[str, Any], limits: Limits = DEFAULT_LIMITS) -> List[int]:
    """Construction sequence of the initial tree."""
    keys = _int_list(params.get("keys") or [], "keys")
    seen = set()
    for key in keys:
        _check_key(key, "keys", limits)
        if key in seen:
            raise InvalidParameters("duplicate-key", f"Key {key} appears twice", "keys")
        seen.add(key)
    if len(keys) > limits.max_tree_nodes:
        raise InvalidParameters("tree-full", f"A tree holds at most {limits.max_tree_nodes} nodes", "keys")
    return keys


def generate_balanced_keys(count: int, seed: int = 0, limits: Limits = DEFAULT_LIMITS) -> List[int]:
    """Distinct seeded keys ordered so plain BST insertion yields a balanced tree.

    Keys are drawn without replacement from the key range, sorted, then
    emitted median first, recursing into each half.
    """
    if count < 0:
        raise InvalidParameters("out-of-bounds", "'count' must not be negative", "count")
    if count > limits.max_tree_nodes:
        raise InvalidParameters("tree-full", f"A tree holds at most {limits.max_tree_nodes} nodes", "count")
    span = limits.max_tree_key - limits.min_tree_key + 1
    if count > span:
        raise InvalidParameters("too-large", f"Only {span} distinct keys are available", "count")

    rng = np.random.default_rng(seed)
    drawn = rng.choice(span, size=count, replace=False) + limits.min_tree_key
    ordered = sorted(int(k) for k in drawn)

    keys: List[int] = []

    def _median_first(lo: int, hi: int) -> None:
        if lo > hi:
            return
        mid = (lo + hi) // 2
        keys.append(ordered[mid])
        _median_first(lo, mid - 1)
        _median_first(mid + 1, hi)

    _median_first(0, len(ordered) - 1)
    return keys


def check_tree_operation(
    structure: str,
    operation: str,
    tree: Tree,
    params: Mapping[str, Any],
    limits: Limits = DEFAULT_LIMITS,
) -> Dict[str, Any]:
    """Validate the operand of a tree operation; returns producer kwargs."""
    if operation == "extract-max" and structure != "heap":
        raise InvalidParameters("unsupported-operation", "extract-max needs a heap", "algorithm_id")
    if operation == "delete" and structure == "heap":
        raise InvalidParameters(
            "unsupported-operation", "Heaps only remove their maximum; use extract-max", "algorithm_id"
        )
    if operation == "heapify" and structure != "heap":
        raise InvalidParameters("unsupported-operation", "heapify needs a heap", "algorithm_id")
    if operation == "invert" and structure == "heap":
        raise InvalidParameters(
            "unsupported-operation", "A mirrored heap is no longer complete", "algorithm_id"
        )

    if operation == "insert":
        if params.get("value") is not None:
            values = [_int(params["value"], "value")]
            field = "value"
        elif params.get("values") is not None:
            values = _int_list(params["values"], "values")
            field = "values"
        else:
            raise InvalidParameters("missing-field", "'value' or 'values' is required", "value")
        existing = {node.key for node in tree.nodes.values()}
        for key in values:
            _check_key(key, field, limits)
            if key in existing:
                raise InvalidParameters("duplicate-key", f"Key {key} is already in the tree", field)
            existing.add(key)
        if len(existing) > limits.max_tree_nodes:
            raise InvalidParameters("tree-full", f"A tree holds at most {limits.max_tree_nodes} nodes", field)
        return {"values": values}

    if operation in ("search", "delete"):
        return {"value": _int(_require(params, "value"), "value")}
    return {}


# ============= Graphs =============


def parse_graph(params: Mapping[str, Any], limits: Limits = DEFAULT_LIMITS) -> Graph:
    raw_vertices = _require(params, "vertices")
    if not isinstance(raw_vertices, (list, tuple)):
        raise InvalidParameters("invalid-type", "'vertices' must be a list", "vertices")
    vertices = tuple(str(v) for v in raw_vertices)
    if len(set(vertices)) != len(vertices):
        raise InvalidParameters("duplicate-vertex", "Vertex names must be unique", "vertices")
    if len(vertices) > limits.max_graph_vertices:
        raise InvalidParameters("too-large", f"At most {limits.max_graph_vertices} vertices", "vertices")

    known = set(vertices)
    edges: List[Edge] = []
    seen_ids = set()
    for index, raw in enumerate(params.get("edges") or []):
        if not isinstance(raw, Mapping):
            raise InvalidParameters("invalid-type", "Edges are objects with source and target", "edges")
        source = str(_require(raw, "source"))
        target = str(_require(raw, "target"))
        for endpoint in (source, target):
            if endpoint not in known:
                raise InvalidParameters("unknown-vertex", f"Edge endpoint '{endpoint}' is not a vertex", "edges")
        weight = _number(raw.get("weight", 1), "edges")
        edge_id = str(raw.get("id") or f"e{index}")
        if edge_id in seen_ids:
            raise InvalidParameters("duplicate-edge", f"Edge id '{edge_id}' is used twice", "edges")
        seen_ids.add(edge_id)
        edges.append(Edge(edge_id, source, target, weight))

    return Graph(vertices, tuple(edges), bool(params.get("directed", False)))


def check_graph_algorithm(algorithm_id: str, graph: Graph, params: Mapping[str, Any]) -> Dict[str, Any]:
    if algorithm_id == "kahn":
        if not graph.directed:
            raise InvalidParameters("requires-directed", "Topological sort needs a directed graph", "directed")
        return {}
    if graph.directed:
        raise InvalidParameters(
            "requires-undirected", "Minimum spanning trees need an undirected graph", "directed"
        )
    if algorithm_id == "prim":
        start: Optional[str] = params.get("start")
        if start is not None and str(start) not in graph.vertices:
            raise InvalidParameters("unknown-vertex", f"Start vertex '{start}' is not in the graph", "start")
        return {"start": None if start is None else str(start)}
    return {}
