"""
Step reducer (projector).

``reduce(snapshot, step)`` applies one step to a snapshot and returns the next
snapshot. It is pure and total over each family's closed step vocabulary;
anything it cannot apply (wrong family, unknown type, stale index, broken
invariant) raises ReducerContractError. ``replay`` folds a prefix of a step
sequence from the initial snapshot, which is how every non-live snapshot is
derived.
"""

import math
from dataclasses import replace
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Sequence

from .errors import ReducerContractError
from .models.grid import Coord, DIRECTIONS
from .snapshots import ArraySnapshot, GraphSnapshot, GridSnapshot, TreeSnapshot
from .steps import (
    Family,
    GraphStep,
    GraphStepType,
    PathStep,
    PathStepType,
    SortStep,
    SortStepType,
    TreeStep,
    TreeStepType,
)


# ============= Sorting =============


def _check_indices(snapshot: ArraySnapshot, step: SortStep, count: int) -> None:
    if len(step.indices) != count:
        raise ReducerContractError(f"{step.type.value} expects {count} indices, got {len(step.indices)}")
    for i in step.indices:
        if not 0 <= i < len(snapshot.values):
            raise ReducerContractError(f"{step.type.value}: index {i} out of range")


def reduce_array(snapshot: ArraySnapshot, step: SortStep) -> ArraySnapshot:
    kind = step.type
    if kind == SortStepType.COMPARE:
        _check_indices(snapshot, step, 2)
        return replace(snapshot, comparing=step.indices, changed=())

    if kind == SortStepType.SWAP:
        _check_indices(snapshot, step, 2)
        i, j = step.indices
        values = list(snapshot.values)
        if tuple(step.values) != (values[j], values[i]):
            raise ReducerContractError(f"swap values {step.values} do not exchange positions {i} and {j}")
        values[i], values[j] = values[j], values[i]
        return replace(snapshot, values=tuple(values), comparing=(), changed=step.indices)

    if kind == SortStepType.OVERWRITE:
        _check_indices(snapshot, step, 1)
        if len(step.values) != 1:
            raise ReducerContractError("overwrite expects exactly one value")
        values = list(snapshot.values)
        values[step.indices[0]] = step.values[0]
        return replace(snapshot, values=tuple(values), comparing=(), changed=step.indices)

    if kind == SortStepType.PIVOT_SELECT:
        _check_indices(snapshot, step, 1)
        return replace(snapshot, pivot=step.indices[0], comparing=(), changed=())

    if kind == SortStepType.PARTITION:
        if step.range is None:
            raise ReducerContractError("partition requires a range")
        lo, hi = step.range
        if not 0 <= lo <= hi < len(snapshot.values):
            raise ReducerContractError(f"partition range {step.range} out of bounds")
        return replace(snapshot, active_range=step.range, pivot=None, comparing=(), changed=())

    if kind == SortStepType.MARK_SORTED:
        _check_indices(snapshot, step, 1)
        index = step.indices[0]
        pivot = None if snapshot.pivot == index else snapshot.pivot
        return replace(
            snapshot,
            sorted_indices=snapshot.sorted_indices | {index},
            pivot=pivot,
            comparing=(),
            changed=(),
        )

    if kind == SortStepType.COMPLETE:
        return replace(
            snapshot,
            sorted_indices=frozenset(range(len(snapshot.values))),
            comparing=(),
            changed=(),
            pivot=None,
            active_range=None,
            complete=True,
        )

    raise ReducerContractError(f"Unknown sorting step type: {kind}")


# ============= Pathfinding =============


def _check_cell(snapshot: GridSnapshot, coord: Optional[Coord], kind: str) -> Coord:
    if coord is None:
        raise ReducerContractError(f"{kind} requires a coordinate")
    if not snapshot.grid.in_bounds(coord):
        raise ReducerContractError(f"{kind}: {coord} is outside the grid")
    if snapshot.grid.is_wall(coord):
        raise ReducerContractError(f"{kind}: {coord} is a wall")
    return coord


def _record(snapshot: GridSnapshot, step: PathStep, coord: Coord, **changes) -> GridSnapshot:
    """Write distance/parent into the maps of the step's search direction."""
    backward = step.direction == "backward"
    dist_attr = "backward_distances" if backward else "distances"
    parent_attr = "backward_parents" if backward else "parents"
    if step.distance is not None:
        distances = dict(getattr(snapshot, dist_attr))
        distances[coord] = step.distance
        changes[dist_attr] = MappingProxyType(distances)
    if step.parent is not None:
        parents = dict(getattr(snapshot, parent_attr))
        parents[coord] = step.parent
        changes[parent_attr] = MappingProxyType(parents)
    return replace(snapshot, **changes)


def reduce_grid(snapshot: GridSnapshot, step: PathStep) -> GridSnapshot:
    kind = step.type
    if kind == PathStepType.FRONTIER_PUSH:
        coord = _check_cell(snapshot, step.coord, kind.value)
        return _record(snapshot, step, coord, frontier=snapshot.frontier | {coord})

    if kind == PathStepType.VISIT:
        coord = _check_cell(snapshot, step.coord, kind.value)
        visited = snapshot.visited if coord in snapshot.visited else snapshot.visited + (coord,)
        return _record(
            snapshot, step, coord, frontier=snapshot.frontier - {coord}, visited=visited, current=coord
        )

    if kind == PathStepType.RELAX:
        coord = _check_cell(snapshot, step.coord, kind.value)
        if step.distance is None:
            raise ReducerContractError("relax requires a distance")
        known = snapshot.backward_distances if step.direction == "backward" else snapshot.distances
        if coord in known and not step.distance < known[coord]:
            raise ReducerContractError(
                f"relax of {coord} to {step.distance} is not shorter than {known[coord]}"
            )
        return _record(snapshot, step, coord, frontier=snapshot.frontier | {coord})

    if kind == PathStepType.PATH_RECONSTRUCT:
        path = step.path
        grid = snapshot.grid
        if not path or path[0] != grid.end or path[-1] != grid.start:
            raise ReducerContractError("path must run from end to start")
        for a, b in zip(path, path[1:]):
            _check_cell(snapshot, b, kind.value)
            if (b[0] - a[0], b[1] - a[1]) not in DIRECTIONS:
                raise ReducerContractError(f"path cells {a} and {b} are not adjacent")
        cost = grid.path_cost(path)
        if step.cost is not None and not math.isclose(step.cost, cost):
            raise ReducerContractError(f"path cost {step.cost} does not match grid cost {cost}")
        return replace(snapshot, path=path, path_cost=cost, current=None)

    raise ReducerContractError(f"Unknown pathfinding step type: {kind}")


# ============= Trees =============


def _node_id(step: TreeStep) -> int:
    if step.node_id is None:
        raise ReducerContractError(f"{step.type.value} requires a node id")
    return step.node_id


def reduce_tree(snapshot: TreeSnapshot, step: TreeStep) -> TreeSnapshot:
    kind = step.type
    tree = snapshot.tree

    if kind == TreeStepType.NODE_VISIT:
        node = tree.node(_node_id(step))
        output = snapshot.output
        if step.order_index is not None:
            if step.order_index != len(output):
                raise ReducerContractError(
                    f"traversal index {step.order_index} does not follow {len(output)} emitted keys"
                )
            output = output + (node.key,)
        return replace(snapshot, highlighted=(node.id,), output=output)

    if kind == TreeStepType.COMPARE:
        node = tree.node(_node_id(step))
        other = tree.node(step.other_id)
        return replace(snapshot, highlighted=(node.id, other.id))

    if kind == TreeStepType.INSERT:
        node_id = _node_id(step)
        if node_id != tree.next_id:
            raise ReducerContractError(f"insert id {node_id} is not the next free id {tree.next_id}")
        if step.key is None or tree.find_by_key(step.key) is not None:
            raise ReducerContractError(f"insert of duplicate or missing key {step.key}")
        tree = tree.insert_leaf(node_id, step.key, step.parent_id, step.position or "root")
        return replace(snapshot, tree=tree, highlighted=(node_id,), outcome=None)

    if kind == TreeStepType.FOUND:
        node = tree.node(_node_id(step))
        if step.key is not None and node.key != step.key:
            raise ReducerContractError(f"found node {node.id} holds {node.key}, not {step.key}")
        return replace(snapshot, highlighted=tuple(tree.path_to(node.id)), outcome="found")

    if kind == TreeStepType.NOT_FOUND:
        return replace(snapshot, highlighted=(), outcome="not-found")

    if kind == TreeStepType.DELETE:
        node = tree.node(_node_id(step))
        strategy = step.strategy
        if strategy == "leaf":
            if node.left is not None or node.right is not None:
                raise ReducerContractError(f"node {node.id} is not a leaf")
            tree = tree.remove(node.id)
            highlighted = (node.parent,) if node.parent is not None else ()
        elif strategy == "one-child":
            if (node.left is None) == (node.right is None):
                raise ReducerContractError(f"node {node.id} does not have exactly one child")
            child = node.left if node.left is not None else node.right
            tree = tree.remove(node.id)
            highlighted = (child,)
        elif strategy == "two-children":
            if node.left is None or node.right is None:
                raise ReducerContractError(f"node {node.id} does not have two children")
            successor = tree.node(step.successor_id)
            if successor.left is not None:
                raise ReducerContractError(f"successor {successor.id} has a left child")
            tree = tree.replace_key(node.id, successor.key).remove(successor.id)
            highlighted = (node.id,)
        else:
            raise ReducerContractError(f"Unknown delete strategy: {strategy}")
        return replace(snapshot, tree=tree, highlighted=highlighted, outcome=None)

    if kind == TreeStepType.UPDATE_HEIGHT:
        node_id = _node_id(step)
        expected = tree.computed_height(node_id)
        if step.height != expected:
            raise ReducerContractError(f"height {step.height} of node {node_id} should be {expected}")
        return replace(snapshot, tree=tree.set_height(node_id, expected), highlighted=(node_id,))

    if kind == TreeStepType.REBALANCE:
        node_id = _node_id(step)
        balance = tree.balance_factor(node_id)
        if step.balance_factor != balance or abs(balance) <= 1:
            raise ReducerContractError(f"node {node_id} with balance {balance} needs no rebalance")
        return replace(snapshot, highlighted=(node_id,))

    if kind == TreeStepType.ROTATE:
        pivot = tree.node(step.pivot_id)
        riser = pivot.right if step.rotation == "left" else pivot.left
        if riser is None or riser != step.new_root_id:
            raise ReducerContractError(
                f"{step.rotation} rotation about {pivot.id} cannot raise node {step.new_root_id}"
            )
        tree = tree.rotate(pivot.id, step.rotation)
        return replace(snapshot, tree=tree, highlighted=(riser, pivot.id))

    if kind == TreeStepType.SWAP:
        node_id = _node_id(step)
        tree = tree.swap_keys(node_id, tree.node(step.other_id).id)
        return replace(snapshot, tree=tree, highlighted=(node_id, step.other_id))

    if kind == TreeStepType.EXTRACT:
        node = tree.node(_node_id(step))
        if node.id != tree.root_id:
            raise ReducerContractError("extract must take the root")
        return replace(snapshot, highlighted=(node.id,), extracted=node.key)

    if kind == TreeStepType.INVERT:
        node = tree.node(_node_id(step))
        return replace(snapshot, tree=tree.swap_children(node.id), highlighted=(node.id,))

    if kind == TreeStepType.HEAPIFY_NODE:
        node = tree.node(_node_id(step))
        if node.left is None and node.right is None:
            raise ReducerContractError(f"heapify cannot sift leaf {node.id}")
        if step.order_index is None or step.total is None or not 0 <= step.order_index < step.total:
            raise ReducerContractError(f"heapify position {step.order_index} of {step.total} is out of range")
        return replace(snapshot, highlighted=(node.id,))

    if kind == TreeStepType.COMPLETE:
        output = step.order if step.order else snapshot.output
        if step.order and snapshot.output and step.order != snapshot.output:
            raise ReducerContractError("traversal order does not match the visited keys")
        outcome = snapshot.outcome or "complete"
        return replace(snapshot, highlighted=(), output=output, outcome=outcome)

    raise ReducerContractError(f"Unknown tree step type: {kind}")


# ============= Graphs =============


def _edge(snapshot: GraphSnapshot, step: GraphStep):
    edge = snapshot.graph.edge(step.edge_id) if step.edge_id is not None else None
    if edge is None:
        raise ReducerContractError(f"{step.type.value}: unknown edge {step.edge_id}")
    return edge


def _with_edge_state(snapshot: GraphSnapshot, edge_id: str, state: str) -> Mapping[str, str]:
    states = dict(snapshot.edge_states)
    states[edge_id] = state
    return MappingProxyType(states)


def reduce_graph(snapshot: GraphSnapshot, step: GraphStep) -> GraphSnapshot:
    kind = step.type

    if kind == GraphStepType.NODE_VISIT:
        if step.vertex not in snapshot.graph.vertices:
            raise ReducerContractError(f"node-visit: unknown vertex {step.vertex}")
        visited = snapshot.visited
        if step.vertex not in visited:
            visited = visited + (step.vertex,)
        return replace(snapshot, visited=visited, current=step.vertex)

    if kind == GraphStepType.EDGE_CONSIDER:
        edge = _edge(snapshot, step)
        changes = {"edge_states": _with_edge_state(snapshot, edge.id, "considered")}
        if step.indegree is not None:
            expected = snapshot.indegrees.get(edge.target, 0) - 1
            if step.indegree != expected:
                raise ReducerContractError(
                    f"in-degree of {edge.target} should drop to {expected}, not {step.indegree}"
                )
            indegrees = dict(snapshot.indegrees)
            indegrees[edge.target] = expected
            changes["indegrees"] = MappingProxyType(indegrees)
        return replace(snapshot, **changes)

    if kind == GraphStepType.EDGE_ACCEPT:
        edge = _edge(snapshot, step)
        if snapshot.edge_states.get(edge.id) == "accepted":
            raise ReducerContractError(f"edge {edge.id} accepted twice")
        return replace(
            snapshot,
            edge_states=_with_edge_state(snapshot, edge.id, "accepted"),
            total_weight=snapshot.total_weight + edge.weight,
        )

    if kind == GraphStepType.CYCLE_REJECT:
        edge = _edge(snapshot, step)
        return replace(snapshot, edge_states=_with_edge_state(snapshot, edge.id, "rejected"))

    if kind == GraphStepType.UNION:
        components = dict(snapshot.components)
        if step.root not in components or step.absorbed not in components:
            raise ReducerContractError(f"union of unknown roots {step.root}, {step.absorbed}")
        if components[step.root] != step.root or components[step.absorbed] != step.absorbed:
            raise ReducerContractError(f"union operands {step.root}, {step.absorbed} are not roots")
        members = tuple(v for v, label in components.items() if label == step.absorbed)
        if step.members and set(step.members) != set(members):
            raise ReducerContractError(f"union members {step.members} do not match {members}")
        for vertex in members:
            components[vertex] = step.root
        return replace(snapshot, components=MappingProxyType(components))

    if kind == GraphStepType.COMPLETE:
        if step.total_weight is not None and not math.isclose(step.total_weight, snapshot.total_weight):
            raise ReducerContractError(
                f"total weight {step.total_weight} does not match accepted {snapshot.total_weight}"
            )
        return replace(snapshot, order=step.order, outcome="complete", current=None)

    if kind == GraphStepType.DISCONNECTED:
        return replace(snapshot, outcome="disconnected", current=None)

    if kind == GraphStepType.CYCLE_DETECTED:
        return replace(snapshot, remaining=step.remaining, outcome="cycle-detected", current=None)

    raise ReducerContractError(f"Unknown graph step type: {kind}")


# ============= Dispatch =============

_REDUCERS: Dict[Family, Callable] = {
    Family.SORTING: reduce_array,
    Family.PATHFINDING: reduce_grid,
    Family.TREE: reduce_tree,
    Family.GRAPH: reduce_graph,
}

_STEP_CLASSES = {
    Family.SORTING: SortStep,
    Family.PATHFINDING: PathStep,
    Family.TREE: TreeStep,
    Family.GRAPH: GraphStep,
}


def reduce(snapshot, step):
    """Apply one step to a snapshot of the same family."""
    family = getattr(snapshot, "family", None)
    if family not in _REDUCERS:
        raise ReducerContractError(f"Not a snapshot: {type(snapshot).__name__}")
    if not isinstance(step, _STEP_CLASSES[family]):
        raise ReducerContractError(
            f"{type(step).__name__} cannot be applied to a {family.value} snapshot"
        )
    return _REDUCERS[family](snapshot, step)


def replay(initial, steps: Sequence, index: int):
    """Fold ``steps[0..index]`` over ``initial``; index -1 is the initial snapshot."""
    if index >= len(steps):
        raise ReducerContractError(f"Index {index} beyond {len(steps)} steps")
    snapshot = initial
    for step in steps[: index + 1]:
        snapshot = reduce(snapshot, step)
    return snapshot
