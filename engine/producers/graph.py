"""
Graph step producers: Prim and Kruskal minimum spanning trees, Kahn
topological sort.
"""

import heapq
from collections import deque
from typing import Iterator, List, Optional

from ..models.graph import Edge, Graph, UnionFind
from ..steps import GraphStep, GraphStepType


def _consider(edge: Edge, indegree: Optional[int] = None) -> GraphStep:
    return GraphStep(GraphStepType.EDGE_CONSIDER, edge_id=edge.id, weight=edge.weight, indegree=indegree)


def prim(graph: Graph, start: Optional[str] = None, **params) -> Iterator[GraphStep]:
    """Lazy Prim: frontier edges sit in a heap keyed by (weight, push order).

    An edge is considered when it enters the heap. A popped edge whose far
    end already joined the tree is rejected as a cycle.
    """
    if not graph.vertices:
        yield GraphStep(GraphStepType.COMPLETE, total_weight=0)
        return

    adjacency = graph.adjacency()
    root = start if start is not None else graph.vertices[0]
    in_tree = {root}
    heap: List = []
    counter = 0
    total = 0

    def grow(vertex: str) -> Iterator[GraphStep]:
        nonlocal counter
        yield GraphStep(GraphStepType.NODE_VISIT, vertex=vertex)
        for edge in adjacency[vertex]:
            if edge.other(vertex) in in_tree:
                continue
            counter += 1
            heapq.heappush(heap, (edge.weight, counter, vertex, edge))
            yield _consider(edge)

    yield from grow(root)
    while heap and len(in_tree) < len(graph.vertices):
        weight, _, origin, edge = heapq.heappop(heap)
        target = edge.other(origin)
        if target in in_tree:
            yield GraphStep(GraphStepType.CYCLE_REJECT, edge_id=edge.id, weight=weight)
            continue
        in_tree.add(target)
        total += weight
        yield GraphStep(GraphStepType.EDGE_ACCEPT, edge_id=edge.id, weight=weight)
        yield from grow(target)

    if len(in_tree) < len(graph.vertices):
        yield GraphStep(GraphStepType.DISCONNECTED, total_weight=total)
    else:
        yield GraphStep(GraphStepType.COMPLETE, total_weight=total)


def kruskal(graph: Graph, **params) -> Iterator[GraphStep]:
    """Kruskal over a stable weight sort, so equal weights keep input order."""
    sets = UnionFind(graph.vertices)
    needed = max(len(graph.vertices) - 1, 0)
    accepted = 0
    total = 0

    for edge in sorted(graph.edges, key=lambda e: e.weight):
        if accepted == needed:
            break
        yield _consider(edge)
        root_a, root_b = sets.find(edge.source), sets.find(edge.target)
        if root_a == root_b:
            yield GraphStep(GraphStepType.CYCLE_REJECT, edge_id=edge.id, weight=edge.weight)
            continue
        members = {root_a: sets.members(root_a), root_b: sets.members(root_b)}
        root, absorbed = sets.union(edge.source, edge.target)
        yield GraphStep(
            GraphStepType.UNION,
            edge_id=edge.id,
            root=root,
            absorbed=absorbed,
            members=tuple(members[absorbed]),
        )
        yield GraphStep(GraphStepType.EDGE_ACCEPT, edge_id=edge.id, weight=edge.weight)
        accepted += 1
        total += edge.weight

    if accepted == needed:
        yield GraphStep(GraphStepType.COMPLETE, total_weight=total)
    else:
        yield GraphStep(GraphStepType.DISCONNECTED, total_weight=total)


def kahn(graph: Graph, **params) -> Iterator[GraphStep]:
    """Kahn topological sort over a directed graph.

    Ends with ``complete`` carrying the order, or ``cycle-detected`` listing
    the vertices that never reached in-degree zero.
    """
    indegrees = graph.indegrees()
    adjacency = graph.adjacency()
    queue = deque(v for v in graph.vertices if indegrees[v] == 0)
    order: List[str] = []

    while queue:
        vertex = queue.popleft()
        order.append(vertex)
        yield GraphStep(GraphStepType.NODE_VISIT, vertex=vertex)
        for edge in adjacency[vertex]:
            indegrees[edge.target] -= 1
            yield _consider(edge, indegrees[edge.target])
            if indegrees[edge.target] == 0:
                queue.append(edge.target)

    if len(order) < len(graph.vertices):
        visited = set(order)
        remaining = tuple(v for v in graph.vertices if v not in visited)
        yield GraphStep(GraphStepType.CYCLE_DETECTED, remaining=remaining)
    else:
        yield GraphStep(GraphStepType.COMPLETE, order=tuple(order))


GRAPH_PRODUCERS = {
    "prim": prim,
    "kruskal": kruskal,
    "kahn": kahn,
}
