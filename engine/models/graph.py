"""
Graph and disjoint-set models for the MST and topological-sort producers.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    target: str
    weight: float = 1

    def other(self, vertex: str) -> str:
        return self.target if vertex == self.source else self.source

    def to_dict(self) -> dict:
        return {"id": self.id, "source": self.source, "target": self.target, "weight": self.weight}


@dataclass(frozen=True)
class Graph:
    """Fixed vertex/edge set. Vertex and edge order is the input order."""

    vertices: Tuple[str, ...]
    edges: Tuple[Edge, ...]
    directed: bool = False

    def edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def adjacency(self) -> Dict[str, List[Edge]]:
        """Outgoing edges per vertex; both directions when undirected."""
        adjacency: Dict[str, List[Edge]] = {v: [] for v in self.vertices}
        for edge in self.edges:
            adjacency[edge.source].append(edge)
            if not self.directed and edge.source != edge.target:
                adjacency[edge.target].append(edge)
        return adjacency

    def indegrees(self) -> Dict[str, int]:
        indegrees = {v: 0 for v in self.vertices}
        if self.directed:
            for edge in self.edges:
                indegrees[edge.target] += 1
        return indegrees

    def to_dict(self) -> dict:
        return {
            "vertices": list(self.vertices),
            "edges": [e.to_dict() for e in self.edges],
            "directed": self.directed,
        }


class UnionFind:
    """Disjoint sets with path compression and union by size.

    ``find`` only changes its answer through ``union``. Ties in size keep the
    first argument's root.
    """

    def __init__(self, items):
        self._parent: Dict[str, str] = {item: item for item in items}
        self._size: Dict[str, int] = {item: 1 for item in items}

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> Optional[Tuple[str, str]]:
        """Merge the sets of ``a`` and ``b``.

        Returns:
            (surviving root, absorbed root), or None when already joined
        """
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return None
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return root_a, root_b

    def members(self, root: str) -> List[str]:
        return [item for item in self._parent if self.find(item) == root]

    def components(self) -> Dict[str, str]:
        return {item: self.find(item) for item in self._parent}
