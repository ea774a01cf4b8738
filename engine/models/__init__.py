"""
Domain state models: grid, binary-tree arena, graph and disjoint sets.
"""

from .graph import Edge, Graph, UnionFind
from .grid import DIRECTIONS, HEURISTICS, CellType, Coord, Grid
from .tree import Tree, TreeNode

__all__ = [
    "CellType",
    "Coord",
    "DIRECTIONS",
    "Edge",
    "Graph",
    "Grid",
    "HEURISTICS",
    "Tree",
    "TreeNode",
    "UnionFind",
]
