"""
Step producers, one generator per algorithm, keyed by algorithm id.
"""

from ..steps import Family
from .graph import GRAPH_PRODUCERS
from .pathfinding import PATHFINDING_PRODUCERS
from .sorting import SORTING_PRODUCERS
from .tree import TREE_PRODUCERS

PRODUCERS = {
    Family.SORTING: SORTING_PRODUCERS,
    Family.PATHFINDING: PATHFINDING_PRODUCERS,
    Family.TREE: TREE_PRODUCERS,
    Family.GRAPH: GRAPH_PRODUCERS,
}

__all__ = [
    "GRAPH_PRODUCERS",
    "PATHFINDING_PRODUCERS",
    "PRODUCERS",
    "SORTING_PRODUCERS",
    "TREE_PRODUCERS",
]
