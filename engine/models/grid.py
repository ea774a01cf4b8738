"""
Weighted grid graph used by the pathfinding producers.

The grid is immutable: edits return a new Grid. Moving into a cell costs that
cell's weight (1 unless set), so weights must be >= 1 for the distance
heuristics to stay admissible.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

Coord = Tuple[int, int]

# Up, right, down, left (clockwise from top)
DIRECTIONS: Tuple[Coord, ...] = ((-1, 0), (0, 1), (1, 0), (0, -1))


class CellType(str, Enum):
    EMPTY = "empty"
    WALL = "wall"
    START = "start"
    END = "end"


@dataclass(frozen=True)
class Grid:
    """Fixed-size 2-D grid with walls, one start and one end."""

    rows: int
    cols: int
    start: Coord
    end: Coord
    walls: FrozenSet[Coord] = frozenset()
    weights: Mapping[Coord, float] = field(default_factory=lambda: MappingProxyType({}))

    def in_bounds(self, coord: Coord) -> bool:
        r, c = coord
        return 0 <= r < self.rows and 0 <= c < self.cols

    def is_wall(self, coord: Coord) -> bool:
        return coord in self.walls

    def weight(self, coord: Coord) -> float:
        return self.weights.get(coord, 1)

    def cell_type(self, coord: Coord) -> CellType:
        if coord == self.start:
            return CellType.START
        if coord == self.end:
            return CellType.END
        if coord in self.walls:
            return CellType.WALL
        return CellType.EMPTY

    def neighbors(self, coord: Coord) -> List[Coord]:
        """Open neighbors in up, right, down, left order."""
        r, c = coord
        result = []
        for dr, dc in DIRECTIONS:
            candidate = (r + dr, c + dc)
            if self.in_bounds(candidate) and candidate not in self.walls:
                result.append(candidate)
        return result

    def path_cost(self, path: Iterable[Coord]) -> float:
        """Cost of a path given in either direction; the start cell is free."""
        return sum(self.weight(coord) for coord in path if coord != self.start)

    # ------------------------------------------------------------------
    # Edits (return new grids)
    # ------------------------------------------------------------------

    def with_wall_toggled(self, coord: Coord) -> "Grid":
        walls = set(self.walls)
        if coord in walls:
            walls.remove(coord)
        else:
            walls.add(coord)
        return Grid(self.rows, self.cols, self.start, self.end, frozenset(walls), self.weights)

    def with_walls(self, walls: Iterable[Coord]) -> "Grid":
        walls = frozenset(walls) - {self.start, self.end}
        return Grid(self.rows, self.cols, self.start, self.end, walls, self.weights)

    def with_endpoints(self, start: Optional[Coord] = None, end: Optional[Coord] = None) -> "Grid":
        start = start if start is not None else self.start
        end = end if end is not None else self.end
        walls = self.walls - {start, end}
        return Grid(self.rows, self.cols, start, end, walls, self.weights)

    def with_weight(self, coord: Coord, weight: float) -> "Grid":
        weights: Dict[Coord, float] = dict(self.weights)
        if weight == 1:
            weights.pop(coord, None)
        else:
            weights[coord] = weight
        return Grid(self.rows, self.cols, self.start, self.end, self.walls, MappingProxyType(weights))

    def to_dict(self) -> dict:
        return {
            "rows": self.rows,
            "cols": self.cols,
            "start": list(self.start),
            "end": list(self.end),
            "walls": [list(w) for w in sorted(self.walls)],
            "weights": [[r, c, w] for (r, c), w in sorted(self.weights.items())],
        }


# ============= Heuristics =============


def manhattan(a: Coord, b: Coord) -> float:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def euclidean(a: Coord, b: Coord) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def chebyshev(a: Coord, b: Coord) -> float:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


HEURISTICS: Dict[str, Callable[[Coord, Coord], float]] = {
    "manhattan": manhattan,
    "euclidean": euclidean,
    "chebyshev": chebyshev,
}
