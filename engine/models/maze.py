"""
Seeded wall generators for pathfinding grids.

All generators are pure functions of (grid, seed, options) and return a new
Grid. Start and end cells are never walls.
"""

from collections import deque
from typing import Dict, List, Optional, Set

import numpy as np

from .grid import DIRECTIONS, Coord, Grid


def random_noise(grid: Grid, seed: int = 0, density: float = 0.3) -> Grid:
    """Independent coin flip per cell."""
    rng = np.random.default_rng(seed)
    mask = rng.random((grid.rows, grid.cols)) < density
    walls = {(int(r), int(c)) for r, c in zip(*np.nonzero(mask))}
    return grid.with_walls(walls)


def recursive_backtracker(grid: Grid, seed: int = 0) -> Grid:
    """Depth-first carving on the even-coordinate lattice.

    Every cell starts as a wall; passages are carved two cells at a time so
    walls stay one cell thick. Start and end are opened and joined to the
    nearest carved cell.
    """
    rng = np.random.default_rng(seed)
    open_cells: Set[Coord] = set()
    origin = (0, 0)
    open_cells.add(origin)
    stack: List[Coord] = [origin]

    while stack:
        r, c = stack[-1]
        candidates = []
        for dr, dc in ((-2, 0), (0, 2), (2, 0), (0, -2)):
            nr, nc = r + dr, c + dc
            if 0 <= nr < grid.rows and 0 <= nc < grid.cols and (nr, nc) not in open_cells:
                candidates.append((nr, nc))
        if not candidates:
            stack.pop()
            continue
        nr, nc = candidates[int(rng.integers(len(candidates)))]
        open_cells.add(((r + nr) // 2, (c + nc) // 2))
        open_cells.add((nr, nc))
        stack.append((nr, nc))

    for endpoint in (grid.start, grid.end):
        _connect(open_cells, endpoint)

    walls = {
        (r, c)
        for r in range(grid.rows)
        for c in range(grid.cols)
        if (r, c) not in open_cells
    }
    return grid.with_walls(_carve_path(grid, walls))


def _connect(open_cells: Set[Coord], cell: Coord) -> None:
    """Open a straight corridor from ``cell`` to the even lattice."""
    r, c = cell
    open_cells.add(cell)
    if r % 2:
        open_cells.add((r - 1, c))
        r -= 1
    if c % 2:
        open_cells.add((r, c - 1))


def recursive_division(grid: Grid, seed: int = 0) -> Grid:
    """Split chambers with walls that have a single gap, alternating by shape.

    Gaps prefer the rows and columns the start and end sit on, and a final
    carve opens a corridor if the chambers still separate them.
    """
    rng = np.random.default_rng(seed)
    walls: Set[Coord] = set()
    entry_rows = [grid.start[0], grid.end[0]]
    entry_cols = [grid.start[1], grid.end[1]]
    _divide(rng, walls, 0, 0, grid.rows, grid.cols, entry_rows, entry_cols)
    return grid.with_walls(_carve_path(grid, walls))


def _pick_gap(rng: np.random.Generator, entries: List[int], lo: int, hi: int) -> int:
    """Gap position on [lo, hi): an entry line when one is in range, else an even offset."""
    in_range = sorted({e for e in entries if lo <= e < hi})
    if in_range:
        return in_range[int(rng.integers(len(in_range)))]
    candidates = list(range(lo, hi, 2))
    return candidates[int(rng.integers(len(candidates)))]


def _divide(
    rng: np.random.Generator,
    walls: Set[Coord],
    top: int,
    left: int,
    height: int,
    width: int,
    entry_rows: List[int],
    entry_cols: List[int],
) -> None:
    if height < 3 or width < 3:
        return

    horizontal = height > width if height != width else bool(rng.integers(2))

    if horizontal:
        # Walls on odd rows, gaps on even columns
        wall_rows = [r for r in range(top + 1, top + height - 1, 2) if r not in entry_rows]
        if not wall_rows:
            return
        row = wall_rows[int(rng.integers(len(wall_rows)))]
        gap = _pick_gap(rng, entry_cols, left, left + width)
        for c in range(left, left + width):
            if c != gap:
                walls.add((row, c))
        cols = entry_cols + [gap]
        _divide(rng, walls, top, left, row - top, width, entry_rows + [row - 1], cols)
        _divide(rng, walls, row + 1, left, top + height - row - 1, width, entry_rows + [row + 1], cols)
    else:
        wall_cols = [c for c in range(left + 1, left + width - 1, 2) if c not in entry_cols]
        if not wall_cols:
            return
        col = wall_cols[int(rng.integers(len(wall_cols)))]
        gap = _pick_gap(rng, entry_rows, top, top + height)
        for r in range(top, top + height):
            if r != gap:
                walls.add((r, col))
        rows = entry_rows + [gap]
        _divide(rng, walls, top, left, height, col - left, rows, entry_cols + [col - 1])
        _divide(rng, walls, top, col + 1, height, left + width - col - 1, rows, entry_cols + [col + 1])


def _carve_path(grid: Grid, walls: Set[Coord]) -> Set[Coord]:
    """Remove the walls on one route from start to end if none is open.

    Searches from the end through walls and open cells alike until it meets
    a cell reachable from the start, then clears the walls along that route.
    """
    walls = set(walls) - {grid.start, grid.end}
    reachable = _flood(grid, walls, grid.start)
    if grid.end in reachable:
        return walls

    parents: Dict[Coord, Optional[Coord]] = {grid.end: None}
    queue = deque([grid.end])
    meet: Optional[Coord] = None
    while queue:
        cell = queue.popleft()
        if cell in reachable:
            meet = cell
            break
        for dr, dc in DIRECTIONS:
            nxt = (cell[0] + dr, cell[1] + dc)
            if grid.in_bounds(nxt) and nxt not in parents:
                parents[nxt] = cell
                queue.append(nxt)

    while meet is not None:
        walls.discard(meet)
        meet = parents[meet]
    return walls


def _flood(grid: Grid, walls: Set[Coord], origin: Coord) -> Set[Coord]:
    seen = {origin}
    queue = deque([origin])
    while queue:
        r, c = queue.popleft()
        for dr, dc in DIRECTIONS:
            nxt = (r + dr, c + dc)
            if grid.in_bounds(nxt) and nxt not in walls and nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


MAZE_GENERATORS: Dict[str, object] = {
    "random-noise": random_noise,
    "recursive-backtracker": recursive_backtracker,
    "recursive-division": recursive_division,
}
