"""
Grid search step producers.

Every producer takes a Grid and yields PathSteps: ``frontier-push`` when a
cell enters the frontier, ``visit`` when it is popped or settled, ``relax``
when a strictly shorter tentative distance is found, and on success a single
terminal ``path-reconstruct`` carrying the path from end to start. When the
end is unreachable the sequence just ends.

Moving into a cell costs that cell's weight.
"""

import heapq
from collections import deque
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from ..models.grid import HEURISTICS, Coord, Grid
from ..steps import PathStep, PathStepType

DEFAULT_HEURISTIC = "manhattan"
DEFAULT_RANDOM_WALK_STEPS = 1000


def _push(coord: Coord, distance=None, parent=None, direction=None) -> PathStep:
    return PathStep(PathStepType.FRONTIER_PUSH, coord, distance, parent, direction)


def _visit(coord: Coord, distance=None, direction=None) -> PathStep:
    return PathStep(PathStepType.VISIT, coord, distance, direction=direction)


def _relax(coord: Coord, distance, parent: Coord, direction=None) -> PathStep:
    return PathStep(PathStepType.RELAX, coord, distance, parent, direction)


def _chain(parents: Dict[Coord, Coord], cell: Coord, stop: Coord) -> List[Coord]:
    """Follow parent links from ``cell`` until ``stop`` (both included)."""
    chain = [cell]
    while cell != stop:
        cell = parents[cell]
        chain.append(cell)
    return chain


def _reconstruct(grid: Grid, parents: Dict[Coord, Coord]) -> PathStep:
    path = tuple(_chain(parents, grid.end, grid.start))
    return PathStep(PathStepType.PATH_RECONSTRUCT, path=path, cost=grid.path_cost(path))


# ============= Uninformed searches =============


def bfs(grid: Grid, **params) -> Iterator[PathStep]:
    dist = {grid.start: 0}
    parents: Dict[Coord, Coord] = {}
    queue = deque([grid.start])
    yield _push(grid.start, 0)

    while queue:
        cell = queue.popleft()
        yield _visit(cell, dist[cell])
        if cell == grid.end:
            yield _reconstruct(grid, parents)
            return
        for nb in grid.neighbors(cell):
            if nb not in dist:
                dist[nb] = dist[cell] + 1
                parents[nb] = cell
                queue.append(nb)
                yield _push(nb, dist[nb], cell)


def dfs(grid: Grid, **params) -> Iterator[PathStep]:
    """Iterative DFS; neighbors are stacked in reverse so "up" is tried first."""
    depth = {grid.start: 0}
    parents: Dict[Coord, Coord] = {}
    visited = set()
    stack: List[Tuple[Coord, Optional[Coord]]] = [(grid.start, None)]
    yield _push(grid.start, 0)

    while stack:
        cell, parent = stack.pop()
        if cell in visited:
            continue
        visited.add(cell)
        if parent is not None:
            parents[cell] = parent
            depth[cell] = depth[parent] + 1
        yield _visit(cell, depth[cell])
        if cell == grid.end:
            yield _reconstruct(grid, parents)
            return
        for nb in reversed(grid.neighbors(cell)):
            if nb not in visited:
                stack.append((nb, cell))
                yield _push(nb, depth[cell] + 1, cell)


def flood_fill(grid: Grid, **params) -> Iterator[PathStep]:
    """Breadth-first fill of the whole reachable region, then the path."""
    dist = {grid.start: 0}
    parents: Dict[Coord, Coord] = {}
    queue = deque([grid.start])
    yield _push(grid.start, 0)

    while queue:
        cell = queue.popleft()
        yield _visit(cell, dist[cell])
        for nb in grid.neighbors(cell):
            if nb not in dist:
                dist[nb] = dist[cell] + 1
                parents[nb] = cell
                queue.append(nb)
                yield _push(nb, dist[nb], cell)

    if grid.end in dist:
        yield _reconstruct(grid, parents)


def random_walk(grid: Grid, seed: int = 0, max_steps: int = DEFAULT_RANDOM_WALK_STEPS, **params) -> Iterator[PathStep]:
    """Seeded random walk. The reported path is the first-visit parent chain."""
    rng = np.random.default_rng(seed)
    parents: Dict[Coord, Coord] = {}
    seen = {grid.start}
    cell = grid.start
    yield _push(cell)
    yield _visit(cell)

    for _ in range(max_steps):
        options = grid.neighbors(cell)
        if not options:
            return
        nxt = options[int(rng.integers(len(options)))]
        if nxt not in seen:
            seen.add(nxt)
            parents[nxt] = cell
            yield _push(nxt, parent=cell)
        else:
            yield _push(nxt)
        yield _visit(nxt)
        cell = nxt
        if cell == grid.end:
            yield _reconstruct(grid, parents)
            return


# ============= Cost-ordered searches =============


def _best_first(grid: Grid, heuristic_name: str, use_cost: bool, use_heuristic: bool) -> Iterator[PathStep]:
    """Shared loop of Dijkstra (cost), A* (cost + h) and greedy (h).

    Heap entries are (priority, push order, cell) so ties pop in push order.
    Greedy never re-opens a cell, so it emits no ``relax``.
    """
    h = HEURISTICS[heuristic_name]
    end = grid.end

    def priority(cell: Coord, g: float) -> float:
        value = g if use_cost else 0
        if use_heuristic:
            value += h(cell, end)
        return value

    dist: Dict[Coord, float] = {grid.start: 0}
    parents: Dict[Coord, Coord] = {}
    settled = set()
    counter = 0
    heap = [(priority(grid.start, 0), counter, grid.start)]
    yield _push(grid.start, 0)

    while heap:
        _, _, cell = heapq.heappop(heap)
        if cell in settled:
            continue
        settled.add(cell)
        yield _visit(cell, dist[cell])
        if cell == end:
            yield _reconstruct(grid, parents)
            return

        for nb in grid.neighbors(cell):
            if nb in settled:
                continue
            g = dist[cell] + grid.weight(nb)
            if nb not in dist:
                dist[nb] = g
                parents[nb] = cell
                yield _push(nb, g, cell)
            elif use_cost and g < dist[nb]:
                dist[nb] = g
                parents[nb] = cell
                yield _relax(nb, g, cell)
            else:
                continue
            counter += 1
            heapq.heappush(heap, (priority(nb, g), counter, nb))


def dijkstra(grid: Grid, **params) -> Iterator[PathStep]:
    return _best_first(grid, DEFAULT_HEURISTIC, use_cost=True, use_heuristic=False)


def astar(grid: Grid, heuristic: str = DEFAULT_HEURISTIC, **params) -> Iterator[PathStep]:
    return _best_first(grid, heuristic, use_cost=True, use_heuristic=True)


def greedy(grid: Grid, heuristic: str = DEFAULT_HEURISTIC, **params) -> Iterator[PathStep]:
    return _best_first(grid, heuristic, use_cost=False, use_heuristic=True)


class _Frontier:
    """One half of a bidirectional search."""

    def __init__(self, origin: Coord, target: Coord, direction: str, h):
        self.origin = origin
        self.target = target
        self.direction = direction
        self.h = h
        self.dist: Dict[Coord, float] = {origin: 0}
        self.parents: Dict[Coord, Coord] = {}
        self.closed = set()
        self.heap = [(h(origin, target), 0, origin)]

    def prune(self) -> None:
        while self.heap and self.heap[0][2] in self.closed:
            heapq.heappop(self.heap)

    def top(self) -> float:
        return self.heap[0][0]


def bidirectional(grid: Grid, heuristic: str = DEFAULT_HEURISTIC, **params) -> Iterator[PathStep]:
    """Bidirectional A*, alternating one expansion per side.

    The backward half walks edges in reverse, so stepping from ``u`` back to
    ``v`` costs ``weight(u)``. The search stops once either frontier's lowest
    f-score reaches the best meeting cost, which keeps the result optimal for
    consistent heuristics.
    """
    h = HEURISTICS[heuristic]
    forward = _Frontier(grid.start, grid.end, "forward", h)
    backward = _Frontier(grid.end, grid.start, "backward", h)
    counter = 0
    best = float("inf")
    meet: Optional[Coord] = None

    yield _push(grid.start, 0, direction="forward")
    yield _push(grid.end, 0, direction="backward")

    side, other = forward, backward
    while True:
        forward.prune()
        backward.prune()
        if not forward.heap or not backward.heap:
            break
        if forward.top() >= best or backward.top() >= best:
            break

        _, _, cell = heapq.heappop(side.heap)
        side.closed.add(cell)
        yield _visit(cell, side.dist[cell], side.direction)

        for nb in grid.neighbors(cell):
            if nb in side.closed:
                continue
            step_cost = grid.weight(nb) if side is forward else grid.weight(cell)
            g = side.dist[cell] + step_cost
            if nb not in side.dist:
                yield _push(nb, g, cell, side.direction)
            elif g < side.dist[nb]:
                yield _relax(nb, g, cell, side.direction)
            else:
                continue
            side.dist[nb] = g
            side.parents[nb] = cell
            counter += 1
            heapq.heappush(side.heap, (g + h(nb, side.target), counter, nb))
            if nb in other.dist and g + other.dist[nb] < best:
                best = g + other.dist[nb]
                meet = nb

        side, other = other, side

    if meet is not None:
        to_end = _chain(backward.parents, meet, grid.end)
        to_start = _chain(forward.parents, meet, grid.start)
        path = tuple(reversed(to_end)) + tuple(to_start[1:])
        yield PathStep(PathStepType.PATH_RECONSTRUCT, path=path, cost=grid.path_cost(path))


PATHFINDING_PRODUCERS = {
    "bfs": bfs,
    "dfs": dfs,
    "dijkstra": dijkstra,
    "astar": astar,
    "greedy": greedy,
    "bidirectional": bidirectional,
    "flood-fill": flood_fill,
    "random-walk": random_walk,
}
