"""
Tests for parameter validation and the algorithm registry.

Run tests:
    pytest tests/test_validation.py -v
"""

import pytest

from engine import CATALOG, AlgorithmRequest, Family, InvalidParameters, create_run
from engine.producers.tree import build_tree
from engine.registry import catalog_dict, get_algorithm, parse_family, parse_structure
from engine.validation import (
    Limits,
    check_heuristic,
    generate_array,
    generate_balanced_keys,
    parse_array,
    parse_coord,
    parse_graph,
    parse_grid,
    parse_tree_keys,
)


def _reason(func, *args):
    with pytest.raises(InvalidParameters) as exc_info:
        func(*args)
    return exc_info.value.reason


class TestArrays:
    def test_explicit_values(self):
        assert parse_array({"values": [3, 1, 2]}) == (3, 1, 2)

    @pytest.mark.parametrize(
        "params,reason",
        [
            ({}, "missing-field"),
            ({"values": "3,1,2"}, "invalid-type"),
            ({"values": [1, True]}, "invalid-type"),
            ({"values": [1, 2.5]}, "invalid-type"),
            ({"values": list(range(51))}, "too-large"),
            ({"values": [1000]}, "out-of-bounds"),
            ({"size": -1}, "out-of-bounds"),
            ({"size": 51}, "too-large"),
            ({"size": 5, "ordering": "zigzag"}, "invalid-value"),
        ],
    )
    def test_rejections(self, params, reason):
        assert _reason(parse_array, params) == reason

    def test_limits_are_configurable(self):
        assert _reason(parse_array, {"values": [1, 2, 3]}, Limits(max_array_size=2)) == "too-large"

    def test_generated_arrays_are_reproducible(self):
        assert generate_array(20, "random", 5) == generate_array(20, "random", 5)
        assert len(generate_array(20, "few-unique", 1)) == 20

    @pytest.mark.parametrize("ordering,check", [("sorted", sorted), ("reversed", lambda v: sorted(v, reverse=True))])
    def test_orderings(self, ordering, check):
        values = generate_array(15, ordering, 9)
        assert values == check(values)


class TestGrids:
    def test_valid_grid(self, open_grid_params):
        params = dict(open_grid_params, walls=[[1, 1]], weights=[[0, 1, 3]])
        grid = parse_grid(params)
        assert grid.walls == frozenset({(1, 1)})
        assert grid.weight((0, 1)) == 3

    @pytest.mark.parametrize(
        "changes,reason",
        [
            ({"rows": 0}, "out-of-bounds"),
            ({"cols": 51}, "out-of-bounds"),
            ({"rows": None}, "missing-field"),
            ({"rows": "3"}, "invalid-type"),
            ({"start": [3, 0]}, "out-of-bounds"),
            ({"start": [0]}, "invalid-type"),
            ({"end": [0, 0]}, "start-equals-end"),
            ({"walls": [[0, 0]]}, "endpoint-is-wall"),
            ({"walls": [[5, 5]]}, "out-of-bounds"),
            ({"weights": [[1, 1, 0.5]]}, "invalid-weight"),
            ({"weights": [[1, 1]]}, "invalid-type"),
        ],
    )
    def test_rejections(self, open_grid_params, changes, reason):
        assert _reason(parse_grid, dict(open_grid_params, **changes)) == reason

    def test_unknown_heuristic(self):
        assert _reason(check_heuristic, {"heuristic": "taxicab"}) == "invalid-value"
        assert check_heuristic({}) == "manhattan"

    def test_parse_coord(self):
        assert parse_coord([2, 3], "cell") == (2, 3)
        assert _reason(parse_coord, "2,3", "cell") == "invalid-type"


class TestTreesAndGraphs:
    @pytest.mark.parametrize(
        "keys,reason",
        [
            ([5, 5], "duplicate-key"),
            ([0], "out-of-bounds"),
            ([100], "out-of-bounds"),
            (list(range(1, 33)), "tree-full"),
            ("1,2", "invalid-type"),
        ],
    )
    def test_tree_key_rejections(self, keys, reason):
        assert _reason(parse_tree_keys, {"keys": keys}) == reason

    @pytest.mark.parametrize("count,depth", [(0, 0), (1, 1), (7, 3), (15, 4), (31, 5)])
    def test_balanced_keys_build_a_minimal_height_bst(self, count, depth):
        keys = generate_balanced_keys(count, seed=4)
        assert len(set(keys)) == count
        assert all(1 <= k <= 99 for k in keys)
        assert build_tree("bst", keys).depth() == depth

    def test_balanced_keys_are_seeded(self):
        assert generate_balanced_keys(9, seed=2) == generate_balanced_keys(9, seed=2)
        keys = generate_balanced_keys(9, seed=2)
        assert keys[0] == sorted(keys)[4]

    def test_balanced_keys_respect_limits(self):
        assert _reason(generate_balanced_keys, 32) == "tree-full"
        assert _reason(generate_balanced_keys, -1) == "out-of-bounds"
        assert _reason(generate_balanced_keys, 6, 0, Limits(min_tree_key=1, max_tree_key=5)) == "too-large"

    def test_graph_parsing_assigns_edge_ids(self):
        graph = parse_graph({"vertices": ["A", "B"], "edges": [{"source": "A", "target": "B", "weight": 2}]})
        assert graph.edges[0].id == "e0"
        assert not graph.directed

    @pytest.mark.parametrize(
        "params,reason",
        [
            ({}, "missing-field"),
            ({"vertices": ["A", "A"]}, "duplicate-vertex"),
            ({"vertices": ["A"], "edges": [{"source": "A", "target": "B"}]}, "unknown-vertex"),
            (
                {
                    "vertices": ["A", "B"],
                    "edges": [{"id": "x", "source": "A", "target": "B"}, {"id": "x", "source": "B", "target": "A"}],
                },
                "duplicate-edge",
            ),
            ({"vertices": ["A", "B"], "edges": ["A-B"]}, "invalid-type"),
        ],
    )
    def test_graph_rejections(self, params, reason):
        assert _reason(parse_graph, params) == reason


class TestRegistry:
    def test_catalog_covers_every_family(self):
        assert set(CATALOG) == set(Family)
        assert set(catalog_dict()) == {"sorting", "pathfinding", "tree", "graph"}
        assert "bubble" in CATALOG[Family.SORTING]

    def test_catalog_for_one_family(self):
        assert list(catalog_dict(Family.GRAPH)) == ["graph"]

    def test_unknown_family(self):
        assert _reason(parse_family, "geometry") == "unknown-family"

    def test_unknown_algorithm(self):
        assert _reason(get_algorithm, Family.SORTING, "bogo") == "unknown-algorithm"

    def test_structure_defaults_to_bst(self):
        assert parse_structure({}) == "bst"
        assert _reason(parse_structure, {"structure": "b-tree"}) == "invalid-value"

    def test_request_round_trip(self):
        request = AlgorithmRequest.create("pathfinding", "bfs", {"rows": 2})
        assert request.family == Family.PATHFINDING
        assert request.to_dict() == {"family": "pathfinding", "algorithm_id": "bfs", "params": {"rows": 2}}

    def test_step_cap(self):
        request = AlgorithmRequest.create("sorting", "bubble", {"values": [5, 4, 3, 2, 1]})
        with pytest.raises(InvalidParameters) as exc_info:
            create_run(request, Limits(max_steps_per_run=5))
        assert exc_info.value.reason == "too-many-steps"


# ============================================================================
# Determinism
# ============================================================================

_GRAPH_EDGES = [
    {"source": "A", "target": "B", "weight": 4},
    {"source": "A", "target": "C", "weight": 1},
    {"source": "B", "target": "C", "weight": 2},
    {"source": "B", "target": "D", "weight": 5},
    {"source": "C", "target": "D", "weight": 8},
]


def _params_for(family, algorithm_id):
    if family == Family.SORTING:
        return {"size": 12, "ordering": "random", "seed": 3}
    if family == Family.PATHFINDING:
        return {"rows": 5, "cols": 6, "start": [0, 0], "end": [4, 5], "walls": [[1, 1], [2, 3]], "seed": 11}
    if family == Family.TREE:
        structure = "heap" if algorithm_id in ("extract-max", "heapify") else "avl"
        return {"structure": structure, "keys": [50, 30, 70, 20, 40, 60, 80], "value": 45}
    return {
        "vertices": ["A", "B", "C", "D"],
        "edges": _GRAPH_EDGES,
        "directed": algorithm_id == "kahn",
    }


class TestDeterminism:
    """Equal requests always yield equal runs."""

    @pytest.mark.parametrize(
        "family,algorithm_id",
        [(family, algorithm_id) for family in CATALOG for algorithm_id in CATALOG[family]],
    )
    def test_equal_requests_produce_equal_runs(self, family, algorithm_id):
        params = _params_for(family, algorithm_id)
        first = create_run(AlgorithmRequest.create(family.value, algorithm_id, dict(params)))
        second = create_run(AlgorithmRequest.create(family.value, algorithm_id, dict(params)))
        assert first.initial == second.initial
        assert first.steps == second.steps
        assert len(first) > 0
