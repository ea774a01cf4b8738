"""
Tests for the tree operation producers (BST, AVL, splay and max-heap).

Run tests:
    pytest tests/test_trees.py -v
"""

import pytest

from engine import AlgorithmRequest, InvalidParameters, create_run, replay
from engine.producers.tree import build_tree
from engine.steps import TreeStepType

BALANCED_KEYS = [50, 30, 70, 20, 40, 60, 80]


def _run(algorithm_id, **params):
    return create_run(AlgorithmRequest.create("tree", algorithm_id, params))


def _depth(tree, node_id):
    if node_id is None:
        return 0
    node = tree.node(node_id)
    return 1 + max(_depth(tree, node.left), _depth(tree, node.right))


def _assert_avl(tree):
    for node in tree.nodes.values():
        assert abs(_depth(tree, node.left) - _depth(tree, node.right)) <= 1
        assert node.height == _depth(tree, node.id)


def _assert_bst(tree):
    keys = [tree.node(i).key for i in tree.inorder()]
    assert keys == sorted(keys)


def _assert_max_heap(tree):
    for node in tree.nodes.values():
        for child in (node.left, node.right):
            if child is not None:
                assert tree.node(child).key < node.key


class TestBinarySearchTree:
    def test_insert_walks_then_inserts(self):
        run = _run("insert", structure="bst", keys=BALANCED_KEYS, value=65)
        kinds = [s.type for s in run.steps]
        assert kinds == [TreeStepType.NODE_VISIT] * 3 + [TreeStepType.INSERT, TreeStepType.COMPLETE]
        insert = run.steps[3]
        assert insert.position == "right"
        assert run.final_snapshot().tree.node(insert.parent_id).key == 60

    def test_search_found(self):
        final = _run("search", structure="bst", keys=BALANCED_KEYS, value=40).final_snapshot()
        assert final.outcome == "found"

    def test_found_highlights_the_path_from_the_root(self):
        run = _run("search", structure="bst", keys=BALANCED_KEYS, value=40)
        found = next(i for i, s in enumerate(run.steps) if s.type == TreeStepType.FOUND)
        snapshot = replay(run.initial, run.steps, found)
        assert [snapshot.tree.node(i).key for i in snapshot.highlighted] == [50, 30, 40]

    def test_search_missing(self):
        run = _run("search", structure="bst", keys=BALANCED_KEYS, value=45)
        assert run.steps[-2].type == TreeStepType.NOT_FOUND
        assert run.steps[-1].type == TreeStepType.COMPLETE
        assert run.final_snapshot().outcome == "not-found"

    def test_delete_with_two_children_uses_successor(self):
        run = _run("delete", structure="bst", keys=BALANCED_KEYS, value=50)
        delete = next(s for s in run.steps if s.type == TreeStepType.DELETE)
        assert delete.strategy == "two-children"
        tree = run.final_snapshot().tree
        assert tree.node(tree.root_id).key == 60
        assert [tree.node(i).key for i in tree.inorder()] == [20, 30, 40, 60, 70, 80]

    def test_delete_leaf(self):
        run = _run("delete", structure="bst", keys=BALANCED_KEYS, value=20)
        delete = next(s for s in run.steps if s.type == TreeStepType.DELETE)
        assert delete.strategy == "leaf"
        assert 20 not in run.final_snapshot().tree.keys()

    @pytest.mark.parametrize("algorithm_id", ["search", "delete"])
    def test_empty_tree_is_a_single_not_found(self, algorithm_id):
        run = _run(algorithm_id, structure="bst", keys=[], value=5)
        assert len(run) == 1
        assert run.steps[0].type == TreeStepType.NOT_FOUND

    def test_insert_many_values_in_one_run(self):
        final = _run("insert", structure="bst", keys=[], values=[8, 3, 10, 1]).final_snapshot()
        assert final.tree.keys() == [8, 3, 10, 1]
        _assert_bst(final.tree)


class TestTraversals:
    @pytest.mark.parametrize(
        "algorithm_id,expected",
        [
            ("inorder", [20, 30, 40, 50, 60, 70, 80]),
            ("preorder", [50, 30, 20, 40, 70, 60, 80]),
            ("postorder", [20, 40, 30, 60, 80, 70, 50]),
            ("level-order", [50, 30, 70, 20, 40, 60, 80]),
        ],
    )
    def test_orders(self, algorithm_id, expected):
        run = _run(algorithm_id, structure="bst", keys=BALANCED_KEYS)
        assert list(run.steps[-1].order) == expected
        assert list(run.final_snapshot().output) == expected
        visits = [s for s in run.steps if s.type == TreeStepType.NODE_VISIT]
        assert [s.order_index for s in visits] == list(range(7))

    def test_traversal_of_empty_tree(self):
        run = _run("inorder", structure="bst", keys=[])
        assert [s.type for s in run.steps] == [TreeStepType.COMPLETE]


class TestAvl:
    def test_right_right_case_rotates_once(self):
        run = _run("insert", structure="avl", keys=[], values=[1, 2, 3])
        rotations = [s for s in run.steps if s.type == TreeStepType.ROTATE]
        assert len(rotations) == 1
        rotate = rotations[0]
        assert (rotate.rotation, rotate.pivot_id, rotate.new_root_id, rotate.case) == ("left", 0, 1, "RR")
        assert run.final_snapshot().tree.keys() == [2, 1, 3]

    def test_left_right_case_rotates_twice(self):
        run = _run("insert", structure="avl", keys=[], values=[3, 1, 2])
        rotations = [s for s in run.steps if s.type == TreeStepType.ROTATE]
        assert [r.case for r in rotations] == ["LR", "LR"]
        assert run.final_snapshot().tree.keys() == [2, 1, 3]

    def test_ascending_inserts_stay_balanced(self):
        final = _run("insert", structure="avl", keys=[], values=list(range(1, 16))).final_snapshot()
        _assert_avl(final.tree)
        _assert_bst(final.tree)
        assert final.tree.depth() == 4

    @pytest.mark.parametrize("value", [1, 4, 8, 12])
    def test_delete_stays_balanced(self, value):
        final = _run("delete", structure="avl", keys=list(range(1, 13)), value=value).final_snapshot()
        _assert_avl(final.tree)
        _assert_bst(final.tree)
        assert value not in final.tree.keys()

    def test_rebalance_precedes_rotation(self):
        steps = _run("insert", structure="avl", keys=[], values=[1, 2, 3]).steps
        kinds = [s.type for s in steps]
        rebalance = kinds.index(TreeStepType.REBALANCE)
        assert kinds[rebalance + 1] == TreeStepType.ROTATE
        assert steps[rebalance].balance_factor == -2


class TestSplay:
    def test_search_moves_found_node_to_root(self):
        final = _run("search", structure="splay", keys=[50, 30, 70, 20, 40], value=20).final_snapshot()
        assert final.tree.node(final.tree.root_id).key == 20
        _assert_bst(final.tree)

    def test_insert_moves_new_node_to_root(self):
        tree = build_tree("splay", [10, 20, 30, 5])
        assert tree.node(tree.root_id).key == 5
        _assert_bst(tree)


class TestHeap:
    def test_build_keeps_heap_property(self):
        tree = build_tree("heap", [5, 9, 3, 7, 1, 8])
        assert tree.node(tree.root_id).key == 9
        _assert_max_heap(tree)

    def test_extract_max(self):
        run = _run("extract-max", structure="heap", keys=[5, 9, 3, 7])
        final = run.final_snapshot()
        assert run.steps[0].type == TreeStepType.EXTRACT
        assert final.extracted == 9
        assert len(final.tree) == 3
        assert final.tree.node(final.tree.root_id).key == 7
        _assert_max_heap(final.tree)

    def test_extract_max_of_empty_heap(self):
        run = _run("extract-max", structure="heap", keys=[])
        assert [s.type for s in run.steps] == [TreeStepType.NOT_FOUND]

    def test_search_scans_level_order(self):
        run = _run("search", structure="heap", keys=[5, 9, 3, 7], value=3)
        assert run.final_snapshot().outcome == "found"


class TestInvert:
    def test_visits_on_the_way_down_and_swaps_on_the_way_up(self):
        run = _run("invert", structure="bst", keys=BALANCED_KEYS)
        visits = [s.key for s in run.steps if s.type == TreeStepType.NODE_VISIT]
        swaps = [s.key for s in run.steps if s.type == TreeStepType.INVERT]
        assert visits == [50, 30, 20, 40, 70, 60, 80]
        assert swaps == [20, 40, 30, 60, 80, 70, 50]
        assert run.steps[-1].type == TreeStepType.COMPLETE

    def test_result_is_the_mirror_image(self):
        tree = _run("invert", structure="avl", keys=BALANCED_KEYS).final_snapshot().tree
        assert [tree.node(i).key for i in tree.inorder()] == [80, 70, 60, 50, 40, 30, 20]
        assert tree.keys() == [50, 70, 30, 80, 60, 40, 20]

    def test_empty_tree(self):
        run = _run("invert", structure="bst", keys=[])
        assert [s.type for s in run.steps] == [TreeStepType.COMPLETE]


class TestHeapify:
    def test_keys_start_in_level_order(self):
        run = _run("heapify", structure="heap", keys=[5, 9, 3, 7, 1, 8])
        assert run.initial.tree.keys() == [5, 9, 3, 7, 1, 8]

    def test_sifts_each_non_leaf_from_the_last(self):
        run = _run("heapify", structure="heap", keys=[5, 9, 3, 7, 1, 8])
        marks = [s for s in run.steps if s.type == TreeStepType.HEAPIFY_NODE]
        assert [s.key for s in marks] == [3, 9, 5]
        assert [s.order_index for s in marks] == [0, 1, 2]
        assert {s.total for s in marks} == {3}
        final = run.final_snapshot()
        assert final.tree.keys() == [9, 7, 8, 5, 1, 3]
        _assert_max_heap(final.tree)

    @pytest.mark.parametrize("keys", [[], [4]])
    def test_nothing_to_sift(self, keys):
        run = _run("heapify", structure="heap", keys=keys)
        assert [s.type for s in run.steps] == [TreeStepType.COMPLETE]

    def test_ascending_keys_become_a_heap(self):
        final = _run("heapify", structure="heap", keys=list(range(1, 16))).final_snapshot()
        assert final.tree.node(final.tree.root_id).key == 15
        _assert_max_heap(final.tree)


class TestTreeOperationErrors:
    def test_heap_delete_is_unsupported(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("delete", structure="heap", keys=[5, 9], value=5)
        assert exc_info.value.reason == "unsupported-operation"

    def test_extract_max_needs_heap(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("extract-max", structure="bst", keys=[5, 9])
        assert exc_info.value.reason == "unsupported-operation"

    def test_duplicate_insert(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("insert", structure="bst", keys=[5, 9], value=9)
        assert exc_info.value.reason == "duplicate-key"

    def test_unknown_structure(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("inorder", structure="trie", keys=[5])
        assert exc_info.value.reason == "invalid-value"

    def test_heapify_needs_heap(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("heapify", structure="bst", keys=[5, 9])
        assert exc_info.value.reason == "unsupported-operation"

    def test_heap_invert_is_unsupported(self):
        with pytest.raises(InvalidParameters) as exc_info:
            _run("invert", structure="heap", keys=[5, 9, 3])
        assert exc_info.value.reason == "unsupported-operation"
