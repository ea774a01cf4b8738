"""
Tree operation step producers.

Structures: ``bst``, ``avl``, ``splay`` and ``heap`` (max-heap). Producers
keep their working tree by folding their own steps through the reducer, so
what they read next is exactly what a replaying observer sees.

AVL rebalancing runs bottom-up from the mutation point: every ancestor gets
an ``update-height``; an ancestor whose balance leaves {-1, 0, 1} gets a
``rebalance`` followed by one ``rotate`` (LL/RR) or two (LR/RL). Splay
operations end by rotating the accessed node (or the last node reached on a
miss) to the root, one ``rotate`` per single rotation.
"""

from typing import Generator, Iterable, Iterator, List, Optional

from ..models.tree import Tree
from ..reducers import reduce_tree
from ..snapshots import TreeSnapshot
from ..steps import TreeStep, TreeStepType

STRUCTURES = ("bst", "avl", "splay", "heap")

Steps = Generator[TreeStep, None, Optional[int]]


class _Work:
    """Working copy of the tree, advanced one emitted step at a time."""

    def __init__(self, tree: Tree, structure: str):
        self.snapshot = TreeSnapshot(structure=structure, tree=tree)
        self.structure = structure

    @property
    def tree(self) -> Tree:
        return self.snapshot.tree

    def emit(self, step: TreeStep) -> TreeStep:
        self.snapshot = reduce_tree(self.snapshot, step)
        return step


# ============= BST walks =============


def _walk(work: _Work, key: int) -> Steps:
    """Descend from the root toward ``key``, one node-visit per node.

    Returns the id of the node holding ``key``, or None after visiting the
    last node on the search path.
    """
    tree = work.tree
    current = tree.root_id
    while current is not None:
        node = tree.node(current)
        if key == node.key:
            yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node.id, node.key, direction="equal"))
            return node.id
        direction = "left" if key < node.key else "right"
        yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node.id, node.key, direction=direction))
        current = node.left if direction == "left" else node.right
    return None


def _bst_insert(work: _Work, key: int) -> Steps:
    """Insert ``key`` as a new leaf and return its id."""
    tree = work.tree
    node_id = tree.next_id
    if tree.root_id is None:
        yield work.emit(TreeStep(TreeStepType.INSERT, node_id, key, position="root"))
        return node_id

    current = tree.root_id
    while True:
        node = work.tree.node(current)
        direction = "left" if key < node.key else "right"
        yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node.id, node.key, direction=direction))
        child = node.left if direction == "left" else node.right
        if child is None:
            yield work.emit(
                TreeStep(TreeStepType.INSERT, node_id, key, parent_id=node.id, position=direction)
            )
            return node_id
        current = child


def _last_on_path(work: _Work, key: int) -> Optional[int]:
    """Node where a failed search for ``key`` stopped."""
    tree = work.tree
    current, last = tree.root_id, None
    while current is not None:
        last = current
        node = tree.node(current)
        current = node.left if key < node.key else node.right
    return last


def _bst_delete(work: _Work, node_id: int) -> Steps:
    """Remove ``node_id`` and return the id where rebalancing should start."""
    node = work.tree.node(node_id)
    if node.left is None and node.right is None:
        yield work.emit(TreeStep(TreeStepType.DELETE, node.id, node.key, strategy="leaf"))
        return node.parent
    if node.left is None or node.right is None:
        yield work.emit(TreeStep(TreeStepType.DELETE, node.id, node.key, strategy="one-child"))
        return node.parent

    # In-order successor: leftmost node of the right subtree
    successor = work.tree.node(node.right)
    yield work.emit(TreeStep(TreeStepType.NODE_VISIT, successor.id, successor.key, direction="right"))
    while successor.left is not None:
        successor = work.tree.node(successor.left)
        yield work.emit(TreeStep(TreeStepType.NODE_VISIT, successor.id, successor.key, direction="left"))
    yield work.emit(
        TreeStep(
            TreeStepType.DELETE,
            node.id,
            node.key,
            strategy="two-children",
            successor_id=successor.id,
        )
    )
    return successor.parent


# ============= Rotations =============


def _rotate(work: _Work, pivot_id: int, rotation: str, case: str) -> Steps:
    pivot = work.tree.node(pivot_id)
    riser = pivot.right if rotation == "left" else pivot.left
    yield work.emit(
        TreeStep(
            TreeStepType.ROTATE,
            rotation=rotation,
            pivot_id=pivot_id,
            new_root_id=riser,
            case=case,
        )
    )
    return riser


def _avl_rebalance(work: _Work, node_id: int, balance: int) -> Steps:
    """Rotate an unbalanced node; returns the root of the rebalanced subtree."""
    tree = work.tree
    node = tree.node(node_id)
    if balance > 1:
        if tree.balance_factor(node.left) >= 0:
            return (yield from _rotate(work, node_id, "right", "LL"))
        yield from _rotate(work, node.left, "left", "LR")
        return (yield from _rotate(work, node_id, "right", "LR"))
    if tree.balance_factor(node.right) <= 0:
        return (yield from _rotate(work, node_id, "left", "RR"))
    yield from _rotate(work, node.right, "right", "RL")
    return (yield from _rotate(work, node_id, "left", "RL"))


def _avl_retrace(work: _Work, start: Optional[int]) -> Iterator[TreeStep]:
    current = start
    while current is not None:
        height = work.tree.computed_height(current)
        yield work.emit(TreeStep(TreeStepType.UPDATE_HEIGHT, current, work.tree.node(current).key, height=height))
        balance = work.tree.balance_factor(current)
        if abs(balance) > 1:
            yield work.emit(
                TreeStep(TreeStepType.REBALANCE, current, work.tree.node(current).key, balance_factor=balance)
            )
            current = yield from _avl_rebalance(work, current, balance)
        current = work.tree.node(current).parent


def _splay(work: _Work, node_id: Optional[int]) -> Iterator[TreeStep]:
    if node_id is None:
        return
    while True:
        tree = work.tree
        node = tree.node(node_id)
        if node.parent is None:
            return
        parent = tree.node(node.parent)
        up = "right" if parent.left == node_id else "left"
        if parent.parent is None:
            yield from _rotate(work, parent.id, up, "zig")
            continue
        grand = tree.node(parent.parent)
        parent_up = "right" if grand.left == parent.id else "left"
        if up == parent_up:
            yield from _rotate(work, grand.id, up, "zig-zig")
            yield from _rotate(work, parent.id, up, "zig-zig")
        else:
            yield from _rotate(work, parent.id, up, "zig-zag")
            yield from _rotate(work, grand.id, parent_up, "zig-zag")


# ============= Heap =============


def _heap_slot(tree: Tree):
    """First level-order vacancy as (parent id, position)."""
    for node_id in tree.level_order():
        node = tree.node(node_id)
        if node.left is None:
            return node_id, "left"
        if node.right is None:
            return node_id, "right"
    return None, "root"


def _heap_insert(work: _Work, key: int) -> Iterator[TreeStep]:
    parent_id, position = _heap_slot(work.tree)
    current = work.tree.next_id
    yield work.emit(TreeStep(TreeStepType.INSERT, current, key, parent_id=parent_id, position=position))
    while True:
        node = work.tree.node(current)
        if node.parent is None:
            return
        parent = work.tree.node(node.parent)
        will_swap = node.key > parent.key
        yield work.emit(
            TreeStep(TreeStepType.COMPARE, node.id, node.key, other_id=parent.id, will_swap=will_swap)
        )
        if not will_swap:
            return
        yield work.emit(TreeStep(TreeStepType.SWAP, node.id, node.key, other_id=parent.id))
        current = parent.id


def _heap_sink(work: _Work, node_id: Optional[int]) -> Iterator[TreeStep]:
    current = node_id
    while current is not None:
        node = work.tree.node(current)
        children = [c for c in (node.left, node.right) if c is not None]
        if not children:
            return
        larger = max(children, key=lambda c: work.tree.node(c).key)
        will_swap = work.tree.node(larger).key > node.key
        yield work.emit(
            TreeStep(TreeStepType.COMPARE, node.id, node.key, other_id=larger, will_swap=will_swap)
        )
        if not will_swap:
            return
        yield work.emit(TreeStep(TreeStepType.SWAP, node.id, node.key, other_id=larger))
        current = larger


def _heap_search(work: _Work, key: int) -> Steps:
    for node_id in work.tree.level_order():
        node = work.tree.node(node_id)
        direction = "equal" if node.key == key else None
        yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node.id, node.key, direction=direction))
        if node.key == key:
            return node.id
    return None


# ============= Operations =============


def _insert_one(work: _Work, key: int) -> Iterator[TreeStep]:
    if work.structure == "heap":
        yield from _heap_insert(work, key)
        return
    node_id = yield from _bst_insert(work, key)
    if work.structure == "avl":
        yield from _avl_retrace(work, work.tree.node(node_id).parent)
    elif work.structure == "splay":
        yield from _splay(work, node_id)


def insert(tree: Tree, structure: str = "bst", value: Optional[int] = None, values: Iterable[int] = (), **params) -> Iterator[TreeStep]:
    """Insert ``value`` or every key of ``values``, in order, in one run."""
    keys = [value] if value is not None else list(values)
    work = _Work(tree, structure)
    for key in keys:
        yield from _insert_one(work, key)
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def search(tree: Tree, structure: str = "bst", value: Optional[int] = None, **params) -> Iterator[TreeStep]:
    work = _Work(tree, structure)
    if tree.root_id is None:
        yield work.emit(TreeStep(TreeStepType.NOT_FOUND, key=value))
        return

    if structure == "heap":
        found = yield from _heap_search(work, value)
    else:
        found = yield from _walk(work, value)

    if found is not None:
        yield work.emit(TreeStep(TreeStepType.FOUND, found, value))
    else:
        yield work.emit(TreeStep(TreeStepType.NOT_FOUND, key=value))
    if structure == "splay":
        yield from _splay(work, found if found is not None else _last_on_path(work, value))
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def delete(tree: Tree, structure: str = "bst", value: Optional[int] = None, **params) -> Iterator[TreeStep]:
    work = _Work(tree, structure)
    if tree.root_id is None:
        yield work.emit(TreeStep(TreeStepType.NOT_FOUND, key=value))
        return

    found = yield from _walk(work, value)
    if found is None:
        yield work.emit(TreeStep(TreeStepType.NOT_FOUND, key=value))
        if structure == "splay":
            yield from _splay(work, _last_on_path(work, value))
        yield work.emit(TreeStep(TreeStepType.COMPLETE))
        return

    yield work.emit(TreeStep(TreeStepType.FOUND, found, value))
    if structure == "splay":
        yield from _splay(work, found)
    retrace_from = yield from _bst_delete(work, found)
    if structure == "avl":
        yield from _avl_retrace(work, retrace_from)
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def extract_max(tree: Tree, structure: str = "heap", **params) -> Iterator[TreeStep]:
    work = _Work(tree, structure)
    if tree.root_id is None:
        yield work.emit(TreeStep(TreeStepType.NOT_FOUND))
        return

    root = work.tree.node(work.tree.root_id)
    yield work.emit(TreeStep(TreeStepType.EXTRACT, root.id, root.key))
    last = work.tree.node(work.tree.level_order()[-1])
    if last.id != root.id:
        yield work.emit(TreeStep(TreeStepType.SWAP, root.id, root.key, other_id=last.id))
    yield work.emit(TreeStep(TreeStepType.DELETE, last.id, root.key, strategy="leaf"))
    if last.id != root.id:
        yield from _heap_sink(work, root.id)
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def invert(tree: Tree, structure: str = "bst", **params) -> Iterator[TreeStep]:
    """Mirror the tree: visit each node on the way down, swap its children on the way up."""
    work = _Work(tree, structure)

    def _invert(node_id: Optional[int]) -> Iterator[TreeStep]:
        if node_id is None:
            return
        node = work.tree.node(node_id)
        yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node.id, node.key))
        yield from _invert(node.left)
        yield from _invert(node.right)
        yield work.emit(TreeStep(TreeStepType.INVERT, node.id, node.key))

    yield from _invert(tree.root_id)
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def heapify(tree: Tree, structure: str = "heap", **params) -> Iterator[TreeStep]:
    """Floyd's bottom-up build: sift down each non-leaf, last one first."""
    work = _Work(tree, structure)
    ids = tree.level_order()
    last = len(ids) // 2 - 1
    for position, index in enumerate(range(last, -1, -1)):
        node = work.tree.node(ids[index])
        yield work.emit(
            TreeStep(TreeStepType.HEAPIFY_NODE, node.id, node.key, order_index=position, total=last + 1)
        )
        yield from _heap_sink(work, node.id)
    yield work.emit(TreeStep(TreeStepType.COMPLETE))


def _traversal(order_name: str):
    def traverse(tree: Tree, structure: str = "bst", **params) -> Iterator[TreeStep]:
        work = _Work(tree, structure)
        ids: List[int] = getattr(tree, order_name)()
        keys = []
        for index, node_id in enumerate(ids):
            node = tree.node(node_id)
            keys.append(node.key)
            yield work.emit(TreeStep(TreeStepType.NODE_VISIT, node_id, node.key, order_index=index))
        yield work.emit(TreeStep(TreeStepType.COMPLETE, order=tuple(keys)))

    traverse.__name__ = order_name
    return traverse


inorder = _traversal("inorder")
preorder = _traversal("preorder")
postorder = _traversal("postorder")
level_order = _traversal("level_order")


TREE_PRODUCERS = {
    "insert": insert,
    "search": search,
    "delete": delete,
    "inorder": inorder,
    "preorder": preorder,
    "postorder": postorder,
    "level-order": level_order,
    "extract-max": extract_max,
    "invert": invert,
    "heapify": heapify,
}


def build_tree(structure: str, keys: Iterable[int]) -> Tree:
    """Tree obtained by inserting ``keys`` in order into an empty structure."""
    work = _Work(Tree.empty(), structure)
    for key in keys:
        for _ in _insert_one(work, key):
            pass
    return work.tree


def build_complete_tree(keys: Iterable[int]) -> Tree:
    """Complete tree holding ``keys`` in level order, without heap ordering."""
    work = _Work(Tree.empty(), "heap")
    for key in keys:
        parent_id, position = _heap_slot(work.tree)
        work.emit(TreeStep(TreeStepType.INSERT, work.tree.next_id, key, parent_id=parent_id, position=position))
    return work.tree
