"""
Arena-backed binary tree.

Nodes are addressed by stable integer ids instead of object references, so a
tree is a plain immutable value: every structural operation returns a new
Tree and leaves the original untouched. Ids are handed out from ``next_id``
and never reused within a tree's history.
"""

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from ..errors import ReducerContractError


@dataclass(frozen=True)
class TreeNode:
    id: int
    key: int
    left: Optional[int] = None
    right: Optional[int] = None
    parent: Optional[int] = None
    height: int = 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "left": self.left,
            "right": self.right,
            "parent": self.parent,
            "height": self.height,
        }


@dataclass(frozen=True)
class Tree:
    nodes: Mapping[int, TreeNode]
    root_id: Optional[int] = None
    next_id: int = 0

    @classmethod
    def empty(cls) -> "Tree":
        return cls(MappingProxyType({}), None, 0)

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, node_id: Optional[int]) -> TreeNode:
        if node_id is None or node_id not in self.nodes:
            raise ReducerContractError(f"Unknown tree node id: {node_id}")
        return self.nodes[node_id]

    def find_by_key(self, key: int) -> Optional[int]:
        """Return the id of the node holding ``key``, searching the whole tree."""
        for node in self.nodes.values():
            if node.key == key:
                return node.id
        return None

    def keys(self) -> List[int]:
        return [self.nodes[i].key for i in self.level_order()]

    # ------------------------------------------------------------------
    # Traversal orders (node ids)
    # ------------------------------------------------------------------

    def level_order(self) -> List[int]:
        if self.root_id is None:
            return []
        result = []
        queue = [self.root_id]
        while queue:
            node_id = queue.pop(0)
            result.append(node_id)
            node = self.nodes[node_id]
            if node.left is not None:
                queue.append(node.left)
            if node.right is not None:
                queue.append(node.right)
        return result

    def inorder(self) -> List[int]:
        result: List[int] = []
        stack: List[int] = []
        current = self.root_id
        while stack or current is not None:
            while current is not None:
                stack.append(current)
                current = self.nodes[current].left
            current = stack.pop()
            result.append(current)
            current = self.nodes[current].right
        return result

    def preorder(self) -> List[int]:
        result: List[int] = []
        stack = [self.root_id] if self.root_id is not None else []
        while stack:
            node_id = stack.pop()
            result.append(node_id)
            node = self.nodes[node_id]
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)
        return result

    def postorder(self) -> List[int]:
        result: List[int] = []
        stack = [self.root_id] if self.root_id is not None else []
        while stack:
            node_id = stack.pop()
            result.append(node_id)
            node = self.nodes[node_id]
            if node.left is not None:
                stack.append(node.left)
            if node.right is not None:
                stack.append(node.right)
        result.reverse()
        return result

    # ------------------------------------------------------------------
    # Shape queries
    # ------------------------------------------------------------------

    def height_of(self, node_id: Optional[int]) -> int:
        """Stored height; 0 for a missing child."""
        if node_id is None:
            return 0
        return self.nodes[node_id].height

    def computed_height(self, node_id: Optional[int]) -> int:
        """Height from the stored heights of the children."""
        node = self.node(node_id)
        return max(self.height_of(node.left), self.height_of(node.right)) + 1

    def balance_factor(self, node_id: int) -> int:
        node = self.node(node_id)
        return self.height_of(node.left) - self.height_of(node.right)

    def depth(self) -> int:
        """Actual depth counted from the root, independent of stored heights."""

        def _depth(node_id: Optional[int]) -> int:
            if node_id is None:
                return 0
            node = self.nodes[node_id]
            return 1 + max(_depth(node.left), _depth(node.right))

        return _depth(self.root_id)

    def path_to(self, node_id: int) -> List[int]:
        """Ids from the root down to ``node_id``."""
        path = []
        current: Optional[int] = node_id
        while current is not None:
            path.append(current)
            current = self.node(current).parent
        path.reverse()
        return path

    # ------------------------------------------------------------------
    # Structural edits (return new trees)
    # ------------------------------------------------------------------

    def _with(self, nodes: Dict[int, TreeNode], root_id: Optional[int], next_id: Optional[int] = None) -> "Tree":
        return Tree(MappingProxyType(nodes), root_id, self.next_id if next_id is None else next_id)

    def insert_leaf(self, node_id: int, key: int, parent_id: Optional[int], position: str) -> "Tree":
        if node_id in self.nodes:
            raise ReducerContractError(f"Node id {node_id} already exists")
        nodes = dict(self.nodes)
        if position == "root":
            if self.root_id is not None:
                raise ReducerContractError("Cannot insert a root into a non-empty tree")
            nodes[node_id] = TreeNode(node_id, key)
            return self._with(nodes, node_id, max(self.next_id, node_id + 1))

        parent = self.node(parent_id)
        if position not in ("left", "right"):
            raise ReducerContractError(f"Invalid insert position: {position}")
        if getattr(parent, position) is not None:
            raise ReducerContractError(f"Slot {position} of node {parent_id} is occupied")
        nodes[node_id] = TreeNode(node_id, key, parent=parent_id)
        nodes[parent.id] = replace(parent, **{position: node_id})
        return self._with(nodes, self.root_id, max(self.next_id, node_id + 1))

    def _relink_parent(self, nodes: Dict[int, TreeNode], parent_id: Optional[int], old_id: int, new_id: Optional[int]) -> None:
        if parent_id is None:
            return
        parent = nodes[parent_id]
        if parent.left == old_id:
            nodes[parent_id] = replace(parent, left=new_id)
        elif parent.right == old_id:
            nodes[parent_id] = replace(parent, right=new_id)
        else:
            raise ReducerContractError(f"Node {old_id} is not a child of {parent_id}")

    def remove(self, node_id: int) -> "Tree":
        """Remove a node with at most one child, splicing the child upward."""
        node = self.node(node_id)
        if node.left is not None and node.right is not None:
            raise ReducerContractError(f"Node {node_id} has two children and cannot be spliced out")
        child_id = node.left if node.left is not None else node.right
        nodes = dict(self.nodes)
        self._relink_parent(nodes, node.parent, node_id, child_id)
        if child_id is not None:
            nodes[child_id] = replace(nodes[child_id], parent=node.parent)
        del nodes[node_id]
        root_id = child_id if self.root_id == node_id else self.root_id
        return self._with(nodes, root_id)

    def replace_key(self, node_id: int, key: int) -> "Tree":
        nodes = dict(self.nodes)
        nodes[node_id] = replace(self.node(node_id), key=key)
        return self._with(nodes, self.root_id)

    def swap_keys(self, a: int, b: int) -> "Tree":
        node_a, node_b = self.node(a), self.node(b)
        nodes = dict(self.nodes)
        nodes[a] = replace(node_a, key=node_b.key)
        nodes[b] = replace(node_b, key=node_a.key)
        return self._with(nodes, self.root_id)

    def swap_children(self, node_id: int) -> "Tree":
        """Mirror one node: its left and right subtrees trade places."""
        node = self.node(node_id)
        nodes = dict(self.nodes)
        nodes[node_id] = replace(node, left=node.right, right=node.left)
        return self._with(nodes, self.root_id)

    def set_height(self, node_id: int, height: int) -> "Tree":
        nodes = dict(self.nodes)
        nodes[node_id] = replace(self.node(node_id), height=height)
        return self._with(nodes, self.root_id)

    def rotate(self, pivot_id: int, direction: str) -> "Tree":
        """Single rotation about ``pivot_id``.

        The pivot moves down; its right child (left rotation) or left child
        (right rotation) moves up. Heights of the two rotated nodes are
        recomputed, pivot first.
        """
        pivot = self.node(pivot_id)
        if direction == "left":
            riser_id = pivot.right
            if riser_id is None:
                raise ReducerContractError(f"Left rotation about {pivot_id} needs a right child")
            riser = self.nodes[riser_id]
            inner = riser.left
            new_pivot = replace(pivot, right=inner, parent=riser_id)
            new_riser = replace(riser, left=pivot_id, parent=pivot.parent)
        elif direction == "right":
            riser_id = pivot.left
            if riser_id is None:
                raise ReducerContractError(f"Right rotation about {pivot_id} needs a left child")
            riser = self.nodes[riser_id]
            inner = riser.right
            new_pivot = replace(pivot, left=inner, parent=riser_id)
            new_riser = replace(riser, right=pivot_id, parent=pivot.parent)
        else:
            raise ReducerContractError(f"Unknown rotation direction: {direction}")

        nodes = dict(self.nodes)
        self._relink_parent(nodes, pivot.parent, pivot_id, riser_id)
        if inner is not None:
            nodes[inner] = replace(nodes[inner], parent=pivot_id)
        nodes[pivot_id] = new_pivot
        nodes[riser_id] = new_riser

        def _h(node_id: Optional[int]) -> int:
            return 0 if node_id is None else nodes[node_id].height

        nodes[pivot_id] = replace(nodes[pivot_id], height=max(_h(nodes[pivot_id].left), _h(nodes[pivot_id].right)) + 1)
        nodes[riser_id] = replace(nodes[riser_id], height=max(_h(nodes[riser_id].left), _h(nodes[riser_id].right)) + 1)

        root_id = riser_id if self.root_id == pivot_id else self.root_id
        return self._with(nodes, root_id)

    def to_dict(self) -> dict:
        return {
            "root_id": self.root_id,
            "nodes": [self.nodes[i].to_dict() for i in sorted(self.nodes)],
        }
