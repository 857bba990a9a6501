"""
Sequence Tree
=============
Prefix tree of bin-sequences with a non-owning id index for O(1) node
addressing. Single writer; readers walk it without locking.
"""

from typing import Dict, Iterator, Optional, Sequence

from .node import TreeNode


class SequenceTree:
    """
    Prefix tree bounded to `max_depth` levels below the root.

    Nodes are never deleted. Ids are assigned monotonically in creation
    order, so node_count is also the next id.
    """

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.root = TreeNode(0, 0, None)
        self._index: Dict[int, TreeNode] = {0: self.root}
        self._next_id = 1

    @property
    def node_count(self) -> int:
        """Total nodes including the root."""
        return self._next_id

    def add_child(self, parent: TreeNode, symbol: int) -> TreeNode:
        """
        Create and attach a child under `parent`.

        The child is fully built before it is linked, so a concurrent
        reader either misses it or sees a complete node.
        """
        if parent.depth >= self.max_depth:
            raise ValueError(f"Cannot grow below max depth {self.max_depth}")
        if symbol in parent.children:
            raise ValueError(f"Node {parent.id} already has a child for symbol {symbol}")

        child = TreeNode(self._next_id, parent.depth + 1, symbol)
        self._index[child.id] = child
        parent.children[symbol] = child
        # Every id below node_count is always addressable
        self._next_id += 1
        return child

    def get(self, node_id: int) -> TreeNode:
        """Look up a node by id. Raises KeyError if unknown."""
        return self._index[node_id]

    def walk(self, sequence: Sequence[int]) -> Optional[TreeNode]:
        """
        Follow `sequence` from the root.

        Returns:
            The node reached, or None as soon as a symbol has no child
        """
        node = self.root
        for symbol in sequence:
            node = node.children.get(symbol)
            if node is None:
                return None
        return node

    def iter_nodes(self) -> Iterator[TreeNode]:
        """Depth-first traversal, children in symbol order."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            for symbol in sorted(node.children, reverse=True):
                stack.append(node.children[symbol])
