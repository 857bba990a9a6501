"""
Tree Snapshot
=============
Immutable, serializable copy of the tree for external consumers.
Two snapshots of an unchanged tree compare equal.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from ..core.types import Decision, NodeStats
from .node import TreeNode
from .tree import SequenceTree


@dataclass(frozen=True)
class NodeView:
    """Frozen copy of one node and its subtree."""
    id: int
    depth: int
    symbol: Optional[int]
    weight: int
    synthesis: Decision
    stats: NodeStats
    children: Tuple["NodeView", ...] = ()

    @classmethod
    def capture(cls, node: TreeNode, recursive: bool = True) -> "NodeView":
        """Copy a node; children are ordered by symbol."""
        state = node.state
        children: Tuple[NodeView, ...] = ()
        if recursive:
            children = tuple(
                cls.capture(child)
                for _, child in sorted(node.children.items())
            )
        return cls(
            id=node.id,
            depth=node.depth,
            symbol=node.symbol,
            weight=state.weight,
            synthesis=state.synthesis,
            stats=state.stats,
            children=children,
        )

    def walk(self) -> Iterator["NodeView"]:
        """This view and every descendant, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the client payload shape."""
        return {
            'id': self.id,
            'symbol': self.symbol,
            'weight': self.weight,
            'synthesis': self.synthesis.value,
            'stats': self.stats.to_dict(),
            'children': [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class TreeSnapshot:
    """Whole-tree view rooted at the tree's root."""
    root: NodeView
    node_count: int

    @classmethod
    def capture(cls, tree: SequenceTree) -> "TreeSnapshot":
        """Copy the tree. Callers hold the engine's write lock."""
        return cls(root=NodeView.capture(tree.root), node_count=tree.node_count)

    def find(self, node_id: int) -> Optional[NodeView]:
        for view in self.root.walk():
            if view.id == node_id:
                return view
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {'root': self.root.to_dict()}

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)
