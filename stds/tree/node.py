"""
Tree Node
=========
A node of the sequence tree. Its counters and recommendation live in a
frozen NodeState that is replaced as a whole on every update, so readers
on other threads always see a consistent (weight, stats, synthesis) triple.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from ..core.types import Decision, NodeStats


@dataclass(frozen=True)
class NodeState:
    """Published statistics of a node."""
    weight: int = 0
    stats: NodeStats = field(default_factory=NodeStats)
    synthesis: Decision = Decision.NONE


class TreeNode:
    """
    Node keyed by the bin index that leads to it from its parent.

    Attributes:
        id: Unique id, assigned in creation order (root is 0)
        depth: Distance from the root
        symbol: Bin index on the incoming edge (None for the root)
        children: bin index -> child node
    """

    __slots__ = ('id', 'depth', 'symbol', 'children', 'state')

    def __init__(self, node_id: int, depth: int, symbol: Optional[int]):
        self.id = node_id
        self.depth = depth
        self.symbol = symbol
        self.children: Dict[int, "TreeNode"] = {}
        self.state = NodeState()

    @property
    def weight(self) -> int:
        return self.state.weight

    @property
    def stats(self) -> NodeStats:
        return self.state.stats

    @property
    def synthesis(self) -> Decision:
        return self.state.synthesis

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def publish(self, state: NodeState):
        """Replace the node's state in a single reference assignment."""
        self.state = state

    def to_payload(self) -> Dict[str, Any]:
        """Node-created event payload."""
        state = self.state
        return {
            'id': self.id,
            'symbol': self.symbol,
            'weight': state.weight,
            'synthesis': state.synthesis.value,
            'stats': state.stats.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"TreeNode(id={self.id}, depth={self.depth}, symbol={self.symbol}, "
            f"weight={self.weight}, synthesis={self.synthesis.value})"
        )
