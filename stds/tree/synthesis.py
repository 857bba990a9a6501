"""
Synthesis Engine
================
Derives a node's recommendation from its outcome counts.

    w == 0                                     -> NONE
    buy_rate  >= threshold and >= sell_rate    -> BUY
    sell_rate >= threshold and >  buy_rate     -> SELL
    otherwise                                  -> HOLD
"""

from ..core.types import Decision, NodeStats, Outcome
from .node import NodeState, TreeNode


class SynthesisEngine:
    """Applies the confidence rule to node statistics."""

    def __init__(self, confidence_threshold: float):
        self.confidence_threshold = confidence_threshold

    def synthesize(self, stats: NodeStats, weight: int) -> Decision:
        """Pure decision rule for a (stats, weight) pair."""
        if weight <= 0:
            return Decision.NONE

        buy_rate = stats.buy_wins / weight
        sell_rate = stats.sell_wins / weight

        if buy_rate >= self.confidence_threshold and buy_rate >= sell_rate:
            return Decision.BUY
        if sell_rate >= self.confidence_threshold and sell_rate > buy_rate:
            return Decision.SELL
        return Decision.HOLD

    def recompute(self, node: TreeNode) -> Decision:
        """Republish a node's state with a freshly computed synthesis."""
        state = node.state
        synthesis = self.synthesize(state.stats, state.weight)
        if synthesis is not state.synthesis:
            node.publish(NodeState(state.weight, state.stats, synthesis))
        return synthesis

    def observe(self, node: TreeNode, outcome: Outcome) -> NodeState:
        """
        Count one more observation at `node` and publish the new state.

        Weight, stats, and synthesis change together in one publish.
        """
        state = node.state
        weight = state.weight + 1
        stats = state.stats.record(outcome)
        new_state = NodeState(weight, stats, self.synthesize(stats, weight))
        node.publish(new_state)
        return new_state
