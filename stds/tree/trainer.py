"""
Tree Trainer
============
Inserts labeled sequences into the shared tree.

Every node on an inserted path (root through terminal) gets weight + 1
and one more tally for the sequence's outcome, so interior statistics are
always the sum of their children's. Newly created nodes are announced
through `on_node_created` after the insertion that created them.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Any

from ..core.types import Outcome
from .node import TreeNode
from .synthesis import SynthesisEngine
from .tree import SequenceTree

logger = logging.getLogger(__name__)

NodeCallback = Callable[[Dict[str, Any]], None]


@dataclass
class BatchResult:
    """Counts from one insert_batch call."""
    sequences: int = 0
    nodes_created: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequences': self.sequences,
            'nodesCreated': self.nodes_created,
            'outcomes': {o.value: self.outcomes.get(o, 0) for o in Outcome},
        }


class TreeTrainer:
    """
    Grows a SequenceTree from (sequence, outcome) pairs.

    Not thread-safe on its own: callers hold the engine's write lock.
    """

    def __init__(
        self,
        tree: SequenceTree,
        synthesis: SynthesisEngine,
        on_node_created: Optional[NodeCallback] = None,
    ):
        self.tree = tree
        self.synthesis = synthesis
        self.on_node_created = on_node_created

    def insert(self, sequence: Sequence[int], outcome: Outcome) -> int:
        """
        Insert one labeled sequence.

        Args:
            sequence: Exactly max_depth bin indices
            outcome: Label of the sequence's forward window

        Returns:
            Number of nodes created by this insertion
        """
        if len(sequence) != self.tree.max_depth:
            raise ValueError(
                f"Sequence length {len(sequence)} != tree depth {self.tree.max_depth}"
            )

        node = self.tree.root
        path: List[TreeNode] = [node]
        created: List[TreeNode] = []

        for symbol in sequence:
            child = node.children.get(symbol)
            if child is None:
                child = self.tree.add_child(node, int(symbol))
                created.append(child)
            path.append(child)
            node = child

        for step in path:
            self.synthesis.observe(step, outcome)

        if self.on_node_created is not None:
            for new_node in created:
                logger.debug(f"Node created: {new_node!r}")
                payload = new_node.to_payload()
                payload['path'] = [int(s) for s in sequence[:new_node.depth]]
                self.on_node_created(payload)

        return len(created)

    def insert_batch(self, samples: Iterable[Tuple[Sequence[int], Outcome]]) -> BatchResult:
        """Insert many labeled sequences in order."""
        result = BatchResult()
        for sequence, outcome in samples:
            result.nodes_created += self.insert(sequence, outcome)
            result.sequences += 1
            result.outcomes[outcome] += 1
        return result
