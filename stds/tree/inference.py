"""
Live Inference
==============
Rolls incoming bars into a window of the last `sequence_length` bins and
reads the matching node's recommendation. Exact matches only: a broken
path is NONE. Cost is O(sequence_length) per bar.
"""

import logging
import threading
from collections import deque
from typing import Optional, Tuple

from ..core.exceptions import InsufficientWarmupError
from ..core.types import Decision, PriceBar
from .binner import Binner
from .tree import SequenceTree

logger = logging.getLogger(__name__)


class LiveInferenceEngine:
    """
    Streaming matcher over a trained tree.

    The rolling window has its own lock; the tree is read without one
    because node state is published atomically by the trainer.
    """

    def __init__(self, tree: SequenceTree, binner: Binner, sequence_length: int):
        self.tree = tree
        self.binner = binner
        self.sequence_length = sequence_length

        self._lock = threading.Lock()
        self._window: deque = deque(maxlen=sequence_length)
        self._previous_close: Optional[float] = None
        self._bars_seen = 0

    @property
    def window(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._window)

    @property
    def bars_seen(self) -> int:
        return self._bars_seen

    def seed(self, close: float):
        """Set the close the next bar's return is measured from."""
        with self._lock:
            self._previous_close = close

    def reset(self):
        """Forget the rolling window and reference close."""
        with self._lock:
            self._window.clear()
            self._previous_close = None
            self._bars_seen = 0

    def process(self, bar: PriceBar) -> Decision:
        """
        Advance the window with `bar` and look up the current sequence.

        Returns:
            The matched terminal node's synthesis, or NONE while warming
            up or when the sequence was never seen in training
        """
        try:
            sequence = self._advance(bar.close)
        except InsufficientWarmupError as e:
            logger.debug(f"Warm-up: {e}")
            return Decision.NONE

        node = self.tree.walk(sequence)
        if node is None:
            return Decision.NONE
        return node.state.synthesis

    def _advance(self, close: float) -> Tuple[int, ...]:
        with self._lock:
            self._bars_seen += 1
            previous = self._previous_close
            self._previous_close = close

            if previous is None:
                raise InsufficientWarmupError("No reference close yet")

            self._window.append(self.binner.bin((close - previous) / previous))

            if len(self._window) < self.sequence_length:
                raise InsufficientWarmupError(
                    f"{len(self._window)}/{self.sequence_length} bins collected"
                )
            return tuple(self._window)
