"""
Outcome Labeling
================
Would a take-profit exit have triggered within the lookahead horizon?
BUY is checked before SELL, so a window that touches both targets is a BUY.
"""

from typing import Sequence

from ..core.types import Outcome


class OutcomeLabeler:
    """Classifies a forward price window against a take-profit threshold."""

    def __init__(self, take_profit_threshold: float):
        self.take_profit_threshold = take_profit_threshold

    def label(self, reference_close: float, window: Sequence[float]) -> Outcome:
        """
        Label one outcome window.

        Args:
            reference_close: Close of the sequence's last bar (entry price)
            window: Closes of the following lookahead bars

        Returns:
            Outcome.BUY, Outcome.SELL, or Outcome.HOLD
        """
        if not window:
            raise ValueError("Outcome window is empty")
        if reference_close <= 0:
            raise ValueError(f"Reference close must be positive, got {reference_close}")

        forward = [(close - reference_close) / reference_close for close in window]

        if max(forward) >= self.take_profit_threshold:
            return Outcome.BUY
        if min(forward) <= -self.take_profit_threshold:
            return Outcome.SELL
        return Outcome.HOLD
