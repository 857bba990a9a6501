"""
Sequence Extraction
===================
Turns a bar series into overlapping bin-sequences, each paired with the
closes of the bars that follow it.

Indexing (return j is the move from bar j to bar j+1):
    sequence i      = bins[i : i+S]
    reference close = close of bar i+S
    outcome window  = closes of bars i+S+1 .. i+S+K
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..core.exceptions import InsufficientDataError

BinSequence = Tuple[int, ...]


def compute_returns(closes: Sequence[float]) -> np.ndarray:
    """
    Simple returns between adjacent closes.

    Returns:
        Array of length len(closes) - 1 with (c[i] - c[i-1]) / c[i-1]
    """
    prices = np.asarray(closes, dtype=float)
    if prices.size < 2:
        return np.empty(0, dtype=float)
    return np.diff(prices) / prices[:-1]


@dataclass(frozen=True)
class SequenceSample:
    """One training sequence and the price path that followed it."""
    sequence: BinSequence
    reference_close: float
    outcome_window: Tuple[float, ...]


class SequenceExtractor:
    """Sliding-window extractor over a binned return series."""

    def __init__(self, sequence_length: int, lookahead_days: int):
        self.sequence_length = sequence_length
        self.lookahead_days = lookahead_days

    def count(self, num_returns: int) -> int:
        """Number of samples a series of `num_returns` returns yields."""
        return max(num_returns - self.sequence_length - self.lookahead_days + 1, 0)

    def extract(self, closes: Sequence[float], symbols: Sequence[int]) -> List[SequenceSample]:
        """
        Extract aligned (sequence, outcome window) samples.

        Args:
            closes: Close prices of every bar (length L + 1)
            symbols: Bin index of every return (length L)

        Returns:
            L - S - K + 1 samples in series order

        Raises:
            InsufficientDataError: when L < S + K
            ValueError: when closes and symbols are misaligned
        """
        num_returns = len(symbols)
        if len(closes) != num_returns + 1:
            raise ValueError(
                f"Expected {num_returns + 1} closes for {num_returns} returns, got {len(closes)}"
            )

        required = self.sequence_length + self.lookahead_days
        if num_returns < required:
            raise InsufficientDataError(
                f"Need at least {required} returns ({required + 1} bars) for "
                f"sequence_length={self.sequence_length} and "
                f"lookahead_days={self.lookahead_days}, got {num_returns}",
                available=num_returns,
                required=required,
            )

        S, K = self.sequence_length, self.lookahead_days
        samples = []
        for i in range(self.count(num_returns)):
            samples.append(SequenceSample(
                sequence=tuple(int(s) for s in symbols[i:i + S]),
                reference_close=float(closes[i + S]),
                outcome_window=tuple(float(c) for c in closes[i + S + 1:i + S + K + 1]),
            ))
        return samples
