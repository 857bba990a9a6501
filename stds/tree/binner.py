"""
Return Binner
=============
Quantizes returns into `num_bins` equal-width buckets spanning the
training distribution's [min, max]. Boundaries are fitted once and then
frozen; live values outside the range clamp to the edge bins.
"""

import logging
import math
from typing import Iterable, List, Tuple

import numpy as np

from ..core.exceptions import InvalidStateError
from ..core.types import Bin

logger = logging.getLogger(__name__)


class Binner:
    """
    Equal-width return quantizer.

    Example:
        binner = Binner(num_bins=4)
        binner.fit(returns)
        symbol = binner.bin(0.013)
    """

    def __init__(self, num_bins: int):
        if num_bins < 2:
            raise ValueError(f"num_bins must be > 1, got {num_bins}")
        self.num_bins = num_bins
        self._edges: Tuple[float, ...] = ()
        self._low = 0.0
        self._high = 0.0
        self._width = 0.0

    @property
    def is_fitted(self) -> bool:
        return bool(self._edges)

    @property
    def edges(self) -> Tuple[float, ...]:
        """The num_bins + 1 boundary values, lowest first."""
        return self._edges

    def fit(self, returns: Iterable[float]) -> "Binner":
        """
        Freeze bin boundaries from a training return distribution.

        Args:
            returns: Training returns; non-finite values are ignored

        Returns:
            self

        Raises:
            InvalidStateError: if boundaries were already fitted
            ValueError: if there is no finite return to fit on
        """
        if self.is_fitted:
            raise InvalidStateError("Bin boundaries are frozen once fitted")

        values = np.asarray(list(returns), dtype=float)
        values = values[np.isfinite(values)]
        if values.size == 0:
            raise ValueError("Cannot fit bins without finite returns")

        self._low = float(values.min())
        self._high = float(values.max())
        self._width = (self._high - self._low) / self.num_bins
        self._edges = tuple(float(e) for e in np.linspace(self._low, self._high, self.num_bins + 1))

        logger.info(
            f"Bins fitted: {self.num_bins} buckets over "
            f"[{self._low:.6f}, {self._high:.6f}] (width {self._width:.6f})"
        )
        return self

    def bin(self, value: float) -> int:
        """
        Map a return to its bin index.

        Out-of-range values clamp to the nearest edge bin. Non-finite
        values map to the middle bin.
        """
        if not self.is_fitted:
            raise InvalidStateError("Binner used before boundaries were fitted")

        if not math.isfinite(value):
            return self.num_bins // 2

        if value <= self._low:
            return 0
        if value >= self._high:
            return self.num_bins - 1

        index = int((value - self._low) / self._width)
        return min(index, self.num_bins - 1)

    def transform(self, values: Iterable[float]) -> List[int]:
        """Bin a whole series."""
        return [self.bin(float(v)) for v in values]

    def bins(self) -> List[Bin]:
        """The frozen buckets as Bin records."""
        return [
            Bin(index=i, lower_bound=self._edges[i], upper_bound=self._edges[i + 1])
            for i in range(len(self._edges) - 1)
        ]
