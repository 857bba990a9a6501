"""
Type Definitions
================
Clean, typed data structures for the sequence-tree engine.
All data flows through these types for consistency.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Mapping


class Decision(Enum):
    """Recommendation issued by a tree node."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    NONE = "NONE"


class Outcome(Enum):
    """Label of a historical sequence's forward window."""
    BUY = "BUY"      # take-profit on the long side triggered
    SELL = "SELL"    # take-profit on the short side triggered
    HOLD = "HOLD"    # neither triggered within the lookahead


class EngineState(Enum):
    """Engine lifecycle states."""
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"
    DATA_LOADED = "DATA_LOADED"
    TRAINED = "TRAINED"


@dataclass(frozen=True)
class PriceBar:
    """Single OHLCV bar. Immutable once recorded."""
    timestamp: Optional[datetime]
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceBar":
        """
        Build a bar from a payload dict.

        Raises:
            ValueError: if an OHLCV field is missing or not a finite number
        """
        values = {}
        for key in ('open', 'high', 'low', 'close', 'volume'):
            if key not in data:
                raise ValueError(f"Missing field: {key}")
            try:
                value = float(data[key])
            except (TypeError, ValueError):
                raise ValueError(f"Field {key} is not numeric: {data[key]!r}")
            if not math.isfinite(value):
                raise ValueError(f"Field {key} is not finite: {value}")
            values[key] = value

        timestamp = data.get('timestamp')
        if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
            # Epoch milliseconds, as sent by the browser client
            timestamp = datetime.fromtimestamp(timestamp / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        elif isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        if isinstance(timestamp, datetime) and timestamp.tzinfo is not None:
            # Naive UTC, same as epoch timestamps
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)

        return cls(timestamp=timestamp, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
        }


@dataclass(frozen=True)
class Bin:
    """One equal-width bucket of the return range."""
    index: int
    lower_bound: float
    upper_bound: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'lowerBound': self.lower_bound,
            'upperBound': self.upper_bound,
        }


@dataclass(frozen=True)
class NodeStats:
    """Outcome tallies accumulated at a tree node."""
    buy_wins: int = 0
    sell_wins: int = 0
    hold_count: int = 0

    @property
    def total(self) -> int:
        return self.buy_wins + self.sell_wins + self.hold_count

    def record(self, outcome: Outcome) -> "NodeStats":
        """Return new stats with one more observation of `outcome`."""
        if outcome is Outcome.BUY:
            return NodeStats(self.buy_wins + 1, self.sell_wins, self.hold_count)
        if outcome is Outcome.SELL:
            return NodeStats(self.buy_wins, self.sell_wins + 1, self.hold_count)
        return NodeStats(self.buy_wins, self.sell_wins, self.hold_count + 1)

    def __add__(self, other: "NodeStats") -> "NodeStats":
        return NodeStats(
            self.buy_wins + other.buy_wins,
            self.sell_wins + other.sell_wins,
            self.hold_count + other.hold_count,
        )

    def to_dict(self) -> Dict[str, int]:
        """Convert to the camelCase payload used by event consumers."""
        return {
            'buyWins': self.buy_wins,
            'sellWins': self.sell_wins,
            'holdCount': self.hold_count,
        }
