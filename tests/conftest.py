"""
Pytest Fixtures for STDS
========================

Shared test fixtures used across all test files.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest

from stds.core.types import NodeStats, PriceBar
from stds.engine import STDSEngine
from stds.events import NotificationChannel

# {numBins, sequenceLength, confidenceThreshold, lookaheadDays, takeProfitThreshold}
SCENARIO_CONFIG = {
    'numBins': 4,
    'sequenceLength': 2,
    'confidenceThreshold': 0.6,
    'lookaheadDays': 1,
    'takeProfitThreshold': 0.02,
}
SCENARIO_CLOSES = [100.0, 102.0, 101.0, 104.0, 99.0]


def build_bars(closes, start=datetime(2024, 1, 1)):
    """Daily bars with the given closes."""
    return [
        PriceBar(
            timestamp=start + timedelta(days=i),
            open=close,
            high=close * 1.01,
            low=close * 0.99,
            close=close,
            volume=1000.0,
        )
        for i, close in enumerate(closes)
    ]


def random_closes(n, seed=42, start=100.0, scale=0.02):
    """Deterministic random walk of closes."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0, scale, n - 1)
    return list(start * np.cumprod(np.concatenate([[1.0], 1.0 + returns])))


@pytest.fixture
def scenario_config():
    return dict(SCENARIO_CONFIG)


@pytest.fixture
def scenario_bars():
    return build_bars(SCENARIO_CLOSES)


@pytest.fixture
def make_bars():
    """Factory: make_bars(closes, start=...) -> List[PriceBar]."""
    return build_bars


@pytest.fixture
def make_closes():
    """Factory: make_closes(n, seed=...) -> deterministic random-walk closes."""
    return random_closes


@pytest.fixture
def engine():
    """Uninitialized engine without an event channel."""
    return STDSEngine()


@pytest.fixture
def trained_engine(scenario_config, scenario_bars):
    """Engine trained on the five-bar scenario."""
    engine = STDSEngine()
    engine.initialize(scenario_config)
    engine.load_data(scenario_bars)
    engine.train()
    return engine


@pytest.fixture
def channel():
    """Started notification channel, stopped after the test."""
    channel = NotificationChannel(maxsize=10000)
    channel.start()
    yield channel
    channel.stop()


@pytest.fixture
def scenario_csv(tmp_path):
    """The scenario written as a CSV inside a temporary data dir."""
    path = tmp_path / "scenario.csv"
    lines = ["Date,Open,High,Low,Close,Volume"]
    for i, close in enumerate(SCENARIO_CLOSES):
        lines.append(f"2024-01-{i + 1:02d},{close},{close * 1.01},{close * 0.99},{close},1000")
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def check_conservation():
    """
    Assert weight and stats conservation over a snapshot.

    Interior nodes: weight and stats equal the sum over children.
    Every node: stats total equals weight, NONE exactly when weight is 0.
    """
    def check(snapshot):
        for view in snapshot.root.walk():
            assert view.stats.total == view.weight
            assert (view.synthesis.value == "NONE") == (view.weight == 0)
            if view.children:
                assert view.weight == sum(child.weight for child in view.children)
                total = NodeStats()
                for child in view.children:
                    total = total + child.stats
                assert view.stats == total
    return check
