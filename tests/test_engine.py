"""
Tests for the STDS Engine
=========================

Lifecycle, training scenarios, and live decisions end to end.
"""

import pandas as pd
import pytest

from stds.core.exceptions import (
    DataLoadError,
    InsufficientDataError,
    InvalidConfigError,
    InvalidStateError,
)
from stds.core.types import EngineState, NodeStats
from stds.engine import STDSEngine
from stds.events import DECISION_TRIGGERED, NODE_CREATED


class TestLifecycle:
    """State machine transitions and out-of-order calls."""

    def test_initial_state(self, engine):
        assert engine.state is EngineState.UNINITIALIZED
        assert engine.node_count == 0
        assert engine.bins == []

    def test_full_lifecycle(self, engine, scenario_config, scenario_bars):
        engine.initialize(scenario_config)
        assert engine.state is EngineState.INITIALIZED
        assert engine.node_count == 1

        assert engine.load_data(scenario_bars) == 5
        assert engine.state is EngineState.DATA_LOADED

        engine.train()
        assert engine.state is EngineState.TRAINED

        engine.process_new_data({'open': 1, 'high': 1, 'low': 1, 'close': 100, 'volume': 1})
        assert engine.state is EngineState.TRAINED

    def test_load_before_initialize(self, engine, scenario_bars):
        with pytest.raises(InvalidStateError):
            engine.load_data(scenario_bars)

    def test_train_before_load(self, engine):
        engine.initialize()
        with pytest.raises(InvalidStateError):
            engine.train()
        assert engine.state is EngineState.INITIALIZED

    def test_process_before_train(self, engine, scenario_config, scenario_bars):
        engine.initialize(scenario_config)
        engine.load_data(scenario_bars)
        with pytest.raises(InvalidStateError):
            engine.process_new_data({'open': 1, 'high': 1, 'low': 1, 'close': 1, 'volume': 1})

    def test_snapshot_before_initialize(self, engine):
        with pytest.raises(InvalidStateError):
            engine.get_tree_snapshot()

    def test_train_twice_without_new_data(self, trained_engine):
        with pytest.raises(InvalidStateError):
            trained_engine.train()
        assert trained_engine.state is EngineState.TRAINED

    def test_load_from_trained_stays_trained(self, trained_engine, scenario_bars):
        trained_engine.load_data(scenario_bars)
        assert trained_engine.state is EngineState.TRAINED
        assert trained_engine.has_pending_data

    def test_invalid_config_leaves_engine_unchanged(self, trained_engine):
        with pytest.raises(InvalidConfigError):
            trained_engine.initialize({'numBins': 1})
        assert trained_engine.state is EngineState.TRAINED
        assert trained_engine.node_count == 5

    def test_reinitialize_discards_tree(self, trained_engine):
        trained_engine.initialize()
        assert trained_engine.state is EngineState.INITIALIZED
        assert trained_engine.node_count == 1
        assert trained_engine.bins == []
        assert trained_engine.last_report is None

    def test_bad_source_leaves_state(self, engine, scenario_config):
        engine.initialize(scenario_config)
        with pytest.raises(DataLoadError):
            engine.load_data("does-not-exist.csv")
        assert engine.state is EngineState.INITIALIZED


class TestScenario:
    """Closes [100, 102, 101, 104, 99] with {4, 2, 0.6, 1, 0.02}."""

    def test_report(self, trained_engine):
        report = trained_engine.last_report
        assert report.bars == 5
        assert report.sequences == 2
        assert report.nodes_created == 4
        assert report.node_count == 5
        assert report.outcomes == {'BUY': 1, 'SELL': 1, 'HOLD': 0}
        assert report.to_dict()['nodeCount'] == 5

    def test_bins(self, trained_engine):
        bins = trained_engine.bins
        assert len(bins) == 4
        assert bins[0].lower_bound == pytest.approx(-0.0480769, abs=1e-6)
        assert bins[-1].upper_bound == pytest.approx(0.0297030, abs=1e-6)

    def test_tree(self, trained_engine, check_conservation):
        snapshot = trained_engine.get_tree_snapshot()
        assert snapshot.root.weight == 2
        assert snapshot.root.stats == NodeStats(1, 1, 0)
        check_conservation(snapshot)

    def test_query(self, trained_engine):
        assert trained_engine.query((3, 1)) == "BUY"
        assert trained_engine.query((1, 3)) == "SELL"
        assert trained_engine.query((0, 0)) == "NONE"
        assert trained_engine.query(()) == "HOLD"

    def test_get_node(self, trained_engine):
        node = trained_engine.get_node(1)
        assert node['symbol'] == 3
        assert node['depth'] == 1
        assert node['children'] == [2]
        assert node['stats'] == {'buyWins': 1, 'sellWins': 0, 'holdCount': 0}

        assert trained_engine.get_node(0)['children'] == [3, 1]

    def test_get_node_unknown(self, trained_engine):
        with pytest.raises(KeyError):
            trained_engine.get_node(99)

    def test_live_decisions(self, trained_engine):
        def bar(close):
            return {'open': close, 'high': close, 'low': close, 'close': close, 'volume': 1}

        first = 99.0 * 1.025
        second = first * 0.99
        assert trained_engine.process_new_data(bar(first)) == "NONE"
        assert trained_engine.process_new_data(bar(second)) == "BUY"

    def test_malformed_live_bar(self, trained_engine):
        with pytest.raises(DataLoadError):
            trained_engine.process_new_data({'open': 1, 'high': 1, 'low': 1, 'volume': 1})
        with pytest.raises(DataLoadError):
            trained_engine.process_new_data({'open': 1, 'high': 1, 'low': 1, 'close': 'x', 'volume': 1})

    def test_non_positive_live_close_rejected(self, trained_engine):
        def bar(close):
            return {'open': close, 'high': close, 'low': close, 'close': close, 'volume': 1}

        for close in (0.0, -5.0):
            with pytest.raises(DataLoadError, match="positive"):
                trained_engine.process_new_data(bar(close))

        # rejected bars leave the window and reference close alone
        first = 99.0 * 1.025
        assert trained_engine.process_new_data(bar(first)) == "NONE"
        assert trained_engine.process_new_data(bar(first * 0.99)) == "BUY"

    def test_reset_live(self, trained_engine):
        bar = {'open': 1, 'high': 1, 'low': 1, 'close': 101.0, 'volume': 1}
        trained_engine.reset_live()
        assert trained_engine.process_new_data(bar) == "NONE"
        assert trained_engine.process_new_data(bar) == "NONE"


class TestTraining:
    """Additive training, insufficient data, determinism."""

    def test_insufficient_data(self, engine, scenario_bars):
        engine.initialize()
        engine.load_data(scenario_bars)
        with pytest.raises(InsufficientDataError) as exc_info:
            engine.train()
        assert exc_info.value.available == 5
        assert exc_info.value.required == 11
        assert engine.state is EngineState.DATA_LOADED
        assert engine.has_pending_data
        assert engine.node_count == 1
        assert engine.bins == []

    def test_insufficient_data_after_training(self, trained_engine, make_bars):
        before = trained_engine.get_tree_snapshot()
        trained_engine.load_data(make_bars([100.0, 101.0, 102.0]))
        with pytest.raises(InsufficientDataError):
            trained_engine.train()
        assert trained_engine.state is EngineState.TRAINED
        assert trained_engine.get_tree_snapshot() == before

    def test_additive_training(self, trained_engine, make_bars, check_conservation):
        trained_engine.load_data(make_bars([100.0, 102.0, 101.0, 101.5]))
        report = trained_engine.train()

        assert report.sequences == 1
        assert report.nodes_created == 0
        assert trained_engine.node_count == 5

        snapshot = trained_engine.get_tree_snapshot()
        assert snapshot.root.weight == 3
        shared = snapshot.find(2)
        assert shared.weight == 2
        assert shared.stats == NodeStats(1, 0, 1)
        assert shared.synthesis.value == "HOLD"
        check_conservation(snapshot)

    def test_bins_frozen_across_runs(self, trained_engine, make_bars):
        edges = [b.to_dict() for b in trained_engine.bins]
        trained_engine.load_data(make_bars([100.0, 150.0, 50.0, 200.0, 10.0]))
        trained_engine.train()
        assert [b.to_dict() for b in trained_engine.bins] == edges

    def test_deterministic(self, make_bars, make_closes):
        config = {'numBins': 6, 'sequenceLength': 3, 'lookaheadDays': 2}
        bars = make_bars(make_closes(200, seed=7))

        snapshots = []
        for _ in range(2):
            engine = STDSEngine()
            engine.initialize(config)
            engine.load_data(bars)
            engine.train()
            snapshots.append(engine.get_tree_snapshot())

        assert snapshots[0] == snapshots[1]

    def test_random_series_conservation(self, engine, make_bars, make_closes, check_conservation):
        engine.initialize({'numBins': 5, 'sequenceLength': 4, 'lookaheadDays': 3})
        engine.load_data(make_bars(make_closes(500, seed=3)))
        report = engine.train()

        snapshot = engine.get_tree_snapshot()
        assert report.sequences == 499 - 4 - 3 + 1
        assert snapshot.root.weight == report.sequences
        assert max(view.depth for view in snapshot.root.walk()) == 4
        check_conservation(snapshot)

    def test_dataframe_source(self, engine, scenario_config):
        df = pd.DataFrame({
            'Date': pd.date_range('2024-01-01', periods=5, freq='D'),
            'Open': [100, 102, 101, 104, 99],
            'High': [100, 102, 101, 104, 99],
            'Low': [100, 102, 101, 104, 99],
            'Close': [100, 102, 101, 104, 99],
            'Volume': [1, 1, 1, 1, 1],
        })
        engine.initialize(scenario_config)
        engine.load_data(df)
        assert engine.train().sequences == 2

    def test_csv_source_with_data_dir(self, scenario_csv, scenario_config):
        engine = STDSEngine(data_dir=scenario_csv.parent)
        engine.initialize(scenario_config)
        assert engine.load_data("scenario.csv") == 5
        assert engine.train().nodes_created == 4


class TestEvents:
    """Events emitted through the notification channel."""

    def test_node_created_events(self, channel, scenario_config, scenario_bars):
        received = []
        channel.subscribe(received.append)

        engine = STDSEngine(channel=channel)
        engine.initialize(scenario_config)
        engine.load_data(scenario_bars)
        engine.train()
        assert channel.drain()

        created = [e for e in received if e.type == NODE_CREATED]
        assert [e.payload['id'] for e in created] == [1, 2, 3, 4]
        assert all(e.payload['weight'] == 1 for e in created)
        assert created[1].payload['path'] == [3, 1]

    def test_decision_event(self, channel, scenario_config, scenario_bars):
        received = []
        channel.subscribe(received.append)

        engine = STDSEngine(channel=channel)
        engine.initialize(scenario_config)
        engine.load_data(scenario_bars)
        engine.train()
        decision = engine.process_new_data(
            {'open': 1, 'high': 2, 'low': 0.5, 'close': 100.0, 'volume': 7}
        )
        assert channel.drain()

        decisions = [e for e in received if e.type == DECISION_TRIGGERED]
        assert len(decisions) == 1
        payload = decisions[0].payload
        assert payload['decision'] == decision
        assert payload['data'] == {'open': 1.0, 'high': 2.0, 'low': 0.5, 'close': 100.0, 'volume': 7.0}
        assert isinstance(payload['timestamp'], int)

    def test_no_events_on_existing_paths(self, channel, trained_engine, scenario_bars):
        received = []
        channel.subscribe(received.append)
        trained_engine.channel = channel

        trained_engine.load_data(scenario_bars)
        trained_engine.train()
        assert channel.drain()
        assert [e for e in received if e.type == NODE_CREATED] == []
