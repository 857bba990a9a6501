"""
Concurrency Tests
=================

Live decisions and snapshots while a training run mutates the tree.
"""

import threading

from stds.core.exceptions import InvalidStateError
from stds.core.types import EngineState
from stds.engine import STDSEngine

VALID_DECISIONS = {"BUY", "SELL", "HOLD", "NONE"}


def _bar(close):
    return {'open': close, 'high': close, 'low': close, 'close': close, 'volume': 1}


class TestTrainWhileProcessing:
    """process_new_data never blocks on, or observes half of, a training run."""

    def test_process_during_training(self, make_bars, make_closes, check_conservation):
        engine = STDSEngine()
        engine.initialize({'numBins': 8, 'sequenceLength': 4, 'lookaheadDays': 3})
        engine.load_data(make_bars(make_closes(300, seed=1)))
        engine.train()

        engine.load_data(make_bars(make_closes(5000, seed=2)))

        errors = []
        decisions = []
        done = threading.Event()

        def trainer():
            try:
                engine.train()
            except Exception as e:
                errors.append(e)
            finally:
                done.set()

        def live():
            closes = make_closes(2000, seed=9)
            i = 0
            while not done.is_set() or i < 50:
                try:
                    decisions.append(engine.process_new_data(_bar(closes[i % len(closes)])))
                except Exception as e:
                    errors.append(e)
                    return
                i += 1

        threads = [threading.Thread(target=trainer), threading.Thread(target=live)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        assert decisions
        assert set(decisions) <= VALID_DECISIONS
        assert engine.state is EngineState.TRAINED
        check_conservation(engine.get_tree_snapshot())

    def test_node_states_never_torn(self, make_bars, make_closes):
        engine = STDSEngine()
        engine.initialize({'numBins': 6, 'sequenceLength': 3, 'lookaheadDays': 2})
        engine.load_data(make_bars(make_closes(4000, seed=5)))

        tree = engine._tree
        torn = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                for node_id in range(tree.node_count):
                    state = tree.get(node_id).state
                    if state.stats.total != state.weight:
                        torn.append((node_id, state))

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            engine.train()
        finally:
            done.set()
            thread.join(timeout=10)

        assert torn == []

    def test_snapshot_waits_for_training(self, make_bars, make_closes, check_conservation):
        engine = STDSEngine()
        engine.initialize({'numBins': 6, 'sequenceLength': 3, 'lookaheadDays': 2})
        engine.load_data(make_bars(make_closes(3000, seed=11)))

        snapshots = []

        def snapshotter():
            for _ in range(20):
                snapshots.append(engine.get_tree_snapshot())

        thread = threading.Thread(target=snapshotter)
        thread.start()
        engine.train()
        thread.join(timeout=30)

        for snapshot in snapshots:
            check_conservation(snapshot)
            assert snapshot.root.weight in (0, engine.last_report.sequences)


class TestSerializedTraining:
    """Concurrent train calls run one after the other."""

    def test_concurrent_trains_consume_staged_bars_once(self, make_bars, make_closes, check_conservation):
        engine = STDSEngine()
        engine.initialize({'numBins': 6, 'sequenceLength': 3, 'lookaheadDays': 2})
        engine.load_data(make_bars(make_closes(2000, seed=3)))

        results = []
        errors = []
        start = threading.Barrier(4)

        def run():
            start.wait()
            try:
                results.append(engine.train())
            except InvalidStateError as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == 1
        assert len(errors) == 3
        snapshot = engine.get_tree_snapshot()
        assert snapshot.root.weight == results[0].sequences
        check_conservation(snapshot)

    def test_concurrent_load_and_train(self, make_bars, make_closes):
        engine = STDSEngine()
        engine.initialize({'numBins': 6, 'sequenceLength': 3, 'lookaheadDays': 2})

        results = []
        errors = []

        def run(seed):
            try:
                engine.load_data(make_bars(make_closes(500, seed=seed)))
                results.append(engine.train())
            except InvalidStateError as e:
                # another thread trained on the bars this one staged
                errors.append(e)

        threads = [threading.Thread(target=run, args=(seed,)) for seed in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) + len(errors) == 4
        assert results
        assert engine.get_tree_snapshot().root.weight == sum(r.sequences for r in results)
