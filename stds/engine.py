"""
STDS Engine
===========
Sequential Trading Decision System: the lifecycle that ties binning,
sequence extraction, outcome labeling, tree training, synthesis, and live
inference together.

Lifecycle:
    UNINITIALIZED -> INITIALIZED -> DATA_LOADED -> TRAINED
    TRAINED stays TRAINED on load_data, train, and process_new_data.

Locking:
- train, load_data, initialize, and get_tree_snapshot hold the write lock
- process_new_data never takes it; node state is published atomically,
  so a live lookup during training sees each node either before or after
  an update, never halfway

Usage:
    engine = STDSEngine()
    engine.initialize({'numBins': 10, 'sequenceLength': 5})
    engine.load_data('data/sample.csv')
    report = engine.train()
    decision = engine.process_new_data({'open': 1, 'high': 1, 'low': 1,
                                        'close': 1, 'volume': 1})
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .core.config import EngineConfig
from .core.exceptions import (
    DataLoadError,
    InsufficientDataError,
    InvalidStateError,
    STDSError,
)
from .core.types import Bin, Decision, EngineState, Outcome, PriceBar
from .data_loader import BarSource, load_bars
from .events import DECISION_TRIGGERED, NODE_CREATED, NotificationChannel
from .monitoring.metrics import metrics
from .tree import (
    Binner,
    LiveInferenceEngine,
    OutcomeLabeler,
    SequenceExtractor,
    SequenceTree,
    SynthesisEngine,
    TreeSnapshot,
    TreeTrainer,
    compute_returns,
)

logger = logging.getLogger(__name__)


@dataclass
class TrainingReport:
    """Summary of one training run."""
    bars: int
    sequences: int
    nodes_created: int
    node_count: int
    outcomes: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bars': self.bars,
            'sequences': self.sequences,
            'nodesCreated': self.nodes_created,
            'nodeCount': self.node_count,
            'outcomes': dict(self.outcomes),
            'durationSeconds': round(self.duration_seconds, 6),
        }


class STDSEngine:
    """
    One sequence-tree model and its lifecycle.

    The tree is owned by the engine; reinitializing builds a fresh tree.
    """

    def __init__(
        self,
        channel: Optional[NotificationChannel] = None,
        data_dir: Optional[Union[str, Path]] = None,
        date_column: str = "Date",
    ):
        """
        Args:
            channel: Where NODE_CREATED / DECISION_TRIGGERED events go
            data_dir: Base directory for relative CSV names
            date_column: Preferred timestamp column in CSV sources
        """
        self.channel = channel
        self.data_dir = data_dir
        self.date_column = date_column

        self._lock = threading.RLock()
        self._state = EngineState.UNINITIALIZED
        self._config: Optional[EngineConfig] = None

        self._tree: Optional[SequenceTree] = None
        self._binner: Optional[Binner] = None
        self._extractor: Optional[SequenceExtractor] = None
        self._labeler: Optional[OutcomeLabeler] = None
        self._trainer: Optional[TreeTrainer] = None
        self._inference: Optional[LiveInferenceEngine] = None

        self._pending_bars: Optional[List[PriceBar]] = None
        self._last_report: Optional[TrainingReport] = None
        self._training_runs = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def config(self) -> Optional[EngineConfig]:
        return self._config

    @property
    def node_count(self) -> int:
        return self._tree.node_count if self._tree else 0

    @property
    def bins(self) -> List[Bin]:
        """Frozen bins; empty until the first training run."""
        if self._binner is None or not self._binner.is_fitted:
            return []
        return self._binner.bins()

    @property
    def last_report(self) -> Optional[TrainingReport]:
        return self._last_report

    @property
    def has_pending_data(self) -> bool:
        return self._pending_bars is not None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self, config: Union[EngineConfig, Mapping[str, Any], None] = None) -> "STDSEngine":
        """
        Build an empty model for `config`.

        Calling it again discards the current tree.

        Raises:
            InvalidConfigError: on malformed config (engine unchanged)
        """
        if not isinstance(config, EngineConfig):
            config = EngineConfig.from_mapping(config)

        with self._lock:
            self._config = config
            self._tree = SequenceTree(max_depth=config.sequence_length)
            self._binner = Binner(config.num_bins)
            self._extractor = SequenceExtractor(config.sequence_length, config.lookahead_days)
            self._labeler = OutcomeLabeler(config.take_profit_threshold)
            self._trainer = TreeTrainer(
                self._tree,
                SynthesisEngine(config.confidence_threshold),
                on_node_created=self._on_node_created,
            )
            self._inference = LiveInferenceEngine(self._tree, self._binner, config.sequence_length)
            self._pending_bars = None
            self._last_report = None
            self._training_runs = 0
            self._state = EngineState.INITIALIZED

        logger.info(f"Engine initialized: {config.to_dict()}")
        return self

    def load_data(self, source: BarSource) -> int:
        """
        Stage a historical bar series for the next training run.

        Args:
            source: CSV path, DataFrame, or iterable of bars

        Returns:
            Number of bars staged

        Raises:
            InvalidStateError: before initialize
            DataLoadError: if the source is missing, empty, or malformed
        """
        with self._lock:
            self._require_initialized("load_data")

            bars = load_bars(source, data_dir=self.data_dir, date_column=self.date_column)

            self._pending_bars = bars
            if self._state is not EngineState.TRAINED:
                self._state = EngineState.DATA_LOADED

        logger.info(f"Staged {len(bars)} bars for training")
        return len(bars)

    def train(self) -> TrainingReport:
        """
        Run extraction, labeling, and tree insertion over the staged bars.

        Training is additive: existing paths grow, new ones are created.
        Bin boundaries are fitted on the first run and then frozen.

        Raises:
            InvalidStateError: if no bars are staged
            InsufficientDataError: if the staged series is too short
                (tree, bins, and staged data are left untouched)
        """
        with self._lock:
            self._require_initialized("train")
            if self._pending_bars is None:
                raise InvalidStateError(
                    f"train requires loaded data (state {self._state.value}); call load_data first"
                )

            start = time.perf_counter()
            try:
                report = self._train_locked(self._pending_bars)
            except STDSError as e:
                metrics.record_training("failed")
                metrics.record_error("train", type(e).__name__)
                raise
            report.duration_seconds = time.perf_counter() - start

            self._pending_bars = None
            self._last_report = report
            self._training_runs += 1
            self._state = EngineState.TRAINED

        metrics.record_training(
            "success",
            sequences=report.sequences,
            nodes_created=report.nodes_created,
            duration=report.duration_seconds,
            node_count=report.node_count,
        )
        logger.info(
            f"Training run {self._training_runs} complete: {report.sequences} sequences, "
            f"{report.nodes_created} new nodes, {report.node_count} total "
            f"({report.duration_seconds * 1000:.1f}ms)"
        )
        return report

    def _train_locked(self, bars: List[PriceBar]) -> TrainingReport:
        config = self._config
        closes = [bar.close for bar in bars]
        returns = compute_returns(closes)

        if len(returns) < config.min_returns:
            raise InsufficientDataError(
                f"Need at least {config.min_returns + 1} bars "
                f"(sequence_length + lookahead_days + 1), got {len(bars)}",
                available=len(bars),
                required=config.min_returns + 1,
            )

        if not self._binner.is_fitted:
            self._binner.fit(returns)

        symbols = self._binner.transform(returns)
        samples = self._extractor.extract(closes, symbols)
        labeled = [
            (sample.sequence, self._labeler.label(sample.reference_close, sample.outcome_window))
            for sample in samples
        ]

        result = self._trainer.insert_batch(labeled)

        if self._inference.bars_seen == 0:
            self._inference.seed(closes[-1])

        return TrainingReport(
            bars=len(bars),
            sequences=result.sequences,
            nodes_created=result.nodes_created,
            node_count=self._tree.node_count,
            outcomes={o.value: result.outcomes.get(o, 0) for o in Outcome},
        )

    # =========================================================================
    # INFERENCE
    # =========================================================================

    def process_new_data(self, bar: Union[PriceBar, Mapping[str, Any]]) -> str:
        """
        Feed one live bar and get the current recommendation.

        Returns:
            "BUY", "SELL", "HOLD", or "NONE" (NONE while the window warms
            up or when the live sequence never occurred in training)

        Raises:
            InvalidStateError: before the first training run
            DataLoadError: if the bar has missing or non-numeric fields,
                or a close that is not a positive number
        """
        if self._state is not EngineState.TRAINED:
            raise InvalidStateError(
                f"process_new_data requires a trained engine (state {self._state.value})"
            )

        if not isinstance(bar, PriceBar):
            try:
                bar = PriceBar.from_dict(bar)
            except (TypeError, ValueError) as e:
                raise DataLoadError(f"Malformed bar: {e}")
        if not math.isfinite(bar.close) or bar.close <= 0:
            raise DataLoadError(f"Close must be a positive number, got {bar.close}")

        with metrics.inference_timer():
            decision = self._inference.process(bar)

        metrics.record_decision(decision.value)
        if self.channel is not None:
            self.channel.emit(DECISION_TRIGGERED, {
                'decision': decision.value,
                'data': {
                    'open': bar.open,
                    'high': bar.high,
                    'low': bar.low,
                    'close': bar.close,
                    'volume': bar.volume,
                },
                'timestamp': int(time.time() * 1000),
            })
        return decision.value

    def query(self, sequence: Sequence[int]) -> str:
        """Synthesis of the node at `sequence`, or NONE if there is none."""
        self._require_initialized("query")
        node = self._tree.walk(sequence)
        return node.state.synthesis.value if node is not None else Decision.NONE.value

    def reset_live(self):
        """Clear the live window; the next bar only sets the reference close."""
        self._require_initialized("reset_live")
        self._inference.reset()

    # =========================================================================
    # TREE ACCESS
    # =========================================================================

    def get_tree_snapshot(self) -> TreeSnapshot:
        """
        Immutable copy of the whole tree.

        Waits for any running training to finish, so the copy is always
        of a quiescent tree.
        """
        with self._lock:
            self._require_initialized("get_tree_snapshot")
            return TreeSnapshot.capture(self._tree)

    def get_node(self, node_id: int) -> Dict[str, Any]:
        """
        One node by id, with the ids of its children.

        Raises:
            KeyError: if no node has that id
        """
        with self._lock:
            self._require_initialized("get_node")
            node = self._tree.get(node_id)
            payload = node.to_payload()
            payload['depth'] = node.depth
            payload['children'] = [child.id for _, child in sorted(node.children.items())]
        return payload

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_initialized(self, operation: str):
        if self._state is EngineState.UNINITIALIZED:
            raise InvalidStateError(f"{operation} called before initialize")

    def _on_node_created(self, payload: Dict[str, Any]):
        if self.channel is not None:
            self.channel.emit(NODE_CREATED, payload)

    def get_status(self) -> dict:
        """Get engine status."""
        return {
            'state': self._state.value,
            'config': self._config.to_dict() if self._config else None,
            'nodeCount': self.node_count,
            'trainingRuns': self._training_runs,
            'pendingBars': len(self._pending_bars) if self._pending_bars else 0,
            'bins': [b.to_dict() for b in self.bins],
            'lastReport': self._last_report.to_dict() if self._last_report else None,
        }
