#!/usr/bin/env python3
"""
Sequence Tree Trainer
=====================

Builds a sequence tree from a historical CSV and prints a summary.

Usage:
    python scripts/train_model.py data/sample.csv
    python scripts/train_model.py data/sample.csv --bins 8 --sequence-length 4
    python scripts/train_model.py data/sample.csv --output models/tree.json
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import argparse
import logging

from stds.core import Config, setup_logger
from stds.core.exceptions import STDSError
from stds.engine import STDSEngine

logger = logging.getLogger("stds.train_model")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Train a sequence tree from historical bars',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Train with the engine parameters from config.yaml
    python scripts/train_model.py data/sample.csv

    # Override parameters and save the tree
    python scripts/train_model.py data/sample.csv --bins 8 --output tree.json
        """
    )
    parser.add_argument('data', type=str, help='CSV file with Date,Open,High,Low,Close,Volume')
    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument('--bins', type=int, default=None, help='Number of return bins')
    parser.add_argument('--sequence-length', type=int, default=None, help='Bins per sequence')
    parser.add_argument('--confidence', type=float, default=None, help='Confidence threshold')
    parser.add_argument('--lookahead', type=int, default=None, help='Lookahead bars')
    parser.add_argument('--take-profit', type=float, default=None, help='Take-profit threshold')
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Write the tree snapshot as JSON to this path'
    )
    parser.add_argument('--top', type=int, default=10, help='Terminal nodes to list (default: 10)')
    return parser.parse_args(argv)


def build_engine_config(config: Config, args) -> dict:
    """Config file values with command line overrides applied."""
    engine = config.engine.to_dict()
    overrides = {
        'numBins': args.bins,
        'sequenceLength': args.sequence_length,
        'confidenceThreshold': args.confidence,
        'lookaheadDays': args.lookahead,
        'takeProfitThreshold': args.take_profit,
    }
    engine.update({k: v for k, v in overrides.items() if v is not None})
    return engine


def print_training_summary(engine: STDSEngine, top: int = 10):
    """Print training summary."""
    report = engine.last_report
    snapshot = engine.get_tree_snapshot()
    depth = engine.config.sequence_length

    terminals = [view for view in snapshot.root.walk() if view.depth == depth]
    terminals.sort(key=lambda v: (-v.weight, v.id))

    decisions = {}
    for view in terminals:
        decisions[view.synthesis.value] = decisions.get(view.synthesis.value, 0) + 1

    print("\n" + "=" * 60)
    print("TRAINING SUMMARY")
    print("=" * 60)
    print(f"Bars:            {report.bars}")
    print(f"Sequences:       {report.sequences}")
    print(f"Nodes:           {report.node_count}")
    print(f"Outcomes:        {report.outcomes}")
    print(f"Terminal labels: {decisions}")
    print(f"Training Time:   {report.duration_seconds * 1000:.1f} ms")

    print("\nBins:")
    for b in engine.bins:
        print(f"  {b.index:>3}  [{b.lower_bound:+.5f}, {b.upper_bound:+.5f}]")

    if terminals:
        print(f"\nTop {min(top, len(terminals))} sequences by weight:")
        for view in terminals[:top]:
            path = _path_to(snapshot.root, view.id)
            stats = view.stats
            print(
                f"  {path}  w={view.weight:<5} {view.synthesis.value:<4} "
                f"buy={stats.buy_wins} sell={stats.sell_wins} hold={stats.hold_count}"
            )
    print("=" * 60 + "\n")


def _path_to(root, node_id):
    stack = [(root, ())]
    while stack:
        view, path = stack.pop()
        if view.id == node_id:
            return path
        for child in view.children:
            stack.append((child, path + (child.symbol,)))
    return ()


def main(argv=None):
    """Main training function."""
    args = parse_args(argv)
    config = Config.load(args.config)
    setup_logger(config.logging)

    engine = STDSEngine(data_dir=config.get_data_dir(), date_column=config.data.date_column)

    try:
        engine.initialize(build_engine_config(config, args))
        engine.load_data(args.data)
        engine.train()
    except STDSError as e:
        logger.error(f"Training failed: {e}")
        return 1

    print_training_summary(engine, top=args.top)

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(engine.get_tree_snapshot().to_json(indent=2))
        logger.info(f"Tree snapshot written to {output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
