"""
STDS - Sequential Trading Decision System
=========================================

Sequence-tree trading engine: discretizes returns into bins, builds a
prefix tree of observed bin-sequences annotated with outcome statistics,
and matches live bars against it for BUY / SELL / HOLD / NONE decisions.

Modules:
--------
- core: Configuration, errors, logging, types
- tree: Binner, sequence extraction, labeling, trainer, synthesis, inference
- engine: Lifecycle state machine over the tree pipeline
- session: Engine ownership and background training
- events: Bounded notification channel
- data_loader: CSV / DataFrame bar loading
- server: JSON HTTP API
- monitoring: Prometheus metrics

Usage:
------
    from stds import STDSEngine

    engine = STDSEngine()
    engine.initialize({'numBins': 10, 'sequenceLength': 5})
    engine.load_data('data/sample.csv')
    engine.train()

Quick Start:
------------
    # Start the API server
    python run_server.py --config config.yaml

    # Train from the command line
    python scripts/train_model.py data/sample.csv
"""

__version__ = "1.0.0"
__author__ = "STDS"

from .core import Config, EngineConfig, Decision, EngineState, PriceBar
from .engine import STDSEngine, TrainingReport
from .events import NotificationChannel, EventLog, Event
from .session import EngineContext, EngineHandle, TrainingJob

__all__ = [
    'Config',
    'EngineConfig',
    'Decision',
    'EngineState',
    'PriceBar',
    'STDSEngine',
    'TrainingReport',
    'NotificationChannel',
    'EventLog',
    'Event',
    'EngineContext',
    'EngineHandle',
    'TrainingJob',
]
