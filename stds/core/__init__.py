"""
Core Module - Shared Components
===============================
Configuration, errors, logging, and types used across the engine.
"""

from .config import Config, EngineConfig
from .exceptions import (
    STDSError,
    InvalidConfigError,
    InvalidStateError,
    DataLoadError,
    InsufficientDataError,
    InsufficientWarmupError,
)
from .logger import resolve_level, setup_logger
from .types import Bin, Decision, EngineState, NodeStats, Outcome, PriceBar

__all__ = [
    'Config',
    'EngineConfig',
    'STDSError',
    'InvalidConfigError',
    'InvalidStateError',
    'DataLoadError',
    'InsufficientDataError',
    'InsufficientWarmupError',
    'setup_logger',
    'resolve_level',
    'Bin',
    'Decision',
    'EngineState',
    'NodeStats',
    'Outcome',
    'PriceBar',
]
