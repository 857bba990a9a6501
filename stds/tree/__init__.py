"""
Sequence Tree
=============
Binning, sequence extraction, outcome labeling, tree training, synthesis,
live inference, and snapshots.
"""

from .binner import Binner
from .inference import LiveInferenceEngine
from .labeling import OutcomeLabeler
from .node import NodeState, TreeNode
from .sequences import SequenceExtractor, SequenceSample, compute_returns
from .snapshot import NodeView, TreeSnapshot
from .synthesis import SynthesisEngine
from .trainer import BatchResult, TreeTrainer
from .tree import SequenceTree

__all__ = [
    'Binner',
    'LiveInferenceEngine',
    'OutcomeLabeler',
    'NodeState',
    'TreeNode',
    'SequenceExtractor',
    'SequenceSample',
    'compute_returns',
    'NodeView',
    'TreeSnapshot',
    'SynthesisEngine',
    'BatchResult',
    'TreeTrainer',
    'SequenceTree',
]
