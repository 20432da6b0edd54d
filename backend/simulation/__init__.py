"""
Q-Learning Chess Simulation Package

This package provides the self-play training loop, its configuration and
the persistence of learned Q-tables.
"""

from .config import TrainingConfig, load_config
from .knowledge_store import KnowledgeStore
from .training_loop import TrainingLoop, LoopStatus, IllegalMoveError

__all__ = ["TrainingConfig", "load_config", "KnowledgeStore", "TrainingLoop", "LoopStatus", "IllegalMoveError"]
