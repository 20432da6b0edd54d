"""
Configuration settings for Q-learning chess training.
"""

import json
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict, fields


@dataclass
class TrainingConfig:
    """Hyperparameters and run settings for self-play training."""
    epsilon: float = 0.1            # Exploration rate
    learning_rate: float = 0.1      # Alpha
    discount: float = 0.9           # Gamma
    max_moves: int = 200            # Plies before a game is declared drawn
    episodes: int = 1000
    exploration_decay: float = 1.0  # Multiplied into epsilon after every episode
    min_exploration_rate: float = 0.05
    filter_self_check: bool = True
    save_path: str = "simulation_results/q_tables"
    backup_url: Optional[str] = None  # Remote endpoint receiving Q-table backups
    backup_interval: int = 10         # Saves between remote backups
    report_interval: int = 10
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError when a setting is out of range."""
        validate_parameters(
            epsilon=self.epsilon,
            learning_rate=self.learning_rate,
            discount=self.discount,
            max_moves=self.max_moves
        )
        if self.episodes < 0:
            raise ValueError(f"episodes must be non-negative, got {self.episodes}")
        if not 0.0 < self.exploration_decay <= 1.0:
            raise ValueError(f"exploration_decay must be in (0, 1], got {self.exploration_decay}")
        if not 0.0 <= self.min_exploration_rate <= 1.0:
            raise ValueError(f"min_exploration_rate must be in [0, 1], got {self.min_exploration_rate}")
        if self.backup_interval < 1:
            raise ValueError(f"backup_interval must be at least 1, got {self.backup_interval}")
        if self.report_interval < 1:
            raise ValueError(f"report_interval must be at least 1, got {self.report_interval}")

    def training_parameters(self) -> Dict[str, Any]:
        return {
            "epsilon": self.epsilon,
            "learning_rate": self.learning_rate,
            "discount": self.discount,
            "max_moves": self.max_moves
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)


def validate_parameters(epsilon=None, learning_rate=None, discount=None, max_moves=None) -> None:
    """Check the live training parameters. Parameters left as None are not checked."""
    if epsilon is not None and not 0.0 <= epsilon <= 1.0:
        raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")
    if learning_rate is not None and not 0.0 < learning_rate <= 1.0:
        raise ValueError(f"learning_rate must be in (0, 1], got {learning_rate}")
    if discount is not None and not 0.0 <= discount <= 1.0:
        raise ValueError(f"discount must be in [0, 1], got {discount}")
    if max_moves is not None and (isinstance(max_moves, bool) or not isinstance(max_moves, int) or max_moves < 1):
        raise ValueError(f"max_moves must be a positive integer, got {max_moves}")


def load_config(config_path: str) -> TrainingConfig:
    """Load training configuration from a JSON file."""
    with open(config_path, 'r') as f:
        return TrainingConfig.from_dict(json.load(f))
