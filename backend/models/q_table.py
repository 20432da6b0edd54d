import json
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional
from game_logic import Move

logger = logging.getLogger(__name__)

INITIAL_Q_RANGE = 0.05


@dataclass(frozen=True)
class AgentState:
    """Lookup key for the Q-table: board hash, side and material balance."""
    board_hash: str
    color: str
    material_delta: int

    @property
    def key(self) -> str:
        return json.dumps({"board": self.board_hash, "color": self.color, "material": self.material_delta})


def _state_key(state) -> str:
    return state if isinstance(state, str) else state.key


def _action_key(action) -> str:
    return action if isinstance(action, str) else action.key


class QTable:
    """
    Sparse Q-table mapping state key -> action key -> Q-value.

    Entries are created on first read and seeded with a small random value so
    never-visited actions do not all tie. Reading is therefore a mutation.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.table: Dict[str, Dict[str, float]] = {}
        self.rng = rng or random.Random()

    def _initial_value(self) -> float:
        return (self.rng.random() - 0.5) * 2 * INITIAL_Q_RANGE

    def get_q_values(self, state) -> Dict[str, float]:
        key = _state_key(state)
        if key not in self.table:
            self.table[key] = {}
        return self.table[key]

    def get_q_value(self, state, action) -> float:
        q_values = self.get_q_values(state)
        action_key = _action_key(action)
        if action_key not in q_values:
            q_values[action_key] = self._initial_value()
        return q_values[action_key]

    def set_q_value(self, state, action, value: float) -> None:
        self.get_q_values(state)[_action_key(action)] = value

    def get_best_action(self, state, actions: List[Move]) -> Optional[Move]:
        """Action with the highest Q-value; ties are broken at random."""
        if not actions:
            return None

        max_q = -math.inf
        best_actions = []
        for action in actions:
            q_value = self.get_q_value(state, action)
            if q_value > max_q:
                max_q = q_value
                best_actions = [action]
            elif q_value == max_q:
                best_actions.append(action)

        return self.rng.choice(best_actions)

    def size(self) -> int:
        """Number of states stored."""
        return len(self.table)

    def total_entries(self) -> int:
        """Number of (state, action) entries stored."""
        return sum(len(actions) for actions in self.table.values())

    def clear(self) -> None:
        self.table.clear()

    def export_snapshot(self) -> Dict[str, List[List]]:
        """Serialisable copy: {state_key: [[action_key, q_value], ...]}."""
        return {
            state_key: [[action_key, q_value] for action_key, q_value in actions.items()]
            for state_key, actions in self.table.items()
        }

    def import_snapshot(self, data) -> bool:
        """
        Replace the table with the contents of a snapshot.

        The whole input is validated before anything is replaced; on malformed
        data the current table is left as it was and False is returned.
        """
        try:
            new_table = _parse_snapshot(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected Q-table snapshot: {e}")
            return False

        self.table = new_table
        logger.info(f"Imported Q-table with {self.size()} states and {self.total_entries()} entries")
        return True


def _parse_snapshot(data) -> Dict[str, Dict[str, float]]:
    if not isinstance(data, dict):
        raise TypeError("snapshot must be a mapping of state keys")

    table = {}
    for state_key, entries in data.items():
        if not isinstance(state_key, str):
            raise TypeError(f"state key {state_key!r} is not a string")
        if not isinstance(entries, (list, tuple)):
            raise TypeError(f"entries for state {state_key!r} must be a list of pairs")

        actions = {}
        for entry in entries:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ValueError(f"malformed entry {entry!r} in state {state_key!r}")
            action_key, q_value = entry
            if not isinstance(action_key, str):
                raise TypeError(f"action key {action_key!r} is not a string")
            if isinstance(q_value, bool) or not isinstance(q_value, (int, float)):
                raise TypeError(f"Q-value {q_value!r} is not a number")
            if not math.isfinite(q_value):
                raise ValueError(f"Q-value {q_value!r} is not finite")
            actions[action_key] = float(q_value)
        table[state_key] = actions

    return table
