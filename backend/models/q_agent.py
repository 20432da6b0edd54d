from typing import List, Optional, Dict
import logging
import random
from models.board import Board
from models.q_table import QTable, AgentState
from game_logic import (
    Move, Piece, PAWN, KNIGHT, BISHOP, ROOK, QUEEN, PIECE_VALUES,
    opponent, promotion_row
)

logger = logging.getLogger(__name__)

# Reward shaping
CAPTURE_REWARD_MULTIPLIER = 10
CHECK_REWARD = 5
CHECKMATE_REWARD = 1000
STALEMATE_PENALTY = 100
MATERIAL_REWARD_MULTIPLIER = 2
MOVE_COST = 0.1

GAME_OUTCOMES = ("win", "loss", "draw")


def encode_state(board: Board, color: str) -> AgentState:
    """Encode the board as seen by the given side."""
    return AgentState(
        board_hash=board.position_hash(),
        color=color,
        material_delta=board.material_difference(color)
    )


def calculate_reward(captured_piece: Optional[Piece], is_check: bool, is_checkmate: bool,
                     is_stalemate: bool, material_diff: float) -> float:
    """
    Reward for the move just made.

    The check, checkmate and stalemate flags describe the opponent after the
    move; material_diff is the mover's material minus the opponent's.
    """
    reward = 0.0

    if captured_piece is not None:
        reward += PIECE_VALUES[captured_piece.type] * CAPTURE_REWARD_MULTIPLIER

    if is_check:
        reward += CHECK_REWARD

    if is_checkmate:
        reward += CHECKMATE_REWARD

    if is_stalemate:
        reward -= STALEMATE_PENALTY

    reward += material_diff * MATERIAL_REWARD_MULTIPLIER

    # Small cost per move to favour shorter games
    reward -= MOVE_COST

    return reward


class ChessAgent:
    """
    Q-learning agent for one side of the board.
    Owns its Q-table; the board is only ever passed in per call.
    """

    def __init__(self, color: str, q_table: Optional[QTable] = None, seed=None):
        self.color = color
        self.rng = random.Random(seed)
        self.q_table = q_table if q_table is not None else QTable(rng=self.rng)

        # Episode-scoped
        self.last_state: Optional[AgentState] = None
        self.last_action: Optional[Move] = None
        self.total_reward = 0.0

        # Cumulative
        self.games_played = 0
        self.games_won = 0
        self.games_lost = 0
        self.games_drawn = 0

    def get_state(self, board: Board) -> AgentState:
        return encode_state(board, self.color)

    def select_action(self, state: AgentState, actions: List[Move], epsilon: float) -> Optional[Move]:
        """Choose an action using the epsilon-greedy strategy."""
        if not actions:
            return None

        # Exploration: random action with probability epsilon
        if self.rng.random() < epsilon:
            return self.rng.choice(actions)

        # Exploitation: best known action
        return self.q_table.get_best_action(state, actions)

    def execute_action(self, board: Board, action: Move) -> Optional[Piece]:
        """
        Apply the action to the board and return the captured piece, if any.
        A pawn reaching the far rank is promoted using the promotion heuristic.
        """
        piece = board.get_piece(*action.from_sq)
        captured_piece = board.captured_piece(action)

        if not board.apply_move(action):
            logger.warning(f"{self.color} tried to move from empty square {action.from_sq}")
            return None

        if piece.type == PAWN and action.to_sq[0] == promotion_row(piece.color):
            promoted = self.choose_promotion_piece(board)
            promoted.has_moved = True
            board.set_piece(action.to_sq[0], action.to_sq[1], promoted)

        return captured_piece

    def choose_promotion_piece(self, board: Board) -> Piece:
        """
        Pick the promotion piece from the material balance on the board.

        Ahead or level: always a queen. Slightly behind: mostly a queen,
        sometimes a rook. Further behind the choice gets more random.
        """
        material_advantage = board.material_difference(self.color)

        if material_advantage >= 0:
            return Piece(QUEEN, self.color)

        if material_advantage >= -2:
            piece_type = QUEEN if self.rng.random() < 0.7 else ROOK
            return Piece(piece_type, self.color)

        if material_advantage >= -4:
            return Piece(self.rng.choice([QUEEN, ROOK, BISHOP]), self.color)

        return Piece(self.rng.choice([QUEEN, ROOK, BISHOP, KNIGHT]), self.color)

    def calculate_reward(self, captured_piece: Optional[Piece], is_check: bool, is_checkmate: bool,
                         is_stalemate: bool, material_diff: float) -> float:
        return calculate_reward(captured_piece, is_check, is_checkmate, is_stalemate, material_diff)

    def evaluate_move_outcome(self, board: Board, captured_piece: Optional[Piece]) -> Dict:
        """Reward signals of the position after this agent's move."""
        enemy = opponent(self.color)
        is_check = board.is_in_check(enemy)
        enemy_can_move = len(board.get_all_valid_moves(enemy)) > 0
        is_checkmate = is_check and not enemy_can_move
        is_stalemate = not is_check and not enemy_can_move
        material_diff = board.material_difference(self.color)
        reward = self.calculate_reward(captured_piece, is_check, is_checkmate, is_stalemate, material_diff)
        return {
            "reward": reward,
            "is_check": is_check,
            "is_checkmate": is_checkmate,
            "is_stalemate": is_stalemate,
            "material_diff": material_diff
        }

    def update_q(self, state: AgentState, action: Move, reward: float, next_state: AgentState,
                 next_actions: List[Move], learning_rate: float, discount: float) -> float:
        """Update the Q-table with the Bellman equation and return the new value."""
        current_q = self.q_table.get_q_value(state, action)

        max_next_q = 0.0
        if next_actions:
            max_next_q = max(self.q_table.get_q_value(next_state, a) for a in next_actions)

        new_q = current_q + learning_rate * (reward + discount * max_next_q - current_q)
        self.q_table.set_q_value(state, action, new_q)
        return new_q

    def reset(self) -> None:
        """Clear episode state before a new game."""
        self.last_state = None
        self.last_action = None
        self.total_reward = 0.0

    def record_game_result(self, result: str) -> None:
        if result not in GAME_OUTCOMES:
            raise ValueError(f"Unknown game result: {result}")

        self.games_played += 1
        if result == "win":
            self.games_won += 1
        elif result == "loss":
            self.games_lost += 1
        else:
            self.games_drawn += 1

    def get_stats(self) -> Dict:
        win_rate = (self.games_won / self.games_played) * 100 if self.games_played > 0 else 0.0
        return {
            "color": self.color,
            "games_played": self.games_played,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "games_drawn": self.games_drawn,
            "win_rate": win_rate,
            "q_table_size": self.q_table.size(),
            "total_entries": self.q_table.total_entries()
        }

    def clear_knowledge(self) -> None:
        """Forget everything learned, statistics included."""
        self.q_table.clear()
        self.games_played = 0
        self.games_won = 0
        self.games_lost = 0
        self.games_drawn = 0
        self.reset()
