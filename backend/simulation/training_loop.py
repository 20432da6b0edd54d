"""
Self-play training loop for the Q-learning chess agents.

The loop owns the board and advances the game one ply per step() call. It
never waits or sleeps: whoever drives it (the batch trainer, the HTTP app or
a test) decides the pacing.
"""

import logging
import random
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from game_logic import WHITE, BLACK, Move, Piece, opponent
from models.board import Board
from models.game_state import GameStateClassifier, GameStatus
from models.q_agent import ChessAgent
from models.q_table import QTable
from simulation.config import TrainingConfig, validate_parameters

logger = logging.getLogger(__name__)

TRAINING_MODE = "training"
HUMAN_MODE = "human_vs_ai"
GAME_MODES = (TRAINING_MODE, HUMAN_MODE)


class LoopStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    EPISODE_END = "episode_end"


class IllegalMoveError(ValueError):
    """A submitted move is not in the current list of legal moves."""


def _empty_metrics() -> Dict[str, Any]:
    return {
        "total_games": 0,
        "white_wins": 0,
        "black_wins": 0,
        "draws": 0,
        "total_moves": 0,
        "avg_moves_per_game": 0.0
    }


class TrainingLoop:
    """
    Runs games between a white and a black ChessAgent and lets each agent
    learn from its own moves. A human can take one side in human_vs_ai mode.
    """

    def __init__(self, white_agent: Optional[ChessAgent] = None, black_agent: Optional[ChessAgent] = None,
                 config: Optional[TrainingConfig] = None,
                 persistence_hook: Optional[Callable[[str, Dict], None]] = None, seed=None):
        config = config or TrainingConfig()
        rng = random.Random(seed if seed is not None else config.seed)

        self.white_agent = white_agent or ChessAgent(WHITE, seed=rng.random())
        self.black_agent = black_agent or ChessAgent(BLACK, seed=rng.random())
        self.board = Board(filter_self_check=config.filter_self_check)
        self.classifier = GameStateClassifier()

        # Training parameters
        self.epsilon = config.epsilon
        self.learning_rate = config.learning_rate
        self.discount = config.discount
        self.max_moves = config.max_moves

        # Training state
        self.status = LoopStatus.IDLE
        self.current_episode = 0
        self.current_move = 0
        self.current_color = WHITE
        self.episode_history: List[Dict[str, Any]] = []
        self.metrics = _empty_metrics()

        # Human play
        self.game_mode = TRAINING_MODE
        self.human_color = WHITE
        self.human_moves: List[Dict[str, Any]] = []
        self.human_games = 0
        self.human_wins = 0

        # Collaborators
        self.persistence_hook = persistence_hook
        self.on_move_complete: Optional[Callable[[Dict], None]] = None
        self.on_game_complete: Optional[Callable[[Dict], None]] = None
        self.on_metrics_update: Optional[Callable[[Dict], None]] = None
        self.on_persistence_error: Optional[Callable[[str, Exception], None]] = None

        self.start_new_episode()

    @property
    def is_running(self) -> bool:
        return self.status == LoopStatus.RUNNING

    def agent_for(self, color: str) -> ChessAgent:
        return self.white_agent if color == WHITE else self.black_agent

    def start(self) -> None:
        self.status = LoopStatus.RUNNING

    def pause(self) -> None:
        self.status = LoopStatus.IDLE

    def start_new_episode(self) -> None:
        self.current_episode += 1
        self.current_move = 0
        self.current_color = WHITE
        self.board.initialize_board()
        self.white_agent.reset()
        self.black_agent.reset()
        self.episode_history = []

    def reset_episode(self) -> None:
        """Abandon the current game without recording it."""
        self.start_new_episode()
        self._notify_metrics()

    def reset_training(self) -> None:
        """Forget all knowledge and metrics and start over."""
        self.white_agent.clear_knowledge()
        self.black_agent.clear_knowledge()
        self.metrics = _empty_metrics()
        self.human_moves = []
        self.human_games = 0
        self.human_wins = 0
        self.current_episode = 0
        self.start_new_episode()
        self.save_knowledge()
        self._notify_metrics()

    def set_parameters(self, epsilon: Optional[float] = None, learning_rate: Optional[float] = None,
                       discount: Optional[float] = None, max_moves: Optional[int] = None) -> None:
        """Update any of the training parameters. Nothing changes if one is invalid."""
        validate_parameters(epsilon=epsilon, learning_rate=learning_rate, discount=discount, max_moves=max_moves)
        if epsilon is not None:
            self.epsilon = epsilon
        if learning_rate is not None:
            self.learning_rate = learning_rate
        if discount is not None:
            self.discount = discount
        if max_moves is not None:
            self.max_moves = max_moves

    def get_parameters(self) -> Dict[str, Any]:
        return {
            "epsilon": self.epsilon,
            "learning_rate": self.learning_rate,
            "discount": self.discount,
            "max_moves": self.max_moves
        }

    def set_game_mode(self, mode: str, human_color: str = WHITE) -> None:
        if mode not in GAME_MODES:
            raise ValueError(f"Unknown game mode: {mode}")
        if human_color not in (WHITE, BLACK):
            raise ValueError(f"Unknown color: {human_color}")
        self.game_mode = mode
        self.human_color = human_color
        logger.info(f"Game mode set to {mode}" + (f" (human plays {human_color})" if mode == HUMAN_MODE else ""))

    def is_human_turn(self) -> bool:
        return self.game_mode == HUMAN_MODE and self.current_color == self.human_color

    def _check_terminal(self) -> Tuple[Optional[Dict[str, Any]], List[Move]]:
        """End the episode if the side to move cannot continue. Returns (result, legal moves)."""
        if self.current_move >= self.max_moves:
            return self.end_episode("draw", GameStatus.MAX_MOVES.value), []

        draw = self.classifier.draw_reason(self.board, self.current_color)
        if draw is not None:
            return self.end_episode("draw", draw.value), []

        valid_moves = self.board.get_all_valid_moves(self.current_color)
        if not valid_moves:
            if self.board.is_in_check(self.current_color):
                return self.end_episode(opponent(self.current_color), GameStatus.CHECKMATE.value), []
            return self.end_episode("draw", GameStatus.STALEMATE.value), []

        return None, valid_moves

    def step(self) -> Dict[str, Any]:
        """Play a single ply."""
        if not self.is_running:
            return {"game_complete": False}

        result, valid_moves = self._check_terminal()
        if result is not None:
            return result

        if self.is_human_turn():
            return {"game_complete": False, "waiting_for_human": True}

        color = self.current_color
        agent = self.agent_for(color)

        current_state = agent.get_state(self.board)
        action = agent.select_action(current_state, valid_moves, self.epsilon)
        captured_piece = agent.execute_action(self.board, action)
        self._record_move(color, action, captured_piece)

        # Reward reflects the effect of the move on the opponent
        outcome = agent.evaluate_move_outcome(self.board, captured_piece)
        agent.total_reward += outcome["reward"]

        next_state = agent.get_state(self.board)
        next_moves = self.board.get_all_valid_moves(agent.color)
        agent.update_q(current_state, action, outcome["reward"], next_state, next_moves,
                       self.learning_rate, self.discount)

        agent.last_state = current_state
        agent.last_action = action

        if outcome["is_checkmate"]:
            return self.end_episode(color, GameStatus.CHECKMATE.value)
        if outcome["is_stalemate"]:
            return self.end_episode("draw", GameStatus.STALEMATE.value)

        self._advance_turn(color, action)
        return {"game_complete": False, "move": action, "reward": outcome["reward"]}

    def training_batch(self, steps: int) -> Dict[str, Any]:
        """Run up to `steps` plies, stopping early when a game ends."""
        result = {"game_complete": False}
        for _ in range(steps):
            result = self.step()
            if result.get("game_complete") or result.get("waiting_for_human"):
                break
        return result

    def run_episode(self) -> Dict[str, Any]:
        """Step until the current game is over. The loop must be running."""
        if not self.is_running:
            raise RuntimeError("Training loop is not running")
        if self.game_mode != TRAINING_MODE:
            raise RuntimeError("Whole episodes can only be run in training mode")

        while True:
            result = self.step()
            if result.get("game_complete") or not self.is_running:
                return result

    def _record_move(self, color: str, move: Move, captured_piece: Optional[Piece]) -> None:
        self.episode_history.append({
            "move": self.current_move,
            "color": color,
            "from": move.from_sq,
            "to": move.to_sq,
            "captured": captured_piece.type if captured_piece is not None else None
        })

    def _advance_turn(self, color: str, action: Move) -> None:
        self.current_color = opponent(color)
        self.current_move += 1
        if self.on_move_complete is not None:
            self.on_move_complete({"move": self.current_move, "color": color, "action": action})
        self._notify_metrics()

    def end_episode(self, result: str, reason: str) -> Dict[str, Any]:
        """
        Record the finished game and start a new one.

        result is the winning color or "draw".
        """
        resume = self.status == LoopStatus.RUNNING
        self.status = LoopStatus.EPISODE_END

        game_result = {
            "game": self.current_episode,
            "result": result,
            "reason": reason,
            "moves": self.current_move,
            "history": list(self.episode_history)
        }

        self.metrics["total_games"] += 1
        self.metrics["total_moves"] += self.current_move
        self.metrics["avg_moves_per_game"] = self.metrics["total_moves"] / self.metrics["total_games"]

        if result == WHITE:
            self.metrics["white_wins"] += 1
            self.white_agent.record_game_result("win")
            self.black_agent.record_game_result("loss")
        elif result == BLACK:
            self.metrics["black_wins"] += 1
            self.white_agent.record_game_result("loss")
            self.black_agent.record_game_result("win")
        else:
            self.metrics["draws"] += 1
            self.white_agent.record_game_result("draw")
            self.black_agent.record_game_result("draw")

        if self.game_mode == HUMAN_MODE:
            self.human_games += 1
            if result == self.human_color:
                self.human_wins += 1

        logger.info(f"Game {self.current_episode} finished: {result} ({reason}) after {self.current_move} moves")
        logger.debug(f"Final position:\n{self.board.render()}")

        self.save_knowledge()
        self._notify_metrics()
        if self.on_game_complete is not None:
            self.on_game_complete(game_result)

        self.start_new_episode()

        # A callback may have paused the loop in the meantime
        if self.status == LoopStatus.EPISODE_END:
            self.status = LoopStatus.RUNNING if resume else LoopStatus.IDLE

        return {"game_complete": True, "result": result, "reason": reason, "moves": game_result["moves"]}

    def save_knowledge(self) -> None:
        """Hand both Q-tables to the persistence hook. Failures never stop training."""
        if self.persistence_hook is None:
            return
        for agent in (self.white_agent, self.black_agent):
            try:
                self.persistence_hook(agent.color, agent.q_table.export_snapshot())
            except Exception as e:
                logger.error(f"Error saving {agent.color} knowledge: {e}")
                if self.on_persistence_error is not None:
                    self.on_persistence_error(agent.color, e)

    def register_human_move(self, move: Move, captured_piece: Optional[Piece]) -> Tuple[Board, Dict[str, Any]]:
        """
        Let the agent of the moving side learn from a human move.

        The move is played on a copy of the board; the copy is returned so the
        caller can adopt it. The real board is not touched.
        """
        agent = self.agent_for(self.current_color)
        state = agent.get_state(self.board)

        next_board = self.board.clone()
        agent.execute_action(next_board, move)

        outcome = agent.evaluate_move_outcome(next_board, captured_piece)
        next_state = agent.get_state(next_board)
        next_moves = next_board.get_all_valid_moves(agent.color)
        agent.update_q(state, move, outcome["reward"], next_state, next_moves,
                       self.learning_rate, self.discount)

        agent.total_reward += outcome["reward"]
        agent.last_state = state
        agent.last_action = move

        self.human_moves.append({
            "game": self.current_episode,
            "move": self.current_move,
            "color": self.current_color,
            "from": move.from_sq,
            "to": move.to_sq,
            "captured": captured_piece.type if captured_piece is not None else None,
            "reward": outcome["reward"]
        })
        return next_board, outcome

    def play_human_move(self, move: Move) -> Dict[str, Any]:
        """
        Play a move chosen by the human player.

        Raises IllegalMoveError, leaving everything untouched, if the move is
        not currently legal.
        """
        if not self.is_human_turn():
            raise IllegalMoveError("It is not the human player's turn")

        result, valid_moves = self._check_terminal()
        if result is not None:
            return result

        if move not in valid_moves:
            raise IllegalMoveError(f"Illegal move {move.key}")

        color = self.current_color
        captured_piece = self.board.captured_piece(move)
        next_board, outcome = self.register_human_move(move, captured_piece)
        self.board.load_state(next_board)
        self._record_move(color, move, captured_piece)

        if outcome["is_checkmate"]:
            return self.end_episode(color, GameStatus.CHECKMATE.value)
        if outcome["is_stalemate"]:
            return self.end_episode("draw", GameStatus.STALEMATE.value)

        self._advance_turn(color, move)
        return {"game_complete": False, "move": move, "reward": outcome["reward"]}

    def find_legal_move(self, from_sq, to_sq) -> Optional[Move]:
        """Look up the legal move of the side to move between two squares."""
        for move in self.board.get_all_valid_moves(self.current_color):
            if move.from_sq == tuple(from_sq) and move.to_sq == tuple(to_sq):
                return move
        return None

    def export_knowledge(self) -> Dict[str, Any]:
        return {
            "white": self.white_agent.q_table.export_snapshot(),
            "black": self.black_agent.q_table.export_snapshot(),
            "timestamp": datetime.now().isoformat()
        }

    def import_knowledge(self, knowledge: Dict[str, Any]) -> bool:
        """Load both Q-tables. Either every table present is replaced or none is."""
        if not isinstance(knowledge, dict):
            return False

        staged = []
        for color in (WHITE, BLACK):
            if color not in knowledge:
                continue
            table = QTable()
            if not table.import_snapshot(knowledge[color]):
                return False
            staged.append((self.agent_for(color), table))

        if not staged:
            return False

        for agent, table in staged:
            agent.q_table.table = table.table
        return True

    def _notify_metrics(self) -> None:
        if self.on_metrics_update is not None:
            self.on_metrics_update(self.get_metrics())

    def get_metrics(self) -> Dict[str, Any]:
        total = self.metrics["total_games"]
        return {
            "current_game": self.current_episode,
            "current_move": self.current_move,
            "current_color": self.current_color,
            **self.metrics,
            "white_win_rate": (self.metrics["white_wins"] / total) * 100 if total > 0 else 0.0,
            "black_win_rate": (self.metrics["black_wins"] / total) * 100 if total > 0 else 0.0,
            "human_games": self.human_games,
            "human_wins": self.human_wins,
            "white_agent": self.white_agent.get_stats(),
            "black_agent": self.black_agent.get_stats()
        }

    def get_snapshot(self) -> Dict[str, Any]:
        """Read-only view of the game for rendering."""
        return {
            "board": self.board.to_list(),
            "current_game": self.current_episode,
            "current_move": self.current_move,
            "current_color": self.current_color,
            "status": self.status.value,
            "game_mode": self.game_mode,
            "human_color": self.human_color,
            "in_check": self.board.is_in_check(self.current_color),
            "last_move": self.episode_history[-1] if self.episode_history else None
        }
