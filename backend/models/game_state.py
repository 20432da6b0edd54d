from enum import Enum
from typing import Optional, Tuple
from models.board import Board
from game_logic import opponent


class GameStatus(Enum):
    IN_PROGRESS = "in_progress"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    FIFTY_MOVE_RULE = "50_move_rule"
    THREEFOLD_REPETITION = "threefold_repetition"
    MAX_MOVES = "max_moves"


DRAW_STATUSES = {
    GameStatus.STALEMATE,
    GameStatus.FIFTY_MOVE_RULE,
    GameStatus.THREEFOLD_REPETITION,
    GameStatus.MAX_MOVES
}


class GameStateClassifier:
    """
    Derives terminal conditions of a game from a Board.

    Draw rules are checked before move availability so that a repeated or
    stale position ends the game even when moves remain.
    """

    FIFTY_MOVE_PLIES = 100
    REPETITION_COUNT = 3

    def is_fifty_move_rule(self, board: Board) -> bool:
        """100 plies without a capture or a pawn move."""
        return board.half_move_clock >= self.FIFTY_MOVE_PLIES

    def is_threefold_repetition(self, board: Board, side_to_move: str) -> bool:
        """The current position, with the same side to move, has been seen three times."""
        current = (board.position_hash(), side_to_move)
        return board.position_history.count(current) >= self.REPETITION_COUNT

    def draw_reason(self, board: Board, side_to_move: str) -> Optional[GameStatus]:
        if self.is_fifty_move_rule(board):
            return GameStatus.FIFTY_MOVE_RULE
        if self.is_threefold_repetition(board, side_to_move):
            return GameStatus.THREEFOLD_REPETITION
        return None

    def classify(self, board: Board, side_to_move: str) -> GameStatus:
        """Status of the game with side_to_move about to play."""
        draw = self.draw_reason(board, side_to_move)
        if draw is not None:
            return draw

        if board.get_all_valid_moves(side_to_move):
            return GameStatus.IN_PROGRESS
        if board.is_in_check(side_to_move):
            return GameStatus.CHECKMATE
        return GameStatus.STALEMATE

    def outcome(self, board: Board, side_to_move: str) -> Tuple[GameStatus, Optional[str]]:
        """
        Status plus result: the winning color, "draw", or None while the game
        is still in progress.
        """
        status = self.classify(board, side_to_move)
        if status == GameStatus.IN_PROGRESS:
            return status, None
        if status == GameStatus.CHECKMATE:
            return status, opponent(side_to_move)
        return status, "draw"
