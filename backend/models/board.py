from typing import List, Optional, Tuple
from game_logic import (
    BOARD_SIZE, WHITE, BLACK, PAWN, KNIGHT, BISHOP, ROOK, QUEEN, KING,
    Piece, Move, CastlingMove, EnPassantMove, Square, Grid,
    empty_grid, is_in_bounds, get_possible_moves, get_all_possible_moves,
    is_king_attacked, opponent
)

BACK_RANK = [ROOK, KNIGHT, BISHOP, QUEEN, KING, BISHOP, KNIGHT, ROOK]

# Letters accepted by Board.from_rows(); uppercase is white, lowercase is black
ROW_LETTERS = {"p": PAWN, "n": KNIGHT, "b": BISHOP, "r": ROOK, "q": QUEEN, "k": KING}


class Board:
    """
    An 8x8 chess board together with the bookkeeping needed for draw detection.

    Row 0 is black's back rank and row 7 is white's, so white pawns move
    towards row 0. The board tracks a half-move clock, the list of
    (position hash, side to move) pairs seen in the game and the square a pawn
    skipped on the last double push.
    """

    def __init__(self, filter_self_check: bool = True):
        self.filter_self_check = filter_self_check
        self.grid: Grid = empty_grid()
        self.half_move_clock = 0
        self.position_history: List[Tuple[str, str]] = []
        self.en_passant_target: Optional[Square] = None
        self.initialize_board()

    def initialize_board(self) -> None:
        """Reset to the standard starting position."""
        self.grid = empty_grid()
        for col, piece_type in enumerate(BACK_RANK):
            self.grid[0][col] = Piece(piece_type, BLACK)
            self.grid[1][col] = Piece(PAWN, BLACK)
            self.grid[6][col] = Piece(PAWN, WHITE)
            self.grid[7][col] = Piece(piece_type, WHITE)
        self._reset_history(WHITE)

    def _reset_history(self, side_to_move: str) -> None:
        self.half_move_clock = 0
        self.en_passant_target = None
        self.position_history = [(self.position_hash(), side_to_move)]

    @classmethod
    def from_rows(cls, rows: List[str], side_to_move: str = WHITE,
                  filter_self_check: bool = True) -> 'Board':
        """
        Build a board from 8 strings, top row first.

        Uppercase letters are white pieces, lowercase black, anything else is
        an empty square. Pawns off their start row and kings or rooks off
        their home squares are marked as moved.
        """
        if len(rows) != BOARD_SIZE or any(len(row) != BOARD_SIZE for row in rows):
            raise ValueError("Board rows must be 8 strings of 8 characters")

        board = cls(filter_self_check=filter_self_check)
        board.grid = empty_grid()
        for row_idx, row in enumerate(rows):
            for col_idx, cell in enumerate(row):
                piece_type = ROW_LETTERS.get(cell.lower())
                if piece_type is None:
                    continue
                color = WHITE if cell.isupper() else BLACK
                piece = Piece(piece_type, color)
                home_row = 7 if color == WHITE else 0
                if piece_type == PAWN:
                    piece.has_moved = row_idx != (6 if color == WHITE else 1)
                elif piece_type == KING:
                    piece.has_moved = (row_idx, col_idx) != (home_row, 4)
                elif piece_type == ROOK:
                    piece.has_moved = (row_idx, col_idx) not in ((home_row, 0), (home_row, 7))
                board.grid[row_idx][col_idx] = piece
        board._reset_history(side_to_move)
        return board

    def get_piece(self, row: int, col: int) -> Optional[Piece]:
        if not is_in_bounds(row, col):
            return None
        return self.grid[row][col]

    def set_piece(self, row: int, col: int, piece: Optional[Piece]) -> None:
        if is_in_bounds(row, col):
            self.grid[row][col] = piece

    def valid_moves(self, square: Square) -> List[Move]:
        """Moves available to the piece on the given square."""
        row, col = square
        if not is_in_bounds(row, col):
            return []
        return get_possible_moves(self.grid, row, col, self.en_passant_target, self.filter_self_check)

    def get_all_valid_moves(self, color: str) -> List[Move]:
        return get_all_possible_moves(self.grid, color, self.en_passant_target, self.filter_self_check)

    def captured_piece(self, move: Move) -> Optional[Piece]:
        """The piece the move would capture, if any."""
        if isinstance(move, EnPassantMove):
            return self.get_piece(*move.captured_square)
        return self.get_piece(*move.to_sq)

    def move_piece(self, from_sq: Square, to_sq: Square,
                   castling: Optional[Tuple[Square, Square]] = None,
                   en_passant: Optional[Square] = None) -> bool:
        """
        Move the piece on from_sq to to_sq.

        castling is the (rook_from, rook_to) pair of a castling move and
        en_passant the square of the pawn taken en passant. Returns False and
        leaves the board untouched when from_sq is empty.
        """
        piece = self.get_piece(*from_sq)
        if piece is None:
            return False

        captured = self.get_piece(*to_sq)
        if en_passant is not None:
            captured = self.get_piece(*en_passant)
            self.set_piece(en_passant[0], en_passant[1], None)

        piece.has_moved = True
        self.set_piece(to_sq[0], to_sq[1], piece)
        self.set_piece(from_sq[0], from_sq[1], None)

        if castling is not None:
            rook_from, rook_to = castling
            rook = self.get_piece(*rook_from)
            if rook is not None:
                rook.has_moved = True
                self.set_piece(rook_to[0], rook_to[1], rook)
                self.set_piece(rook_from[0], rook_from[1], None)

        if captured is not None or piece.type == PAWN:
            self.half_move_clock = 0
        else:
            self.half_move_clock += 1

        # A double push exposes the skipped square for one ply
        self.en_passant_target = None
        if piece.type == PAWN and abs(to_sq[0] - from_sq[0]) == 2:
            self.en_passant_target = ((from_sq[0] + to_sq[0]) // 2, from_sq[1])

        self.position_history.append((self.position_hash(), opponent(piece.color)))
        return True

    def apply_move(self, move: Move) -> bool:
        """Execute any move variant."""
        castling = None
        en_passant = None
        if isinstance(move, CastlingMove):
            castling = (move.rook_from, move.rook_to)
        elif isinstance(move, EnPassantMove):
            en_passant = move.captured_square
        return self.move_piece(move.from_sq, move.to_sq, castling, en_passant)

    def is_in_check(self, color: str) -> bool:
        return is_king_attacked(self.grid, color)

    def is_checkmate(self, color: str) -> bool:
        if not self.is_in_check(color):
            return False
        return len(self.get_all_valid_moves(color)) == 0

    def is_stalemate(self, color: str) -> bool:
        if self.is_in_check(color):
            return False
        return len(self.get_all_valid_moves(color)) == 0

    def material_value(self, color: str) -> int:
        total = 0
        for row in self.grid:
            for piece in row:
                if piece is not None and piece.color == color:
                    total += piece.value
        return total

    def material_difference(self, color: str) -> int:
        """Own material minus the opponent's."""
        return self.material_value(color) - self.material_value(opponent(color))

    def position_hash(self) -> str:
        """128-character encoding of the board, two characters per square."""
        return "".join(
            piece.code if piece is not None else "--"
            for row in self.grid
            for piece in row
        )

    def clone(self) -> 'Board':
        """Create a deep copy of the board, history included."""
        new_board = Board.__new__(Board)
        new_board.filter_self_check = self.filter_self_check
        new_board.grid = [[piece.clone() if piece is not None else None for piece in row]
                          for row in self.grid]
        new_board.half_move_clock = self.half_move_clock
        new_board.position_history = list(self.position_history)
        new_board.en_passant_target = self.en_passant_target
        return new_board

    def load_state(self, other: 'Board') -> None:
        """Take over the position and history of another board in place."""
        copy = other.clone()
        self.grid = copy.grid
        self.half_move_clock = copy.half_move_clock
        self.position_history = copy.position_history
        self.en_passant_target = copy.en_passant_target

    def to_list(self) -> List[List[Optional[dict]]]:
        """Read-only snapshot of the grid for rendering collaborators."""
        return [[piece.to_dict() if piece is not None else None for piece in row] for row in self.grid]

    def render(self) -> str:
        """Text board with ranks and files, used in logs."""
        lines = []
        for row_idx, row in enumerate(self.grid):
            cells = " ".join(piece.symbol if piece is not None else "." for piece in row)
            lines.append(f"{BOARD_SIZE - row_idx} {cells}")
        lines.append("  " + " ".join("abcdefgh"))
        return "\n".join(lines)

    def __str__(self):
        return self.position_hash()
