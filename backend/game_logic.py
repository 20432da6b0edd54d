from dataclasses import dataclass
from typing import List, Optional, Tuple

BOARD_SIZE = 8

WHITE = "white"
BLACK = "black"

PAWN = "pawn"
KNIGHT = "knight"
BISHOP = "bishop"
ROOK = "rook"
QUEEN = "queen"
KING = "king"

PIECE_VALUES = {
    PAWN: 1,
    KNIGHT: 3,
    BISHOP: 3,
    ROOK: 5,
    QUEEN: 9,
    KING: 0
}

# One-letter codes used in the position hash. Knight is "n" so it does not clash with king.
PIECE_CODES = {
    PAWN: "p",
    KNIGHT: "n",
    BISHOP: "b",
    ROOK: "r",
    QUEEN: "q",
    KING: "k"
}

PIECE_SYMBOLS = {
    WHITE: {PAWN: "♙", KNIGHT: "♘", BISHOP: "♗", ROOK: "♖", QUEEN: "♕", KING: "♔"},
    BLACK: {PAWN: "♟", KNIGHT: "♞", BISHOP: "♝", ROOK: "♜", QUEEN: "♛", KING: "♚"}
}

KNIGHT_OFFSETS = [(-2, -1), (-2, 1), (-1, -2), (-1, 2), (1, -2), (1, 2), (2, -1), (2, 1)]
KING_OFFSETS = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]
ROOK_DIRECTIONS = [(-1, 0), (1, 0), (0, -1), (0, 1)]
BISHOP_DIRECTIONS = [(-1, -1), (-1, 1), (1, -1), (1, 1)]

Square = Tuple[int, int]


def opponent(color: str) -> str:
    """Return the other side's color."""
    return BLACK if color == WHITE else WHITE


def pawn_direction(color: str) -> int:
    return -1 if color == WHITE else 1


def pawn_start_row(color: str) -> int:
    return 6 if color == WHITE else 1


def promotion_row(color: str) -> int:
    return 0 if color == WHITE else BOARD_SIZE - 1


def back_rank(color: str) -> int:
    return BOARD_SIZE - 1 if color == WHITE else 0


class Piece:
    """A chess piece. The board cell holding it owns it."""

    def __init__(self, piece_type: str, color: str, has_moved: bool = False):
        self.type = piece_type
        self.color = color
        self.has_moved = has_moved

    @property
    def symbol(self) -> str:
        return PIECE_SYMBOLS[self.color][self.type]

    @property
    def code(self) -> str:
        return self.color[0] + PIECE_CODES[self.type]

    @property
    def value(self) -> int:
        return PIECE_VALUES[self.type]

    def clone(self) -> 'Piece':
        return Piece(self.type, self.color, self.has_moved)

    def to_dict(self) -> dict:
        return {"type": self.type, "color": self.color, "has_moved": self.has_moved}

    def __eq__(self, other):
        if not isinstance(other, Piece):
            return NotImplemented
        return (self.type, self.color, self.has_moved) == (other.type, other.color, other.has_moved)

    def __repr__(self):
        return f"Piece({self.type!r}, {self.color!r}, has_moved={self.has_moved})"


@dataclass(frozen=True)
class Move:
    """A plain move or capture."""
    from_sq: Square
    to_sq: Square

    @property
    def key(self) -> str:
        """Action key for the Q-table. Only the two squares take part in it."""
        return f"{self.from_sq[0]},{self.from_sq[1]}-{self.to_sq[0]},{self.to_sq[1]}"

    def to_dict(self) -> dict:
        return {
            "type": "normal",
            "from": {"row": self.from_sq[0], "col": self.from_sq[1]},
            "to": {"row": self.to_sq[0], "col": self.to_sq[1]}
        }


@dataclass(frozen=True)
class CastlingMove(Move):
    rook_from: Square
    rook_to: Square

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["type"] = "castling"
        data["rook_from"] = {"row": self.rook_from[0], "col": self.rook_from[1]}
        data["rook_to"] = {"row": self.rook_to[0], "col": self.rook_to[1]}
        return data


@dataclass(frozen=True)
class EnPassantMove(Move):
    captured_square: Square

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["type"] = "en_passant"
        data["captured"] = {"row": self.captured_square[0], "col": self.captured_square[1]}
        return data


@dataclass(frozen=True)
class PromotionMove(Move):
    """Pawn reaching the far rank. The new piece is picked when the move is executed."""

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["type"] = "promotion"
        return data


Grid = List[List[Optional[Piece]]]


def empty_grid() -> Grid:
    return [[None for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]


def is_in_bounds(row: int, col: int) -> bool:
    """Check if coordinates are within the 8x8 board bounds."""
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def get_pawn_moves(grid: Grid, row: int, col: int, color: str,
                   en_passant_target: Optional[Square] = None) -> List[Move]:
    moves = []
    direction = pawn_direction(color)
    last_row = promotion_row(color)
    new_row = row + direction

    def make_move(to_row, to_col):
        if to_row == last_row:
            return PromotionMove((row, col), (to_row, to_col))
        return Move((row, col), (to_row, to_col))

    # Forward pushes
    if is_in_bounds(new_row, col) and grid[new_row][col] is None:
        moves.append(make_move(new_row, col))

        jump_row = row + 2 * direction
        if row == pawn_start_row(color) and grid[jump_row][col] is None:
            moves.append(Move((row, col), (jump_row, col)))

    # Diagonal captures
    for dc in (-1, 1):
        new_col = col + dc
        if not is_in_bounds(new_row, new_col):
            continue
        target = grid[new_row][new_col]
        if target is not None and target.color != color:
            moves.append(make_move(new_row, new_col))
        elif target is None and en_passant_target == (new_row, new_col):
            victim = grid[row][new_col]
            if victim is not None and victim.type == PAWN and victim.color != color:
                moves.append(EnPassantMove((row, col), (new_row, new_col), (row, new_col)))

    return moves


def get_offset_moves(grid: Grid, row: int, col: int, color: str, offsets) -> List[Move]:
    """Moves for knights and kings: fixed jumps onto empty or enemy squares."""
    moves = []
    for dr, dc in offsets:
        new_row, new_col = row + dr, col + dc
        if not is_in_bounds(new_row, new_col):
            continue
        target = grid[new_row][new_col]
        if target is None or target.color != color:
            moves.append(Move((row, col), (new_row, new_col)))
    return moves


def get_linear_moves(grid: Grid, row: int, col: int, color: str, directions) -> List[Move]:
    """Ray-cast moves for rooks, bishops and queens."""
    moves = []
    for dr, dc in directions:
        new_row, new_col = row + dr, col + dc
        while is_in_bounds(new_row, new_col):
            target = grid[new_row][new_col]
            if target is None:
                moves.append(Move((row, col), (new_row, new_col)))
            else:
                if target.color != color:
                    moves.append(Move((row, col), (new_row, new_col)))
                break
            new_row += dr
            new_col += dc
    return moves


def get_basic_moves(grid: Grid, row: int, col: int,
                    en_passant_target: Optional[Square] = None) -> List[Move]:
    """
    Pseudo-legal moves for the piece at (row, col), without castling.

    Castling needs attack detection, which in turn needs these moves, so it is
    kept out of this function to avoid mutual recursion.
    """
    piece = grid[row][col]
    if piece is None:
        return []

    if piece.type == PAWN:
        return get_pawn_moves(grid, row, col, piece.color, en_passant_target)
    if piece.type == KNIGHT:
        return get_offset_moves(grid, row, col, piece.color, KNIGHT_OFFSETS)
    if piece.type == KING:
        return get_offset_moves(grid, row, col, piece.color, KING_OFFSETS)
    if piece.type == ROOK:
        return get_linear_moves(grid, row, col, piece.color, ROOK_DIRECTIONS)
    if piece.type == BISHOP:
        return get_linear_moves(grid, row, col, piece.color, BISHOP_DIRECTIONS)
    if piece.type == QUEEN:
        return (get_linear_moves(grid, row, col, piece.color, ROOK_DIRECTIONS) +
                get_linear_moves(grid, row, col, piece.color, BISHOP_DIRECTIONS))
    return []


def attacks_square(grid: Grid, row: int, col: int, target: Square) -> bool:
    """Whether the piece at (row, col) attacks the target square."""
    piece = grid[row][col]
    if piece is None:
        return False

    if piece.type == PAWN:
        # Pawns attack diagonally whether or not the square is occupied
        direction = pawn_direction(piece.color)
        return target[0] == row + direction and abs(target[1] - col) == 1

    return any(move.to_sq == target for move in get_basic_moves(grid, row, col))


def is_square_attacked(grid: Grid, square: Square, by_color: str) -> bool:
    """Check if any piece of by_color attacks the given square."""
    for row in range(BOARD_SIZE):
        for col in range(BOARD_SIZE):
            piece = grid[row][col]
            if piece is not None and piece.color == by_color and attacks_square(grid, row, col, square):
                return True
    return False


def find_king(grid: Grid, color: str) -> Optional[Square]:
    for row in range(BOARD_SIZE):
        for col in range(BOARD_SIZE):
            piece = grid[row][col]
            if piece is not None and piece.type == KING and piece.color == color:
                return (row, col)
    return None


def is_king_attacked(grid: Grid, color: str) -> bool:
    """Check if the king of the given color is attacked. A missing king is never in check."""
    king_square = find_king(grid, color)
    if king_square is None:
        return False
    return is_square_attacked(grid, king_square, opponent(color))


def get_castling_moves(grid: Grid, row: int, col: int) -> List[CastlingMove]:
    """
    Castling moves for the king at (row, col).

    Requires an unmoved king on its home square that is not in check, an unmoved
    rook of the same color in the corner, empty squares in between and no
    attacked square on the king's path.
    """
    king = grid[row][col]
    if king is None or king.type != KING or king.has_moved:
        return []
    if row != back_rank(king.color) or col != 4:
        return []

    enemy = opponent(king.color)
    if is_square_attacked(grid, (row, col), enemy):
        return []

    moves = []
    # (rook column, squares that must be empty, squares the king crosses, king target, rook target)
    sides = [
        (7, [5, 6], [5, 6], 6, 5),
        (0, [1, 2, 3], [3, 2], 2, 3)
    ]
    for rook_col, between, path, king_to, rook_to in sides:
        rook = grid[row][rook_col]
        if rook is None or rook.type != ROOK or rook.color != king.color or rook.has_moved:
            continue
        if any(grid[row][c] is not None for c in between):
            continue
        if any(is_square_attacked(grid, (row, c), enemy) for c in path):
            continue
        moves.append(CastlingMove((row, col), (row, king_to), (row, rook_col), (row, rook_to)))

    return moves


def apply_move_to_grid(grid: Grid, move: Move) -> Optional[Piece]:
    """
    Move pieces on a bare grid and return the captured piece.

    Only piece placement changes; move flags and clocks are left to the caller.
    Used to test positions without touching a real board.
    """
    from_row, from_col = move.from_sq
    to_row, to_col = move.to_sq
    piece = grid[from_row][from_col]
    captured = grid[to_row][to_col]

    if isinstance(move, EnPassantMove):
        cap_row, cap_col = move.captured_square
        captured = grid[cap_row][cap_col]
        grid[cap_row][cap_col] = None

    grid[to_row][to_col] = piece
    grid[from_row][from_col] = None

    if isinstance(move, CastlingMove):
        rook_row, rook_col = move.rook_from
        new_row, new_col = move.rook_to
        grid[new_row][new_col] = grid[rook_row][rook_col]
        grid[rook_row][rook_col] = None

    return captured


def leaves_king_safe(grid: Grid, move: Move, color: str) -> bool:
    """Play the move on a scratch copy of the grid and check the mover's king."""
    scratch = [row[:] for row in grid]
    apply_move_to_grid(scratch, move)
    return not is_king_attacked(scratch, color)


def get_possible_moves(grid: Grid, row: int, col: int,
                       en_passant_target: Optional[Square] = None,
                       filter_self_check: bool = True) -> List[Move]:
    """All moves for the piece at (row, col), castling included."""
    piece = grid[row][col]
    if piece is None:
        return []

    moves = get_basic_moves(grid, row, col, en_passant_target)
    if piece.type == KING:
        moves.extend(get_castling_moves(grid, row, col))

    if filter_self_check:
        moves = [move for move in moves if leaves_king_safe(grid, move, piece.color)]

    return moves


def get_all_possible_moves(grid: Grid, color: str,
                           en_passant_target: Optional[Square] = None,
                           filter_self_check: bool = True) -> List[Move]:
    """Get all possible moves for the given side."""
    moves = []
    for row in range(BOARD_SIZE):
        for col in range(BOARD_SIZE):
            piece = grid[row][col]
            if piece is not None and piece.color == color:
                moves.extend(get_possible_moves(grid, row, col, en_passant_target, filter_self_check))
    return moves

