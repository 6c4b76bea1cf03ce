"""Shared data models for Puzzle Rocket.

Puzzle, SessionCursor and SessionSnapshot are the shared contract between
the puzzle session, the puzzle supply, the MCP server and the TUI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import chess

from puzzle_rocket.errors import InvalidPuzzle, MalformedMove

# square name -> (piece kind letter, color)
BoardPosition = dict[str, tuple[str, str]]

PROMOTION_PIECES = ("q", "r", "b", "n")

DEFAULT_THEME = "Uncategorized"


class TransitionState(str, Enum):
    """Session-wide overlay state shown to the user."""

    STABLE = "STABLE"
    TRANSITIONING = "TRANSITIONING"
    LOADING = "LOADING"
    RESETTING = "RESETTING"
    AUTO_SOLVING = "AUTO_SOLVING"


class SetupState(str, Enum):
    """Lifecycle of placing one puzzle's starting position on the board."""

    PRE_SETUP = "PRE_SETUP"
    SETUP_IN_PROGRESS = "SETUP_IN_PROGRESS"
    SETUP_COMPLETE = "SETUP_COMPLETE"


class Orientation(str, Enum):
    """Which color is rendered at the bottom of the board."""

    WHITE_BOTTOM = "white-bottom"
    BLACK_BOTTOM = "black-bottom"

    @classmethod
    def for_color(cls, color: str) -> Orientation:
        """Orientation with the given color ("white"/"black") at the bottom."""
        return cls.BLACK_BOTTOM if color == "black" else cls.WHITE_BOTTOM


class SoundCategory(str, Enum):
    """Sound/haptic category emitted per applied move or outcome."""

    MOVE = "move"
    CAPTURE = "capture"
    CHECK = "check"
    SUCCESS = "success"
    FAILURE = "failure"


class RejectReason(str, Enum):
    """Why a move attempt was not accepted."""

    ILLEGAL = "illegal"
    MISMATCH = "mismatch"
    MALFORMED = "malformed"


class Point(NamedTuple):
    """Pixel coordinate of a square's top-left corner (or any board point)."""

    x: float
    y: float


@dataclass(frozen=True)
class MoveRequest:
    """A structured move: origin, destination, optional promotion piece."""

    from_square: str
    to_square: str
    promotion: str | None = None

    @property
    def is_null(self) -> bool:
        return self.from_square == self.to_square


@dataclass(frozen=True)
class Puzzle:
    """A puzzle record. Immutable once loaded.

    The solution alternates sides starting with the user's move. The
    attempt counter lives in SessionStats, keyed by ``id``.
    """

    id: str
    fen: str
    solution: tuple[str, ...]
    side_to_move: str = "white"
    theme: str = DEFAULT_THEME
    rating: int | None = None
    solution_san: tuple[str, ...] = ()
    source: str = ""

    @classmethod
    def from_record(cls, record: dict) -> Puzzle:
        """Build a validated Puzzle from a supply record.

        Accepts the collection format (``fen``, ``solution_moves``, ``motif``,
        ``difficulty_rating``) as well as the cache format written by
        ``to_record`` (``solution``, ``theme``, ``rating``).

        Args:
            record: Raw puzzle dict.

        Returns:
            The validated Puzzle.

        Raises:
            InvalidPuzzle: If a field is missing, the FEN is invalid, or the
                solution is empty, malformed or does not replay legally.
        """
        from puzzle_rocket.move_codec import decode

        puzzle_id = record.get("id") or record.get("lichess_id")
        if not puzzle_id:
            raise InvalidPuzzle("Puzzle record has no id")
        puzzle_id = str(puzzle_id)

        fen = record.get("fen")
        if not fen:
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: missing fen")
        if not isinstance(fen, str):
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: fen must be a string, got {type(fen).__name__}")

        moves = record.get("solution_moves", record.get("solution"))
        if isinstance(moves, str):
            moves = moves.split()
        if not isinstance(moves, (list, tuple)) or not all(isinstance(m, str) for m in moves):
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: solution must be a list of move strings")
        if not moves:
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: solution must have at least one move")

        try:
            board = chess.Board(fen)
        except ValueError as exc:
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: invalid FEN '{fen}': {exc}") from exc
        if not board.is_valid():
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: invalid position '{fen}'")

        side_to_move = "white" if board.turn == chess.WHITE else "black"

        # Replay proves legality and strict side alternation
        san_moves: list[str] = []
        for i, notation in enumerate(moves):
            try:
                decode(notation)
            except MalformedMove as exc:
                raise InvalidPuzzle(f"Puzzle {puzzle_id}: step {i}: {exc}") from exc
            move = chess.Move.from_uci(notation)
            if move not in board.legal_moves:
                raise InvalidPuzzle(
                    f"Puzzle {puzzle_id}: illegal move '{notation}' at step {i} "
                    f"(FEN: {board.fen()})"
                )
            san_moves.append(board.san(move))
            board.push(move)

        theme = record.get("theme") or record.get("motif") or DEFAULT_THEME
        rating = record.get("rating", record.get("difficulty_rating"))
        try:
            rating = int(rating) if rating is not None else None
        except (TypeError, ValueError):
            rating = None

        return cls(
            id=puzzle_id,
            fen=" ".join(fen.split()),
            solution=tuple(moves),
            side_to_move=side_to_move,
            theme=str(theme),
            rating=rating,
            solution_san=tuple(san_moves),
            source=str(record.get("source", "")),
        )

    def to_record(self) -> dict:
        """Serialize to the dict format read back by ``from_record``."""
        return {
            "id": self.id,
            "fen": self.fen,
            "solution": list(self.solution),
            "side_to_move": self.side_to_move,
            "theme": self.theme,
            "rating": self.rating,
            "source": self.source,
        }


@dataclass(frozen=True)
class SessionCursor:
    """Position of the live attempt within the puzzle's solution.

    ``move_index`` counts solution moves already played by either side.
    Whose turn it is follows from its parity; it is never stored.
    """

    puzzle: Puzzle
    move_index: int = 0

    @property
    def is_user_turn(self) -> bool:
        return self.move_index % 2 == 0 and not self.is_exhausted

    @property
    def is_exhausted(self) -> bool:
        return self.move_index >= len(self.puzzle.solution)

    @property
    def expected_move(self) -> str | None:
        if self.is_exhausted:
            return None
        return self.puzzle.solution[self.move_index]

    def advanced(self) -> SessionCursor:
        return SessionCursor(puzzle=self.puzzle, move_index=self.move_index + 1)


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the UI layer needs to draw the board and overlay."""

    puzzle_id: str | None
    fen: str | None
    board: BoardPosition = field(default_factory=dict)
    highlight_squares: tuple[str, ...] = ()
    transition_state: TransitionState = TransitionState.STABLE
    setup_state: SetupState = SetupState.PRE_SETUP
    move_index: int = 0
    solution_length: int = 0
    is_user_turn: bool = False
    accepts_input: bool = False
    orientation: Orientation = Orientation.WHITE_BOTTOM
    side_to_move: str = "white"
    theme: str = DEFAULT_THEME
    last_move: str | None = None
    attempt_state: str = "Idle"

    def to_dict(self) -> dict:
        """JSON-ready form: enums as values, board squares as [kind, color]."""
        return {
            "puzzle_id": self.puzzle_id,
            "fen": self.fen,
            "board": {sq: list(piece) for sq, piece in self.board.items()},
            "highlight_squares": list(self.highlight_squares),
            "transition_state": self.transition_state.value,
            "setup_state": self.setup_state.value,
            "move_index": self.move_index,
            "solution_length": self.solution_length,
            "is_user_turn": self.is_user_turn,
            "accepts_input": self.accepts_input,
            "orientation": self.orientation.value,
            "side_to_move": self.side_to_move,
            "theme": self.theme,
            "last_move": self.last_move,
            "attempt_state": self.attempt_state,
        }
