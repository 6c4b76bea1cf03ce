"""Puzzle move validation against a board-position oracle.

The oracle is any chess-rules implementation satisfying PositionOracle;
ChessBoardOracle adapts python-chess. Validation always runs on a clone,
so "what-if" checks never disturb the committed position.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import chess

from puzzle_rocket.models import (
    BoardPosition,
    MoveRequest,
    RejectReason,
    SoundCategory,
)
from puzzle_rocket.move_codec import encode


@dataclass(frozen=True)
class AppliedMove:
    """What the oracle reports after applying a move."""

    notation: str
    san: str
    is_capture: bool = False
    is_check: bool = False
    is_checkmate: bool = False


class PositionOracle(Protocol):
    """Board-position oracle: legality checking and move application."""

    def copy(self) -> PositionOracle: ...

    def load(self, fen: str) -> None: ...

    def legal_moves(self) -> list[str]: ...

    def try_move(self, move: MoveRequest) -> AppliedMove | None: ...

    def is_in_check(self) -> bool: ...

    def position_string(self) -> str: ...

    def board_position(self) -> BoardPosition: ...

    def side_to_move(self) -> str: ...

    def needs_promotion(self, from_square: str, to_square: str) -> bool: ...


class ChessBoardOracle:
    """PositionOracle backed by a python-chess Board."""

    def __init__(self, fen: str | None = None) -> None:
        self._board = chess.Board(fen) if fen is not None else chess.Board()

    def copy(self) -> ChessBoardOracle:
        clone = ChessBoardOracle()
        clone._board = self._board.copy(stack=False)
        return clone

    def load(self, fen: str) -> None:
        """Replace the position.

        Raises:
            ValueError: If fen is not a valid FEN string.
        """
        self._board = chess.Board(fen)

    def legal_moves(self) -> list[str]:
        return sorted(m.uci() for m in self._board.legal_moves)

    def try_move(self, move: MoveRequest) -> AppliedMove | None:
        """Apply move if legal.

        Args:
            move: The move to apply.

        Returns:
            AppliedMove with capture/check flags, or None if the move is
            illegal (including pins, check evasion and castling rules).

        Raises:
            MalformedMove: If the move cannot be encoded.
        """
        notation = encode(move)
        chess_move = chess.Move.from_uci(notation)
        if chess_move not in self._board.legal_moves:
            return None

        san = self._board.san(chess_move)
        is_capture = self._board.is_capture(chess_move)
        self._board.push(chess_move)
        return AppliedMove(
            notation=notation,
            san=san,
            is_capture=is_capture,
            is_check=self._board.is_check(),
            is_checkmate=self._board.is_checkmate(),
        )

    def is_in_check(self) -> bool:
        return self._board.is_check()

    def position_string(self) -> str:
        return self._board.fen()

    def board_position(self) -> BoardPosition:
        return {
            chess.square_name(square): (
                piece.symbol().lower(),
                "white" if piece.color == chess.WHITE else "black",
            )
            for square, piece in self._board.piece_map().items()
        }

    def side_to_move(self) -> str:
        return "white" if self._board.turn == chess.WHITE else "black"

    def needs_promotion(self, from_square: str, to_square: str) -> bool:
        """True if a pawn on from_square would promote on to_square."""
        piece = self._board.piece_at(chess.parse_square(from_square))
        if piece is None or piece.piece_type != chess.PAWN:
            return False
        last_rank = "8" if piece.color == chess.WHITE else "1"
        return to_square[1] == last_rank


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of checking one move against the solution."""

    valid: bool
    complete: bool = False
    next_move: str | None = None
    reason: RejectReason | None = None
    applied: AppliedMove | None = None


def validate_puzzle_move(
    oracle: PositionOracle,
    move: MoveRequest,
    solution: Sequence[str],
    move_index: int,
) -> ValidationResult:
    """Check a move for legality and against the expected solution move.

    Args:
        oracle: Current position. Not mutated.
        move: The proposed move.
        solution: The puzzle's solution sequence in compact notation.
        move_index: Index of the expected move in ``solution``.

    Returns:
        ValidationResult. ``next_move`` is the opponent's forced reply when
        the move is valid and the puzzle is not complete.

    Raises:
        IndexError: If move_index is outside the solution.
        MalformedMove: If the move cannot be encoded.
    """
    if not 0 <= move_index < len(solution):
        raise IndexError(
            f"move_index {move_index} outside solution of length {len(solution)}"
        )

    trial = oracle.copy()
    applied = trial.try_move(move)
    if applied is None:
        return ValidationResult(valid=False, reason=RejectReason.ILLEGAL)

    # Puzzles require the specific solution move, promotion piece included
    if applied.notation != solution[move_index]:
        return ValidationResult(valid=False, reason=RejectReason.MISMATCH, applied=applied)

    if move_index == len(solution) - 1:
        return ValidationResult(valid=True, complete=True, next_move=None, applied=applied)

    return ValidationResult(
        valid=True,
        complete=False,
        next_move=solution[move_index + 1],
        applied=applied,
    )


def sound_for(applied: AppliedMove) -> SoundCategory:
    """Pick the sound category for an applied move: capture, check or move."""
    if applied.is_capture:
        return SoundCategory.CAPTURE
    if applied.is_check:
        return SoundCategory.CHECK
    return SoundCategory.MOVE
