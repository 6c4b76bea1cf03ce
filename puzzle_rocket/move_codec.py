"""Compact move notation codec.

Converts between 4-5 character move strings ("e2e4", "e7e8q") and
MoveRequest objects. Pure functions, no side effects.
"""

from __future__ import annotations

from puzzle_rocket.errors import InvalidSquare, MalformedMove
from puzzle_rocket.models import PROMOTION_PIECES, MoveRequest

FILES = "abcdefgh"
RANKS = "12345678"


def is_valid_square(text: object) -> bool:
    """Return True if text is a square name like "e4"."""
    return (
        isinstance(text, str)
        and len(text) == 2
        and text[0] in FILES
        and text[1] in RANKS
    )


def square_indices(square: str) -> tuple[int, int]:
    """Split a square name into zero-based (file, rank) indices.

    Raises:
        InvalidSquare: If square is not a valid square name.
    """
    if not is_valid_square(square):
        raise InvalidSquare(square)
    return FILES.index(square[0]), RANKS.index(square[1])


def square_name(file_index: int, rank_index: int) -> str:
    """Inverse of square_indices."""
    if not (0 <= file_index < 8 and 0 <= rank_index < 8):
        raise InvalidSquare((file_index, rank_index))
    return FILES[file_index] + RANKS[rank_index]


def decode(notation: str) -> MoveRequest:
    """Parse compact notation into a MoveRequest.

    Args:
        notation: 4 or 5 characters: origin, destination, optional
            promotion piece (q, r, b or n).

    Returns:
        The structured move.

    Raises:
        MalformedMove: If the length, either square or the promotion
            piece is invalid.
    """
    if not isinstance(notation, str) or len(notation) not in (4, 5):
        raise MalformedMove(notation, "expected 4 or 5 characters")

    from_square, to_square = notation[0:2], notation[2:4]
    if not is_valid_square(from_square):
        raise MalformedMove(notation, f"bad origin square '{from_square}'")
    if not is_valid_square(to_square):
        raise MalformedMove(notation, f"bad destination square '{to_square}'")

    promotion = None
    if len(notation) == 5:
        promotion = notation[4]
        if promotion not in PROMOTION_PIECES:
            raise MalformedMove(notation, f"bad promotion piece '{promotion}'")

    return MoveRequest(from_square=from_square, to_square=to_square, promotion=promotion)


def encode(move: MoveRequest) -> str:
    """Render a MoveRequest as compact notation. Exact inverse of decode.

    Raises:
        MalformedMove: If the move holds an invalid square or promotion.
    """
    if not is_valid_square(move.from_square) or not is_valid_square(move.to_square):
        raise MalformedMove(move, "invalid square")
    if move.promotion is not None and move.promotion not in PROMOTION_PIECES:
        raise MalformedMove(move, f"bad promotion piece '{move.promotion}'")
    return f"{move.from_square}{move.to_square}{move.promotion or ''}"
