"""Exception hierarchy for Puzzle Rocket.

Illegal moves and solution mismatches are ordinary outcomes, not errors:
they are reported through ``ValidationResult.reason``. The exceptions here
cover programmer/input errors and terminal supply conditions.

Usage:
    from puzzle_rocket.errors import MalformedMove, SessionExhausted

    try:
        puzzle = supply.get_next_in_session()
    except SessionExhausted:
        ...
"""

from __future__ import annotations


class PuzzleRocketError(Exception):
    """Base class for all Puzzle Rocket errors."""


class MalformedMove(PuzzleRocketError, ValueError):
    """Compact move notation failed to parse or encode."""

    def __init__(self, notation: object, detail: str = "") -> None:
        self.notation = notation
        message = f"Malformed move: {notation!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidSquare(PuzzleRocketError, ValueError):
    """Square text is not a file a-h followed by a rank 1-8."""

    def __init__(self, square: object) -> None:
        self.square = square
        super().__init__(f"Invalid square: {square!r}")


class InvalidCellSize(PuzzleRocketError, ValueError):
    """Board cell size must be strictly positive."""

    def __init__(self, cell_size: object) -> None:
        self.cell_size = cell_size
        super().__init__(f"Invalid cell size: {cell_size!r} (must be > 0)")


class InvalidPuzzle(PuzzleRocketError, ValueError):
    """A puzzle record violates the puzzle invariants."""


class InvalidTransition(PuzzleRocketError, RuntimeError):
    """An attempt-state transition was requested from the wrong state."""


class PuzzleNotFound(PuzzleRocketError, LookupError):
    """No puzzle with the requested id exists in cache or source."""

    def __init__(self, puzzle_id: str) -> None:
        self.puzzle_id = puzzle_id
        super().__init__(f"Puzzle not found: {puzzle_id}")


class SessionExhausted(PuzzleRocketError):
    """The session queue has no more puzzles. Ends the session normally."""
