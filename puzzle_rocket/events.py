"""Events emitted by a puzzle session.

The session calls a single ``on_event`` callable with these. The TUI, the
MCP server, the trainer and the tests consume them. All events are frozen
and serialize with dataclasses.asdict().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

from puzzle_rocket.models import (
    BoardPosition,
    RejectReason,
    SoundCategory,
    TransitionState,
)

MoveActor = Literal["user", "opponent", "replay"]


@dataclass(frozen=True)
class StateChanged:
    puzzle_id: str | None
    previous: str
    current: str
    transition_state: TransitionState


@dataclass(frozen=True)
class MoveApplied:
    """A move was committed to the live board; redraw and play ``sound``."""

    puzzle_id: str
    move: str
    san: str
    actor: MoveActor
    move_index: int
    sound: SoundCategory
    fen: str
    board: BoardPosition = field(default_factory=dict)
    highlight_squares: tuple[str, ...] = ()


@dataclass(frozen=True)
class Feedback:
    puzzle_id: str
    sound: SoundCategory  # SUCCESS or FAILURE


@dataclass(frozen=True)
class AttemptFinished:
    """Outcome of the user's attempt, recorded before any demonstration."""

    puzzle_id: str
    theme: str
    rating: int | None
    solved: bool
    move_index: int
    reason: RejectReason | None = None
    attempted_move: str | None = None


@dataclass(frozen=True)
class PuzzleComplete:
    """The attempt is over and the next puzzle may be requested."""

    puzzle_id: str
    solved: bool


SessionEvent = Union[StateChanged, MoveApplied, Feedback, AttemptFinished, PuzzleComplete]
