"""Attempt state for one puzzle: a tagged union with pure transitions.

The overlay state (TransitionState), the setup lifecycle (SetupState) and
whether board input is accepted are all derived from the single attempt
state, so they can never disagree.

    Idle -> Setup -> AwaitingUser <-> OpponentReplying
                         |                  |
                         v                  v
                       Failed            Succeeded
                         |                  |
                         v                  |
                     Replaying(i)           |
                         |                  |
                         +----> Handoff <---+
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from puzzle_rocket.errors import InvalidTransition
from puzzle_rocket.models import SetupState, TransitionState


@dataclass(frozen=True)
class Idle:
    """No puzzle loaded."""


@dataclass(frozen=True)
class Setup:
    """Starting position being placed on the board."""


@dataclass(frozen=True)
class AwaitingUser:
    """User to move; the only state that accepts board input."""


@dataclass(frozen=True)
class OpponentReplying:
    """Opponent's forced reply is scheduled at solution[reply_index]."""

    reply_index: int


@dataclass(frozen=True)
class Succeeded:
    """Solution completed by the user."""


@dataclass(frozen=True)
class Failed:
    """Wrong move played; the start position is about to be restored."""

    replay_index: int = 0


@dataclass(frozen=True)
class Replaying:
    """Auto-solve demonstration; solution[replay_index] is played next."""

    replay_index: int = 0


@dataclass(frozen=True)
class Handoff:
    """Attempt finished; waiting for the next puzzle."""

    solved: bool


AttemptState = Union[
    Idle, Setup, AwaitingUser, OpponentReplying, Succeeded, Failed, Replaying, Handoff
]

# state type -> (overlay, setup lifecycle, accepts input)
_VIEWS: dict[type, tuple[TransitionState, SetupState, bool]] = {
    Idle: (TransitionState.STABLE, SetupState.PRE_SETUP, False),
    Setup: (TransitionState.LOADING, SetupState.SETUP_IN_PROGRESS, False),
    AwaitingUser: (TransitionState.STABLE, SetupState.SETUP_COMPLETE, True),
    OpponentReplying: (TransitionState.STABLE, SetupState.SETUP_COMPLETE, False),
    Succeeded: (TransitionState.TRANSITIONING, SetupState.SETUP_COMPLETE, False),
    Failed: (TransitionState.RESETTING, SetupState.SETUP_COMPLETE, False),
    Replaying: (TransitionState.AUTO_SOLVING, SetupState.SETUP_COMPLETE, False),
    Handoff: (TransitionState.LOADING, SetupState.SETUP_COMPLETE, False),
}


def transition_state(state: AttemptState) -> TransitionState:
    return _VIEWS[type(state)][0]


def setup_state(state: AttemptState) -> SetupState:
    return _VIEWS[type(state)][1]


def accepts_input(state: AttemptState) -> bool:
    return _VIEWS[type(state)][2]


def state_name(state: AttemptState) -> str:
    return type(state).__name__


def _require(state: AttemptState, *allowed: type, action: str) -> None:
    if not isinstance(state, allowed):
        expected = " or ".join(cls.__name__ for cls in allowed)
        raise InvalidTransition(
            f"Cannot {action} from {state_name(state)} (expected {expected})"
        )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def begin_setup(state: AttemptState) -> Setup:
    """Start loading a puzzle. Allowed from any state."""
    return Setup()


def finish_setup(state: AttemptState) -> AwaitingUser:
    _require(state, Setup, action="finish setup")
    return AwaitingUser()


def accept_user_move(
    state: AttemptState, move_index: int, complete: bool
) -> OpponentReplying | Succeeded:
    """The user's move at ``move_index`` matched the solution.

    Returns:
        Succeeded when the move ends the solution, otherwise
        OpponentReplying for the reply at ``move_index + 1``.
    """
    _require(state, AwaitingUser, action="accept a user move")
    if complete:
        return Succeeded()
    return OpponentReplying(reply_index=move_index + 1)


def reject_user_move(state: AttemptState) -> Failed:
    _require(state, AwaitingUser, action="reject a user move")
    return Failed(replay_index=0)


def opponent_replied(state: AttemptState, complete: bool) -> AwaitingUser | Succeeded:
    _require(state, OpponentReplying, action="apply the opponent reply")
    if complete:
        return Succeeded()
    return AwaitingUser()


def start_replay(state: AttemptState) -> Replaying:
    """Start position restored; begin the demonstration at move 0."""
    _require(state, Failed, action="start the replay")
    return Replaying(replay_index=state.replay_index)


def replay_step(state: AttemptState) -> Replaying:
    _require(state, Replaying, action="advance the replay")
    return Replaying(replay_index=state.replay_index + 1)


def hand_off(state: AttemptState, solved: bool) -> Handoff:
    """Finish the attempt.

    Reachable from Succeeded, from Replaying once the demonstration ends,
    and from OpponentReplying when the stored reply cannot be applied.
    """
    _require(state, Succeeded, Replaying, OpponentReplying, action="hand off")
    return Handoff(solved=solved)


def unload(state: AttemptState) -> Idle:
    """Drop the live attempt. Allowed from any state."""
    return Idle()
