"""Puzzle session: drives one puzzle attempt at a time.

Owns the live board (a PositionOracle), the solution cursor and the
attempt state. Every delay is a continuation registered with a Scheduler;
each continuation carries the (puzzle id, epoch) token it was issued
under and does nothing if the session has since moved on.

Usage:
    session = PuzzleSession(ManualScheduler(), SessionTimings(), on_event=print)
    session.load(puzzle)
    session.submit_move("e2e4")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from puzzle_rocket import attempt_state as states
from puzzle_rocket.attempt_state import AttemptState
from puzzle_rocket.errors import MalformedMove
from puzzle_rocket.events import (
    AttemptFinished,
    Feedback,
    MoveActor,
    MoveApplied,
    PuzzleComplete,
    SessionEvent,
    StateChanged,
)
from puzzle_rocket.models import (
    MoveRequest,
    Orientation,
    Point,
    Puzzle,
    RejectReason,
    SessionCursor,
    SessionSnapshot,
    SetupState,
    SoundCategory,
    TransitionState,
)
from puzzle_rocket.move_codec import decode, encode
from puzzle_rocket.move_validator import (
    ChessBoardOracle,
    PositionOracle,
    ValidationResult,
    sound_for,
    validate_puzzle_move,
)
from puzzle_rocket.orientation import drag_to_move
from puzzle_rocket.scheduler import Scheduler
from puzzle_rocket.settings import SessionTimings

logger = logging.getLogger(__name__)

EventHandler = Callable[[SessionEvent], None]


class MoveStatus(str, Enum):
    IGNORED = "ignored"    # no attempt: input locked, no puzzle, or null move
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    SOLVED = "solved"


@dataclass(frozen=True)
class MoveOutcome:
    """Immediate result of a user move submission."""

    status: MoveStatus
    reason: RejectReason | None = None
    move: str | None = None
    san: str | None = None
    next_move: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status in (MoveStatus.ACCEPTED, MoveStatus.SOLVED)


_IGNORED = MoveOutcome(MoveStatus.IGNORED)


class PuzzleSession:
    """State machine for a single puzzle attempt.

    Args:
        scheduler: Runs the deferred continuations.
        timings: Delays between steps. Defaults to SessionTimings().
        on_event: Receives every SessionEvent, synchronously.
        oracle_factory: Builds the board-position oracle.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        timings: SessionTimings | None = None,
        on_event: EventHandler | None = None,
        oracle_factory: Callable[[], PositionOracle] = ChessBoardOracle,
    ) -> None:
        self._scheduler = scheduler
        self._timings = timings or SessionTimings()
        self._on_event = on_event
        self._oracle = oracle_factory()
        self._state: AttemptState = states.Idle()
        self._puzzle: Puzzle | None = None
        self._cursor: SessionCursor | None = None
        self._last_move: str | None = None
        self._orientation = Orientation.WHITE_BOTTOM
        self._epoch = 0
        self.stale_discards = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> AttemptState:
        return self._state

    @property
    def puzzle(self) -> Puzzle | None:
        return self._puzzle

    @property
    def cursor(self) -> SessionCursor | None:
        """The user's cursor. Not advanced by the failure demonstration."""
        return self._cursor

    @property
    def replay_cursor(self) -> SessionCursor | None:
        if self._puzzle is None or not isinstance(self._state, states.Replaying):
            return None
        return SessionCursor(puzzle=self._puzzle, move_index=self._state.replay_index)

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def orientation(self) -> Orientation:
        return self._orientation

    @property
    def transition_state(self) -> TransitionState:
        return states.transition_state(self._state)

    @property
    def setup_state(self) -> SetupState:
        return states.setup_state(self._state)

    @property
    def accepts_input(self) -> bool:
        return self._puzzle is not None and states.accepts_input(self._state)

    @property
    def timings(self) -> SessionTimings:
        return self._timings

    def snapshot(self) -> SessionSnapshot:
        """Render contract for the current board and overlay."""
        if self._puzzle is None or self._cursor is None:
            return SessionSnapshot(
                puzzle_id=None,
                fen=None,
                transition_state=self.transition_state,
                setup_state=self.setup_state,
                attempt_state=states.state_name(self._state),
            )

        shown = self.replay_cursor or self._cursor
        highlights: tuple[str, ...] = ()
        if self._last_move:
            highlights = (self._last_move[0:2], self._last_move[2:4])

        return SessionSnapshot(
            puzzle_id=self._puzzle.id,
            fen=self._oracle.position_string(),
            board=self._oracle.board_position(),
            highlight_squares=highlights,
            transition_state=self.transition_state,
            setup_state=self.setup_state,
            move_index=shown.move_index,
            solution_length=len(self._puzzle.solution),
            is_user_turn=self._cursor.is_user_turn and self.accepts_input,
            accepts_input=self.accepts_input,
            orientation=self._orientation,
            side_to_move=self._oracle.side_to_move(),
            theme=self._puzzle.theme,
            last_move=self._last_move,
            attempt_state=states.state_name(self._state),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def load(self, puzzle: Puzzle) -> None:
        """Start a fresh attempt at puzzle.

        Bumps the epoch before anything else so every continuation issued
        for an earlier attempt becomes stale.

        Raises:
            ValueError: If the puzzle's FEN is rejected by the oracle.
        """
        self._epoch += 1
        self._puzzle = puzzle
        self._cursor = None
        self._last_move = None
        self._set_state(states.begin_setup(self._state))

        self._oracle.load(puzzle.fen)
        self._cursor = SessionCursor(puzzle=puzzle, move_index=0)
        self._orientation = Orientation.for_color(puzzle.side_to_move)
        logger.info(
            "Loaded puzzle %s (%s, %d moves, epoch %d)",
            puzzle.id, puzzle.theme, len(puzzle.solution), self._epoch,
        )
        self._set_state(states.finish_setup(self._state))

    def unload(self) -> None:
        """Abandon the live attempt; pending continuations become stale."""
        self._epoch += 1
        self._puzzle = None
        self._cursor = None
        self._last_move = None
        self._set_state(states.unload(self._state))

    def submit_move(self, move: MoveRequest | str) -> MoveOutcome:
        """Submit the user's move.

        Input arriving while the session is not awaiting the user is
        dropped, not queued. A null move is ignored. A pawn reaching the
        last rank without a promotion piece promotes to a queen.

        Args:
            move: MoveRequest or compact notation.

        Returns:
            MoveOutcome. Every REJECTED outcome (ILLEGAL, MISMATCH or
            MALFORMED) fails the attempt and starts the reset and
            demonstration sequence.
        """
        if not self.accepts_input:
            logger.debug("Ignoring move %s in state %s", move, states.state_name(self._state))
            return _IGNORED

        try:
            request = decode(move) if isinstance(move, str) else move
            notation = encode(request)
        except MalformedMove as exc:
            logger.error("Rejected malformed move: %s", exc)
            attempted = move if isinstance(move, str) else repr(move)
            self._fail(ValidationResult(valid=False, reason=RejectReason.MALFORMED), attempted)
            return MoveOutcome(MoveStatus.REJECTED, reason=RejectReason.MALFORMED)

        if request.is_null:
            return _IGNORED

        if request.promotion is None and self._oracle.needs_promotion(
            request.from_square, request.to_square
        ):
            request = replace(request, promotion="q")
            notation = encode(request)

        cursor = self._cursor
        result = validate_puzzle_move(
            self._oracle, request, self._puzzle.solution, cursor.move_index
        )

        if not result.valid:
            self._fail(result, notation)
            return MoveOutcome(MoveStatus.REJECTED, reason=result.reason, move=notation)

        san = self._apply(request, "user", cursor.move_index)
        self._cursor = cursor.advanced()

        if result.complete:
            self._succeed()
            return MoveOutcome(MoveStatus.SOLVED, move=notation, san=san)

        self._set_state(states.accept_user_move(self._state, cursor.move_index, complete=False))
        self._schedule(self._timings.opponent_delay, self._play_opponent_reply, "opponent reply")
        return MoveOutcome(
            MoveStatus.ACCEPTED, move=notation, san=san, next_move=result.next_move
        )

    def submit_drag(
        self,
        origin: str,
        release_point: Point | tuple[float, float],
        cell_size: float,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """Resolve a drag release on the board and submit it as a move.

        Raises:
            InvalidSquare: If origin is not a square name.
            InvalidCellSize: If cell_size <= 0.
        """
        move = drag_to_move(origin, release_point, self._orientation, cell_size, promotion)
        if move is None:
            return _IGNORED
        return self.submit_move(move)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emit(self, event: SessionEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _set_state(self, new_state: AttemptState) -> None:
        previous = self._state
        self._state = new_state
        if previous == new_state:
            return
        logger.debug("%s -> %s", states.state_name(previous), states.state_name(new_state))
        self._emit(StateChanged(
            puzzle_id=self._puzzle.id if self._puzzle else None,
            previous=states.state_name(previous),
            current=states.state_name(new_state),
            transition_state=states.transition_state(new_state),
        ))

    def _schedule(self, delay: float, action: Callable[[], None], label: str) -> None:
        token = (self._puzzle.id, self._epoch)

        def continuation() -> None:
            current = (self._puzzle.id if self._puzzle else None, self._epoch)
            if current != token:
                self.stale_discards += 1
                logger.debug(
                    "Discarding stale %s for puzzle %s epoch %d (now %s epoch %d)",
                    label, token[0], token[1], current[0], current[1],
                )
                return
            action()

        self._scheduler.call_later(delay, continuation)

    def _apply(self, move: MoveRequest, actor: MoveActor, move_index: int) -> str:
        """Commit an already validated move to the live board."""
        applied = self._oracle.try_move(move)
        if applied is None:
            # validate_puzzle_move accepted it on a clone of this exact position
            raise RuntimeError(f"Validated move {encode(move)} rejected by live board")
        self._last_move = applied.notation
        self._emit(MoveApplied(
            puzzle_id=self._puzzle.id,
            move=applied.notation,
            san=applied.san,
            actor=actor,
            move_index=move_index,
            sound=sound_for(applied),
            fen=self._oracle.position_string(),
            board=self._oracle.board_position(),
            highlight_squares=(applied.notation[0:2], applied.notation[2:4]),
        ))
        return applied.san

    def _validate_stored(
        self, cursor: SessionCursor
    ) -> tuple[MoveRequest | None, ValidationResult | None]:
        """Validate the cursor's expected solution move against the live board."""
        move_index = cursor.move_index
        notation = cursor.expected_move
        if notation is None:
            logger.error("Puzzle %s: no solution move at index %d", self._puzzle.id, move_index)
            return None, None
        try:
            request = decode(notation)
            result = validate_puzzle_move(self._oracle, request, self._puzzle.solution, move_index)
        except MalformedMove as exc:
            logger.error("Puzzle %s: malformed solution move %d: %s", self._puzzle.id, move_index, exc)
            return None, None
        if not result.valid:
            logger.error(
                "Puzzle %s: solution move %d (%s) rejected by the board: %s",
                self._puzzle.id, move_index, notation, result.reason.value,
            )
            return request, None
        return request, result

    def _succeed(self) -> None:
        puzzle = self._puzzle
        self._emit(Feedback(puzzle_id=puzzle.id, sound=SoundCategory.SUCCESS))
        if isinstance(self._state, states.AwaitingUser):
            self._set_state(states.accept_user_move(self._state, self._cursor.move_index - 1, complete=True))
        else:
            self._set_state(states.opponent_replied(self._state, complete=True))
        self._emit(AttemptFinished(
            puzzle_id=puzzle.id,
            theme=puzzle.theme,
            rating=puzzle.rating,
            solved=True,
            move_index=self._cursor.move_index,
        ))
        self._schedule(self._timings.success_delay, lambda: self._finish(True), "success handoff")

    def _fail(self, result: ValidationResult, attempted: str) -> None:
        puzzle = self._puzzle
        logger.info(
            "Puzzle %s: %s move %s at index %d",
            puzzle.id, result.reason.value, attempted, self._cursor.move_index,
        )
        self._emit(Feedback(puzzle_id=puzzle.id, sound=SoundCategory.FAILURE))
        self._set_state(states.reject_user_move(self._state))
        self._emit(AttemptFinished(
            puzzle_id=puzzle.id,
            theme=puzzle.theme,
            rating=puzzle.rating,
            solved=False,
            move_index=self._cursor.move_index,
            reason=result.reason,
            attempted_move=attempted,
        ))
        self._schedule(self._timings.reset_delay, self._reset_for_replay, "reset")

    def _play_opponent_reply(self) -> None:
        cursor = self._cursor
        request, result = self._validate_stored(cursor)
        if result is None:
            self._abort_corrupt(cursor.move_index)
            return

        self._apply(request, "opponent", cursor.move_index)
        self._cursor = cursor.advanced()
        if result.complete:
            self._succeed()
        else:
            self._set_state(states.opponent_replied(self._state, complete=False))

    def _reset_for_replay(self) -> None:
        self._oracle.load(self._puzzle.fen)
        self._last_move = None
        self._set_state(states.start_replay(self._state))
        self._schedule(self._timings.auto_solve_delay, self._replay_next, "auto-solve step")

    def _replay_next(self) -> None:
        replay = self.replay_cursor
        index = replay.move_index
        request, result = self._validate_stored(replay)
        if result is None:
            self._abort_corrupt(index)
            return

        self._apply(request, "replay", index)
        self._set_state(states.replay_step(self._state))
        if self._state.replay_index < len(self._puzzle.solution):
            self._schedule(self._timings.auto_solve_delay, self._replay_next, "auto-solve step")
        else:
            self._schedule(
                self._timings.next_puzzle_delay, lambda: self._finish(False), "replay handoff"
            )

    def _abort_corrupt(self, move_index: int) -> None:
        """Stored solution cannot be played: end the attempt as unsolved."""
        puzzle = self._puzzle
        if isinstance(self._state, states.OpponentReplying):
            self._emit(AttemptFinished(
                puzzle_id=puzzle.id,
                theme=puzzle.theme,
                rating=puzzle.rating,
                solved=False,
                move_index=move_index,
                reason=RejectReason.MALFORMED,
            ))
        self._finish(False)

    def _finish(self, solved: bool) -> None:
        puzzle_id = self._puzzle.id
        self._set_state(states.hand_off(self._state, solved))
        logger.info("Puzzle %s finished (%s)", puzzle_id, "solved" if solved else "unsolved")
        # Last step: the handler may load the next puzzle synchronously
        self._emit(PuzzleComplete(puzzle_id=puzzle_id, solved=solved))
