"""Training session: feeds puzzles from a supply into a puzzle session.

When an attempt hands off, the trainer loads the next puzzle from the
supply's session queue; when the queue runs out the session ends.
"""

from __future__ import annotations

import logging
from typing import Callable

from puzzle_rocket.errors import SessionExhausted
from puzzle_rocket.events import AttemptFinished, PuzzleComplete, SessionEvent
from puzzle_rocket.models import Puzzle
from puzzle_rocket.puzzle_session import PuzzleSession
from puzzle_rocket.puzzle_supply import PuzzleSupply
from puzzle_rocket.scheduler import Scheduler
from puzzle_rocket.session_stats import SessionStats
from puzzle_rocket.settings import SessionTimings

logger = logging.getLogger(__name__)


class PuzzleTrainer:
    """Owns one PuzzleSession and its statistics.

    Args:
        supply: Source of session puzzles.
        scheduler: Scheduler for the session's continuations.
        timings: Session delays.
        on_event: Receives every session event after the trainer has
            handled it.
    """

    def __init__(
        self,
        supply: PuzzleSupply,
        scheduler: Scheduler,
        timings: SessionTimings | None = None,
        on_event: Callable[[SessionEvent], None] | None = None,
    ) -> None:
        self.supply = supply
        self.stats = SessionStats()
        self.session = PuzzleSession(scheduler, timings, on_event=self._handle_event)
        self._on_event = on_event
        self._finished = False

    @property
    def is_finished(self) -> bool:
        return self._finished

    @property
    def current_puzzle(self) -> Puzzle | None:
        return self.session.puzzle

    def start(self, ids: list[str] | None = None) -> int:
        """Start a session and load its first puzzle.

        Returns:
            Number of puzzles queued. Zero means the session ended at once.
        """
        self._finished = False
        self.stats.start()
        queued = self.supply.initialize_session(ids)
        self.next_puzzle()
        return queued

    def next_puzzle(self) -> Puzzle | None:
        """Load the next queued puzzle, abandoning any live attempt.

        Returns:
            The loaded puzzle, or None when the session is exhausted.
        """
        try:
            puzzle = self.supply.get_next_in_session()
        except SessionExhausted:
            self._end()
            return None
        self.session.load(puzzle)
        return puzzle

    def load_puzzle(self, puzzle_id: str) -> Puzzle:
        """Load a specific puzzle outside the queue order.

        Raises:
            PuzzleNotFound: If the puzzle does not exist.
        """
        puzzle = self.supply.get_puzzle(puzzle_id)
        self._finished = False
        self.session.load(puzzle)
        return puzzle

    def stop(self) -> None:
        """End the session early."""
        self.supply.clear_session()
        self._end()

    def pause(self) -> None:
        """Stop the session clock. The live attempt is left as it is."""
        self.stats.pause()

    def resume(self) -> None:
        self.stats.resume()

    @property
    def is_paused(self) -> bool:
        return self.stats.is_paused

    def export_records(self) -> list[dict]:
        return self.stats.export_records()

    def get_stats(self) -> dict:
        self.stats.stale_discards = self.session.stale_discards
        stats = self.stats.get_stats()
        stats["paused"] = self.stats.is_paused
        stats["remaining"] = self.supply.remaining_count()
        stats["session_size"] = self.supply.session_size
        return stats

    def _end(self) -> None:
        was_finished = self._finished
        # Set first: unload emits events that observers read is_finished from
        self._finished = True
        if self.session.puzzle is not None:
            self.session.unload()
        if not was_finished:
            logger.info("Training session finished: %s", self.stats.get_stats())

    def _handle_event(self, event: SessionEvent) -> None:
        if isinstance(event, AttemptFinished):
            self.stats.record_event(event)
        if self._on_event is not None:
            self._on_event(event)
        if isinstance(event, PuzzleComplete):
            self.next_puzzle()
