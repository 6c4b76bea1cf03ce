"""In-memory statistics for one training session.

Records every finished attempt with its theme and outcome, keeps a
per-theme tally and an attempt counter per puzzle id, and separates
illegal moves from legal-but-wrong ones. Nothing is persisted.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable

from puzzle_rocket.events import AttemptFinished
from puzzle_rocket.models import DEFAULT_THEME, RejectReason


@dataclass(frozen=True)
class AttemptRecord:
    puzzle_id: str
    theme: str
    rating: int | None
    solved: bool
    timestamp: str
    reason: str | None = None


class SessionStats:
    """Tally of attempts for the current session.

    Args:
        clock: Monotonic clock used for elapsed time (injectable for tests).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._reset()

    def _reset(self) -> None:
        self._records: list[AttemptRecord] = []
        self._category_counts: dict[str, dict[str, int]] = {}
        self._attempts_by_puzzle: Counter[str] = Counter()
        self._reject_reasons: Counter[str] = Counter()
        self._started_at: float | None = None
        self._paused_at: float | None = None
        self._paused_total = 0.0
        self.stale_discards = 0

    # ------------------------------------------------------------------
    # Session clock
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Reset all counters and start the clock."""
        self._reset()
        self._started_at = self._clock()

    @property
    def is_active(self) -> bool:
        return self._started_at is not None

    @property
    def is_paused(self) -> bool:
        return self._paused_at is not None

    def pause(self) -> None:
        if self.is_active and not self.is_paused:
            self._paused_at = self._clock()

    def resume(self) -> None:
        if self._paused_at is not None:
            self._paused_total += self._clock() - self._paused_at
            self._paused_at = None

    def elapsed_seconds(self) -> float:
        """Active (unpaused) time since start()."""
        if self._started_at is None:
            return 0.0
        end = self._paused_at if self._paused_at is not None else self._clock()
        return max(0.0, end - self._started_at - self._paused_total)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_attempt(
        self,
        puzzle_id: str,
        theme: str | None,
        solved: bool,
        rating: int | None = None,
        reason: RejectReason | None = None,
    ) -> AttemptRecord:
        """Record one finished attempt.

        Returns:
            The stored AttemptRecord.
        """
        category = theme or DEFAULT_THEME
        record = AttemptRecord(
            puzzle_id=puzzle_id,
            theme=category,
            rating=rating,
            solved=solved,
            timestamp=datetime.now(timezone.utc).isoformat(),
            reason=reason.value if reason is not None else None,
        )
        self._records.append(record)
        self._attempts_by_puzzle[puzzle_id] += 1

        counts = self._category_counts.setdefault(
            category, {"total": 0, "successful": 0, "failed": 0}
        )
        counts["total"] += 1
        counts["successful" if solved else "failed"] += 1

        if reason is not None:
            self._reject_reasons[reason.value] += 1
        return record

    def record_event(self, event: AttemptFinished) -> AttemptRecord:
        return self.record_attempt(
            event.puzzle_id,
            event.theme,
            event.solved,
            rating=event.rating,
            reason=event.reason,
        )

    def attempts_for(self, puzzle_id: str) -> int:
        return self._attempts_by_puzzle[puzzle_id]

    @property
    def records(self) -> list[AttemptRecord]:
        return list(self._records)

    def get_stats(self) -> dict:
        """Return summary statistics for the session.

        Returns:
            Dict with keys: total, successful, failed, success_rate,
            elapsed_seconds, by_theme, reject_reasons, stale_discards.
        """
        total = len(self._records)
        successful = sum(1 for r in self._records if r.solved)
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": round(successful / total, 3) if total > 0 else 0.0,
            "elapsed_seconds": round(self.elapsed_seconds(), 1),
            "by_theme": {k: dict(v) for k, v in self._category_counts.items()},
            "reject_reasons": dict(self._reject_reasons),
            "stale_discards": self.stale_discards,
        }

    def export_records(self) -> list[dict]:
        return [asdict(r) for r in self._records]
