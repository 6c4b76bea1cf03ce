"""Runtime settings: session timings, data paths and logging.

Defaults are module constants; each can be overridden from the
environment:

    PUZZLE_ROCKET_OPPONENT_DELAY     seconds before the opponent's reply
    PUZZLE_ROCKET_RESET_DELAY        seconds before a failed board resets
    PUZZLE_ROCKET_AUTO_SOLVE_DELAY   seconds between demonstration moves
    PUZZLE_ROCKET_NEXT_PUZZLE_DELAY  seconds after a demonstration ends
    PUZZLE_ROCKET_SUCCESS_DELAY      seconds after a solved puzzle
    PUZZLE_ROCKET_DATA_DIR           data directory (default: ./data)
    PUZZLE_ROCKET_LOG_LEVEL          log level name (default: WARNING)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

PROJECT_ROOT = Path(__file__).parent.parent

OPPONENT_DELAY = 0.5
RESET_DELAY = 0.5
AUTO_SOLVE_DELAY = 1.0
NEXT_PUZZLE_DELAY = 2.0
SUCCESS_DELAY = 1.0

ENV_PREFIX = "PUZZLE_ROCKET_"


@dataclass(frozen=True)
class SessionTimings:
    """Delays (seconds) between the steps of a puzzle attempt."""

    opponent_delay: float = OPPONENT_DELAY
    reset_delay: float = RESET_DELAY
    auto_solve_delay: float = AUTO_SOLVE_DELAY
    next_puzzle_delay: float = NEXT_PUZZLE_DELAY
    success_delay: float = SUCCESS_DELAY

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value < 0:
                raise ValueError(f"{f.name} must be >= 0, got {value}")

    @classmethod
    def instant(cls) -> SessionTimings:
        """All delays zero."""
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SessionTimings:
        """Build timings from PUZZLE_ROCKET_*_DELAY variables.

        Raises:
            ValueError: If a variable is not a number or is negative.
        """
        env = os.environ if environ is None else environ
        values: dict[str, float] = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            raw = env.get(key)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[f.name] = float(raw)
            except ValueError as exc:
                raise ValueError(f"{key} must be a number, got {raw!r}") from exc
        return cls(**values)


def data_dir() -> Path:
    """Directory holding puzzle collections, the cache and UI state."""
    override = os.environ.get(ENV_PREFIX + "DATA_DIR")
    return Path(override) if override else PROJECT_ROOT / "data"


def cache_dir() -> Path:
    return data_dir() / "puzzle_cache"


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr through rich.

    ``verbose`` forces DEBUG; otherwise PUZZLE_ROCKET_LOG_LEVEL is used,
    falling back to WARNING.
    """
    if verbose:
        level = logging.DEBUG
    else:
        name = os.environ.get(ENV_PREFIX + "LOG_LEVEL", "WARNING").upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
