"""MCP server for Puzzle Rocket.

Exposes puzzle-training tools via FastMCP. One training session lives in
memory at a time. The full board snapshot is synced to
data/current_puzzle.json after every session event for TUI consumption.
"""

from __future__ import annotations

import json
import logging
import os
import random
import sys
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from puzzle_rocket.errors import InvalidCellSize, InvalidSquare, PuzzleRocketError
from puzzle_rocket.events import Feedback, PuzzleComplete, SessionEvent
from puzzle_rocket.models import Orientation, Point
from puzzle_rocket.orientation import square_center, square_to_coordinate
from puzzle_rocket.puzzle_session import MoveOutcome
from puzzle_rocket.puzzle_supply import (
    HttpPuzzleSource,
    JsonCollectionSource,
    LichessDatabaseSource,
    PuzzleCache,
    PuzzleSource,
    PuzzleSupply,
)
from puzzle_rocket.scheduler import AsyncioScheduler, Scheduler
from puzzle_rocket.settings import SessionTimings, cache_dir, configure_logging, data_dir
from puzzle_rocket.trainer import PuzzleTrainer

from response_schemas import (  # noqa: E402
    minify_move_outcome,
    minify_session_state,
    minify_stats,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("puzzle-rocket")

STATE_FILE_NAME = "current_puzzle.json"

# The live training session: trainer, scheduler, last feedback
_session: dict = {}

_NO_SESSION = {"error": "No active session. Call start_session first."}


def _new_scheduler() -> Scheduler:
    """Scheduler for session continuations (the running asyncio loop)."""
    return AsyncioScheduler()


def _get_trainer() -> PuzzleTrainer | None:
    return _session.get("trainer")


def _build_state(trainer: PuzzleTrainer) -> dict:
    """Full snapshot dict plus statistics and the last feedback sound."""
    state = trainer.session.snapshot().to_dict()
    state["stats"] = trainer.get_stats()
    state["feedback"] = _session.get("feedback")
    state["session_finished"] = trainer.is_finished
    return state


def _sync_state_json(state: dict) -> None:
    """Write session state to data/current_puzzle.json atomically.

    Uses temp file + os.replace() for atomic write.

    Args:
        state: Snapshot dict to persist.
    """
    directory = data_dir()
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / STATE_FILE_NAME
    tmp = directory / "current_puzzle.tmp"
    tmp.write_text(
        json.dumps(state, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    os.replace(tmp, target)


def _on_event(event: SessionEvent) -> None:
    """Record feedback and keep the TUI file current after every event."""
    if isinstance(event, Feedback):
        _session["feedback"] = event.sound.value
    elif isinstance(event, PuzzleComplete):
        _session["feedback"] = None
    trainer = _get_trainer()
    if trainer is None:
        return
    try:
        _sync_state_json(_build_state(trainer))
    except OSError as exc:
        logger.warning("Could not sync %s: %s", STATE_FILE_NAME, exc)


def _build_source(
    collection: str | None,
    lichess_db: str | None,
    themes: str | None,
    base_url: str | None,
) -> PuzzleSource:
    if base_url:
        return HttpPuzzleSource(base_url, collection_path=collection)
    if lichess_db:
        theme_list = [t.strip() for t in themes.split(",") if t.strip()] if themes else None
        return LichessDatabaseSource(lichess_db, themes=theme_list)
    return JsonCollectionSource(collection or data_dir() / "puzzles.json")


def _outcome_dict(outcome: MoveOutcome) -> dict:
    return {
        "status": outcome.status.value,
        "reason": outcome.reason.value if outcome.reason is not None else None,
        "move": outcome.move,
        "san": outcome.san,
        "next_move": outcome.next_move,
    }


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


@mcp.tool()
def start_session(
    collection: str | None = None,
    lichess_db: str | None = None,
    themes: str | None = None,
    base_url: str | None = None,
    ids: list[str] | None = None,
    seed: int | None = None,
) -> dict:
    """Start a puzzle training session and load its first puzzle.

    Args:
        collection: Puzzle collection JSON path (default: data/puzzles.json).
            With base_url, a JSON list of puzzle ids instead.
        lichess_db: Lichess puzzle dump (csv.zst) to draw puzzles from.
        themes: Comma-separated Lichess themes, with lichess_db.
        base_url: Puzzle backend URL; puzzles are fetched over HTTP.
        ids: Restrict the session to these puzzle ids.
        seed: Shuffle seed for a reproducible order.

    Returns:
        Session state dict with the number of queued puzzles.
    """
    try:
        timings = SessionTimings.from_env()
    except ValueError as exc:
        return {"error": f"Invalid timing configuration: {exc}"}

    source = _build_source(collection, lichess_db, themes, base_url)
    rng = random.Random(seed) if seed is not None else None
    supply = PuzzleSupply(source, cache=PuzzleCache(cache_dir()), rng=rng)

    _session.clear()
    trainer = PuzzleTrainer(supply, _new_scheduler(), timings, on_event=_on_event)
    _session["trainer"] = trainer
    try:
        queued = trainer.start(ids)
    except (OSError, ValueError, PuzzleRocketError) as exc:
        _session.clear()
        return {"error": f"Could not start session: {exc}"}

    state = _build_state(trainer)
    _sync_state_json(state)
    result = minify_session_state(state)
    result["queued"] = queued
    result["session_finished"] = trainer.is_finished
    return result


@mcp.tool()
def load_puzzle(puzzle_id: str) -> dict:
    """Load a specific puzzle by id into the current session.

    Args:
        puzzle_id: Puzzle identifier.

    Returns:
        Session state dict for the loaded puzzle.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    try:
        trainer.load_puzzle(puzzle_id)
    except (OSError, PuzzleRocketError) as exc:
        return {"error": str(exc)}

    state = _build_state(trainer)
    _sync_state_json(state)
    return minify_session_state(state)


@mcp.tool()
def get_state() -> dict:
    """Get the current puzzle state.

    Returns:
        Session state dict (FEN, theme, progress, overlay state).
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    return minify_session_state(_build_state(trainer))


@mcp.tool()
def submit_move(move: str) -> dict:
    """Submit the user's move in compact notation (e.g. 'e2e4', 'e7e8q').

    A wrong move starts the reset-and-demonstrate sequence; the opponent's
    reply to a correct move arrives after a short delay.

    Args:
        move: Origin square, destination square, optional promotion piece.

    Returns:
        Dict with status (ignored/rejected/accepted/solved), reason for a
        rejection, and the resulting state.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    if trainer.is_finished:
        return {"error": "Session finished. Call start_session to begin another."}

    outcome = trainer.session.submit_move(move)
    state = _build_state(trainer)
    _sync_state_json(state)
    return minify_move_outcome(_outcome_dict(outcome), state)


@mcp.tool()
def drag_move(
    origin: str,
    x: float,
    y: float,
    cell_size: float,
    promotion: str | None = None,
) -> dict:
    """Submit a drag gesture: a piece picked up on origin, released at (x, y).

    Coordinates are board pixels from the top-left corner, in the
    orientation of the current puzzle (the user's color at the bottom).

    Args:
        origin: Square the piece was dragged from.
        x: Release x coordinate.
        y: Release y coordinate.
        cell_size: Pixel size of one square.
        promotion: Optional promotion piece (q, r, b, n).

    Returns:
        Same shape as submit_move.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    try:
        outcome = trainer.session.submit_drag(origin, Point(x, y), cell_size, promotion)
    except (InvalidSquare, InvalidCellSize) as exc:
        return {"error": str(exc)}

    state = _build_state(trainer)
    _sync_state_json(state)
    return minify_move_outcome(_outcome_dict(outcome), state)


@mcp.tool()
def next_puzzle() -> dict:
    """Skip to the next puzzle in the session queue.

    Returns:
        Session state dict; session_finished is true when the queue is empty.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)

    trainer.next_puzzle()
    state = _build_state(trainer)
    _sync_state_json(state)
    result = minify_session_state(state)
    result["session_finished"] = trainer.is_finished
    return result


@mcp.tool()
def session_stats(include_records: bool = False) -> dict:
    """Get statistics for the current session.

    Args:
        include_records: Also return every finished attempt (id, theme,
            rating, solved, reason, timestamp).

    Returns:
        Dict with totals, success rate, per-theme results and reject reasons.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    result = minify_stats(trainer.get_stats())
    if include_records:
        result["records"] = trainer.export_records()
    return result


@mcp.tool()
def pause_session(paused: bool = True) -> dict:
    """Pause or resume the session clock.

    Elapsed time excludes paused spans. The board is not frozen.

    Args:
        paused: True to pause, False to resume.

    Returns:
        Dict with paused and elapsed_seconds.
    """
    trainer = _get_trainer()
    if trainer is None:
        return dict(_NO_SESSION)
    if paused:
        trainer.pause()
    else:
        trainer.resume()
    stats = trainer.get_stats()
    return {"paused": stats["paused"], "elapsed_seconds": stats["elapsed_seconds"]}


@mcp.tool()
def square_coordinates(
    square: str,
    orientation: str = "white-bottom",
    cell_size: float = 1.0,
) -> dict:
    """Map a square to board pixel coordinates.

    Args:
        square: Square name, e.g. 'e4'.
        orientation: 'white-bottom' or 'black-bottom'.
        cell_size: Pixel size of one square.

    Returns:
        Dict with the top-left corner (x, y) and center of the square.
    """
    try:
        oriented = Orientation(orientation)
        corner = square_to_coordinate(square, oriented, cell_size)
        center = square_center(square, oriented, cell_size)
    except ValueError as exc:
        return {"error": str(exc)}
    return {
        "square": square,
        "orientation": oriented.value,
        "x": corner.x,
        "y": corner.y,
        "center_x": center.x,
        "center_y": center.y,
    }


@mcp.tool()
def cache_info(clear: bool = False) -> dict:
    """Inspect the on-disk puzzle cache, optionally clearing it.

    Args:
        clear: Delete every cached puzzle after inspecting.

    Returns:
        Dict with count, total_bytes, themes, corrupt, and removed if cleared.
    """
    cache = PuzzleCache(cache_dir())
    info = cache.inspect()
    if clear:
        info["removed"] = cache.clear()
    return info


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    configure_logging()
    mcp.run()
