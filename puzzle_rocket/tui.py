"""Terminal puzzle board for Puzzle Rocket.

Three modes:
    play     solve puzzles interactively in the terminal
    watch    follow data/current_puzzle.json (written by the MCP server)
             via watchdog at ~4Hz
    --sample render a built-in puzzle and exit
"""

from __future__ import annotations

import argparse
import json
import random
import sys
import time
from pathlib import Path
from typing import Callable

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from puzzle_rocket.errors import PuzzleRocketError
from puzzle_rocket.events import Feedback, MoveApplied, SessionEvent
from puzzle_rocket.models import Orientation, Puzzle, SoundCategory
from puzzle_rocket.move_codec import FILES, RANKS
from puzzle_rocket.puzzle_session import MoveStatus, PuzzleSession
from puzzle_rocket.puzzle_supply import (
    JsonCollectionSource,
    LichessDatabaseSource,
    PuzzleCache,
    PuzzleSupply,
)
from puzzle_rocket.scheduler import ManualScheduler
from puzzle_rocket.settings import SessionTimings, cache_dir, configure_logging, data_dir
from puzzle_rocket.trainer import PuzzleTrainer

STATE_FILE_NAME = "current_puzzle.json"

# Unicode piece symbols, keyed by (kind, color)
_PIECE_SYMBOLS = {
    ("k", "white"): "♔", ("q", "white"): "♕", ("r", "white"): "♖",
    ("b", "white"): "♗", ("n", "white"): "♘", ("p", "white"): "♙",
    ("k", "black"): "♚", ("q", "black"): "♛", ("r", "black"): "♜",
    ("b", "black"): "♝", ("n", "black"): "♞", ("p", "black"): "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

_OVERLAY_TITLES = {
    "TRANSITIONING": ("Solved!", "green"),
    "RESETTING": ("Incorrect, resetting...", "red"),
    "AUTO_SOLVING": ("Showing the solution", "magenta"),
    "LOADING": ("Loading next puzzle...", "dim"),
}

_SAMPLE_PUZZLE = {
    "id": "sample",
    "fen": "6k1/5ppp/8/8/8/8/5PPP/3R2K1 w - - 0 1",
    "solution_moves": ["d1d8"],
    "theme": "Back Rank Mate",
    "rating": 900,
}


def _load_state(path: Path) -> dict | None:
    """Load a snapshot dict from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def render_board(state: dict) -> Layout:
    """Render the full board layout from a snapshot dict.

    Args:
        state: SessionSnapshot.to_dict() output, optionally with a
            ``stats`` entry.

    Returns:
        Rich Layout with board and sidebar.
    """
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(state))
    layout["sidebar"].update(_render_sidebar(state))
    return layout


def board_rows(state: dict) -> list[list[str]]:
    """Square names row by row, top of the screen first, per orientation."""
    if state.get("orientation") == Orientation.BLACK_BOTTOM.value:
        return [[f + r for f in reversed(FILES)] for r in RANKS]
    return [[f + r for f in FILES] for r in reversed(RANKS)]


def overlay_title(state: dict) -> tuple[str, str]:
    """Panel title and border style for the current transition state."""
    transition = state.get("transition_state", "STABLE")
    if transition in _OVERLAY_TITLES:
        return _OVERLAY_TITLES[transition]
    if state.get("puzzle_id") is None:
        return "Puzzle Rocket", "dim"
    if state.get("accepts_input"):
        return f"Your move ({state.get('side_to_move', 'white')})", "blue"
    return "Opponent is replying...", "cyan"


def _render_board_panel(state: dict) -> Panel:
    board = state.get("board", {})
    highlights = set(state.get("highlight_squares", []))

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    rows = board_rows(state)
    for squares in rows:
        row: list[Text] = [Text(squares[0][1], style="bold")]
        for sq in squares:
            is_light = (FILES.index(sq[0]) + RANKS.index(sq[1])) % 2 == 1
            bg = _HIGHLIGHT if sq in highlights else (_LIGHT_SQ if is_light else _DARK_SQ)
            piece = board.get(sq)
            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(tuple(piece), "?")
                row.append(Text(f" {symbol} ", style=f"on {bg}"))
            else:
                row.append(Text("   ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for sq in rows[-1]:
        file_labels.append(Text(f" {sq[0]} ", style="bold"))
    table.add_row(*file_labels)

    title, border = overlay_title(state)
    return Panel(table, title=title, border_style=border)


def _render_sidebar(state: dict) -> Panel:
    parts: list[str] = []

    puzzle_id = state.get("puzzle_id")
    if puzzle_id is None:
        parts.append("[italic]No puzzle loaded[/italic]")
    else:
        parts.append(f"[bold]Puzzle {puzzle_id}[/bold]")
        parts.append(f"Theme: {state.get('theme', '')}")
        length = state.get("solution_length", 0)
        parts.append(f"Progress: {state.get('move_index', 0)}/{length}")
        last_move = state.get("last_move")
        if last_move:
            parts.append(f"Last move: {last_move}")
    parts.append("")

    stats = state.get("stats")
    if stats:
        parts.append("[bold]Session:[/bold]")
        parts.append(f"  Solved: {stats.get('successful', 0)}/{stats.get('total', 0)}")
        parts.append(f"  Success rate: {stats.get('success_rate', 0.0) * 100:.0f}%")
        if "remaining" in stats:
            parts.append(f"  Remaining: {stats['remaining']}")

    return Panel("\n".join(parts), title="Info", border_style="green")


def _render_waiting() -> Panel:
    return Panel(
        Text("Waiting for a puzzle...\n\nStart a session via the MCP server to see the board.",
             justify="center"),
        title="Puzzle Rocket",
        border_style="dim",
    )


def trainer_state(trainer: PuzzleTrainer) -> dict:
    state = trainer.session.snapshot().to_dict()
    state["stats"] = trainer.get_stats()
    return state


# ---------------------------------------------------------------------------
# Play
# ---------------------------------------------------------------------------


def run_play(
    trainer: PuzzleTrainer,
    scheduler: ManualScheduler,
    console: Console,
    read_move: Callable[[str], str],
    sleep: Callable[[float], None] | None = time.sleep,
    ids: list[str] | None = None,
) -> dict:
    """Interactive solving loop.

    The board is drawn before every prompt; scheduled replies and
    demonstrations run between prompts, paced by ``sleep``.

    Returns:
        Final session statistics.
    """
    trainer.start(ids)
    while not trainer.is_finished:
        console.print(render_board(trainer_state(trainer)))
        if not trainer.session.accepts_input:
            if scheduler.run_until_idle(sleep=sleep) == 0:
                break
            continue

        text = read_move("Your move (e.g. e2e4, q to quit): ").strip()
        if text.lower() in ("q", "quit", "exit"):
            trainer.stop()
            break
        outcome = trainer.session.submit_move(text)
        if outcome.status is MoveStatus.REJECTED and outcome.reason is not None:
            console.print(f"[red]{text}: {outcome.reason.value}[/red]")
        elif outcome.status is MoveStatus.IGNORED:
            console.print("[dim]No move made[/dim]")
        scheduler.run_until_idle(sleep=sleep)

    stats = trainer.get_stats()
    console.print(
        f"[bold]Session over:[/bold] {stats['successful']}/{stats['total']} solved"
    )
    return stats


def _event_printer(console: Console) -> Callable[[SessionEvent], None]:
    def on_event(event: SessionEvent) -> None:
        if isinstance(event, MoveApplied) and event.actor != "user":
            console.print(f"[cyan]{event.actor}: {event.san}[/cyan]")
        elif isinstance(event, Feedback):
            style = "green" if event.sound is SoundCategory.SUCCESS else "red"
            console.print(f"[{style}]{event.sound.value}[/{style}]")
    return on_event


def _build_supply(args: argparse.Namespace) -> PuzzleSupply:
    if args.lichess_db:
        themes = [t.strip() for t in args.themes.split(",")] if args.themes else None
        source = LichessDatabaseSource(
            args.lichess_db,
            themes=themes,
            min_rating=args.min_rating,
            max_rating=args.max_rating,
            limit=args.limit,
        )
    else:
        source = JsonCollectionSource(args.collection or data_dir() / "puzzles.json")
    rng = random.Random(args.seed) if args.seed is not None else None
    return PuzzleSupply(source, cache=PuzzleCache(cache_dir()), rng=rng)


# ---------------------------------------------------------------------------
# Watch
# ---------------------------------------------------------------------------


def _watch_loop(console: Console, state_path: Path) -> None:
    """Watch the state file and auto-update display at ~4Hz."""
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    last_state: dict | None = None
    state_changed = True

    class _Handler(FileSystemEventHandler):
        def on_any_event(self, event):
            nonlocal state_changed
            if str(getattr(event, "dest_path", "") or event.src_path).endswith(state_path.name):
                state_changed = True

    observer = Observer()
    state_path.parent.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(state_path.parent), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if state_changed:
                    state = _load_state(state_path)
                    if state is not None:
                        last_state = state
                        live.update(render_board(state))
                    elif last_state is None:
                        live.update(_render_waiting())
                    state_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


def sample_state() -> dict:
    """Snapshot dict of the built-in sample puzzle, freshly loaded."""
    session = PuzzleSession(ManualScheduler())
    session.load(Puzzle.from_record(_SAMPLE_PUZZLE))
    return session.snapshot().to_dict()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for tui.py."""
    parser = argparse.ArgumentParser(description="Puzzle Rocket Terminal UI")
    parser.add_argument(
        "--sample", action="store_true",
        help="Render a sample puzzle and exit (no watch loop)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    play = sub.add_parser("play", help="Solve puzzles in the terminal")
    play.add_argument("--collection", type=str, default=None,
                      help="Puzzle collection JSON (default: <data dir>/puzzles.json)")
    play.add_argument("--lichess-db", type=str, default=None,
                      help="Lichess puzzle dump (csv.zst) to draw puzzles from")
    play.add_argument("--themes", type=str, default=None,
                      help="Comma-separated Lichess themes (with --lichess-db)")
    play.add_argument("--min-rating", type=int, default=0)
    play.add_argument("--max-rating", type=int, default=9999)
    play.add_argument("--limit", type=int, default=200,
                      help="Puzzles to index from the Lichess dump (default: 200)")
    play.add_argument("--ids", type=str, default=None,
                      help="Comma-separated puzzle ids to play")
    play.add_argument("--seed", type=int, default=None, help="Shuffle seed")
    play.add_argument("--instant", action="store_true",
                      help="No delays between replies and demonstration moves")

    watch = sub.add_parser("watch", help="Follow the MCP server's current puzzle")
    watch.add_argument("--state-file", type=str, default=None)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    console = Console()

    if args.sample:
        console.print(render_board(sample_state()))
        return 0

    if args.command == "play":
        timings = SessionTimings.instant() if args.instant else SessionTimings.from_env()
        scheduler = ManualScheduler()
        try:
            supply = _build_supply(args)
            trainer = PuzzleTrainer(supply, scheduler, timings, on_event=_event_printer(console))
            ids = [i.strip() for i in args.ids.split(",")] if args.ids else None
            run_play(trainer, scheduler, console, console.input,
                     sleep=None if args.instant else time.sleep, ids=ids)
        except (OSError, PuzzleRocketError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    state_path = data_dir() / STATE_FILE_NAME
    if args.command == "watch" and args.state_file:
        state_path = Path(args.state_file)
    _watch_loop(console, state_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
