#!/usr/bin/env python3
"""Build a puzzle collection from the Lichess puzzle dump.

The dump (lichess_db_puzzle.csv.zst) is a zstd-compressed CSV with one
puzzle per row. Each row's FEN is taken one ply before the puzzle starts:
the first UCI move in the Moves column is the opponent's setup move, and
the rest is the solution the player has to find. Rows are filtered by
theme, rating and popularity, replayed with python-chess, and written out
as a JSON list that JsonCollectionSource can load. LichessDatabaseSource
reads the dump through the same functions.
"""

from __future__ import annotations

import argparse
import csv
import io
import json
import logging
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import NamedTuple

import chess
import zstandard

from puzzle_rocket.models import DEFAULT_THEME
from puzzle_rocket.settings import configure_logging, data_dir

logger = logging.getLogger(__name__)

# Lichess tag -> display theme; earlier entries win when several match
THEME_NAMES: dict[str, str] = {
    "backRankMate": "Back Rank Mate",
    "smotheredMate": "Smothered Mate",
    "arabianMate": "Arabian Mate",
    "anastasiasMate": "Anastasia's Mate",
    "mateIn1": "Mate in 1",
    "mateIn2": "Mate in 2",
    "mateIn3": "Mate in 3",
    "fork": "Fork",
    "pin": "Pin",
    "skewer": "Skewer",
    "discoveredAttack": "Discovered Attack",
    "doubleCheck": "Double Check",
    "promotion": "Promotion",
    "endgame": "Endgame",
    "opening": "Opening",
    "middlegame": "Middlegame",
}

_MATE_TAGS = frozenset(
    {"mateIn1", "mateIn2", "mateIn3", "smotheredMate", "arabianMate", "anastasiasMate"}
)
_BACK_RANKS = (0, 7)
_COLUMNS = 8


class LichessRow(NamedTuple):
    puzzle_id: str
    fen: str
    moves: list[str]
    rating: int
    popularity: int
    tags: list[str]

    @classmethod
    def parse(cls, fields: list[str]) -> LichessRow | None:
        if len(fields) < _COLUMNS:
            return None
        try:
            rating, popularity = int(fields[3]), int(fields[5])
        except ValueError:
            return None
        return cls(fields[0], fields[1], fields[2].split(), rating, popularity, fields[7].split())


def default_db_path() -> Path:
    return data_dir() / "lichess_db_puzzle.csv.zst"


def _normalize_fen(fen: str) -> str:
    """Position key without the halfmove and fullmove counters."""
    fields = fen.split()
    if len(fields) < 4:
        return fen
    return " ".join(fields[:4])


def _pick_theme(tags: Iterable[str]) -> str | None:
    tag_set = set(tags)
    return next((name for tag, name in THEME_NAMES.items() if tag in tag_set), None)


def _replay(fen: str, moves: list[str]) -> tuple[chess.Board, chess.Board, list[str]] | None:
    """Play the setup move and the solution.

    Returns (puzzle start board, final board, solution SAN), or None if
    the FEN is unreadable or any move is illegal.
    """
    try:
        board = chess.Board(fen)
        setup = chess.Move.from_uci(moves[0])
        if not board.is_legal(setup):
            return None
        board.push(setup)
        start = board.copy()
        san = []
        for text in moves[1:]:
            move = chess.Move.from_uci(text)
            if not board.is_legal(move):
                return None
            san.append(board.san(move))
            board.push(move)
    except ValueError:
        return None
    return start, board, san


def _mate_claim_holds(tags: set[str], final: chess.Board) -> bool:
    """Mate tags need a mated final position; backRankMate needs the king on rank 1 or 8."""
    if not tags & (_MATE_TAGS | {"backRankMate"}):
        return True
    if not final.is_checkmate():
        return False
    if "backRankMate" not in tags:
        return True
    king = final.king(final.turn)
    return king is not None and chess.square_rank(king) in _BACK_RANKS


def iter_rows(db_path: Path) -> Iterator[list[str]]:
    """Yield the dump's CSV rows, header excluded.

    Raises:
        FileNotFoundError: If db_path does not exist.
    """
    with open(db_path, "rb") as raw:
        stream = zstandard.ZstdDecompressor().stream_reader(raw)
        rows = csv.reader(io.TextIOWrapper(stream, encoding="utf-8"))
        header = next(rows, None)
        if header is not None:
            yield from rows


def row_to_record(
    row: list[str],
    themes: set[str] | None = None,
    min_rating: int = 0,
    max_rating: int = 9999,
    min_popularity: int = -100,
) -> dict | None:
    """Turn one dump row into a puzzle record.

    Args:
        row: CSV fields in dump column order.
        themes: Accepted Lichess tags; the row must carry at least one.
            None accepts every row.
        min_rating: Lowest accepted rating.
        max_rating: Highest accepted rating.
        min_popularity: Lowest accepted popularity (-100 to 100).

    Returns:
        The record, or None when the row is rejected or malformed.
    """
    parsed = LichessRow.parse(row)
    if parsed is None:
        return None
    if not min_rating <= parsed.rating <= max_rating or parsed.popularity < min_popularity:
        return None

    tags = set(parsed.tags)
    matched = tags if themes is None else tags & themes
    if (themes is not None and not matched) or len(parsed.moves) < 2:
        return None

    replayed = _replay(parsed.fen, parsed.moves)
    if replayed is None:
        return None
    start, final, san = replayed
    if not _mate_claim_holds(matched, final):
        return None

    return {
        "id": parsed.puzzle_id,
        "fen": start.fen(),
        "solution_moves": parsed.moves[1:],
        "solution_san": san,
        "theme": _pick_theme(matched) or _pick_theme(parsed.tags) or DEFAULT_THEME,
        "rating": parsed.rating,
        "popularity": parsed.popularity,
        "source": "lichess",
        "lichess_themes": parsed.tags,
    }


def iter_records(
    db_path: Path,
    themes: set[str] | None = None,
    min_rating: int = 0,
    max_rating: int = 9999,
    min_popularity: int = -100,
) -> Iterator[dict]:
    """Yield accepted records, one per distinct starting position."""
    positions: set[str] = set()
    for row in iter_rows(db_path):
        record = row_to_record(row, themes, min_rating, max_rating, min_popularity)
        if record is None:
            continue
        key = _normalize_fen(record["fen"])
        if key not in positions:
            positions.add(key)
            yield record


def import_puzzles(
    db_path: Path,
    themes: list[str],
    min_rating: int = 0,
    max_rating: int = 9999,
    min_popularity: int = 80,
    limit: int = 50,
) -> list[dict]:
    """Collect up to ``limit`` records matching any of ``themes``.

    A missing dump is reported on stderr and yields an empty list.
    """
    if not db_path.exists():
        print(f"Lichess dump not found: {db_path}", file=sys.stderr)
        return []

    records = iter_records(db_path, set(themes), min_rating, max_rating, min_popularity)
    collected = [record for _, record in zip(range(limit), records)]
    logger.info("Collected %d puzzles from %s", len(collected), db_path)
    return collected


def _write_collection(puzzles: list[dict], output: str | None) -> None:
    text = json.dumps(puzzles, indent=2)
    if output is None:
        print(text)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n")
    print(f"{len(puzzles)} puzzles saved to {path}", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="puzzle-rocket-import",
        description="Extract a puzzle collection from the Lichess puzzle dump",
    )
    parser.add_argument("--themes", required=True,
                        help="Lichess tags to accept, comma separated (mateIn1,fork,...)")
    parser.add_argument("--min-rating", type=int, default=0, help="lowest rating kept")
    parser.add_argument("--max-rating", type=int, default=9999, help="highest rating kept")
    parser.add_argument("--min-popularity", type=int, default=80,
                        help="lowest popularity kept, -100 to 100")
    parser.add_argument("--limit", type=int, default=50, help="stop after this many puzzles")
    parser.add_argument("--output", default=None, help="collection file to write; stdout if omitted")
    parser.add_argument("--db", default=None,
                        help="dump location; defaults to lichess_db_puzzle.csv.zst in the data dir")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.verbose)

    themes = [tag.strip() for tag in args.themes.split(",") if tag.strip()]
    if not themes:
        print("--themes needs at least one tag", file=sys.stderr)
        return 1

    puzzles = import_puzzles(
        Path(args.db) if args.db else default_db_path(),
        themes,
        min_rating=args.min_rating,
        max_rating=args.max_rating,
        min_popularity=args.min_popularity,
        limit=args.limit,
    )
    if not puzzles:
        print("Nothing matched the filters.", file=sys.stderr)
        return 1

    _write_collection(puzzles, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
