"""Puzzle supply: sources, a read-through disk cache and the session queue.

Sources produce raw puzzle records by id:

    JsonCollectionSource   -- a JSON list of records (import_lichess_puzzles
                              output, or any hand-written collection)
    LichessDatabaseSource  -- the Lichess csv.zst dump, streamed with zstandard
    HttpPuzzleSource       -- GET {base_url}/puzzles/{id} over HTTP

PuzzleSupply validates records into Puzzle objects, checks the cache before
the source, and hands out a shuffled per-session queue of ids.
"""

from __future__ import annotations

import io
import json
import logging
import os
import random
import re
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Protocol

import chess
import chess.pgn

from puzzle_rocket.errors import InvalidPuzzle, PuzzleNotFound, SessionExhausted
from puzzle_rocket.import_lichess_puzzles import iter_records
from puzzle_rocket.models import DEFAULT_THEME, Puzzle

logger = logging.getLogger(__name__)

MAX_SESSION_PUZZLES = 200


class PuzzleSource(Protocol):
    """Provider of raw puzzle records."""

    def fetch(self, puzzle_id: str) -> dict | None: ...

    def puzzle_ids(self) -> list[str]: ...


def _load_id_list(path: Path) -> list[str]:
    """Read puzzle ids from a JSON list, or a dict of category -> id list."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        ids: list[str] = []
        for group in data.values():
            ids.extend(str(i) for i in group)
        return ids
    return [str(i) for i in data]


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class JsonCollectionSource:
    """Puzzle records from a JSON file.

    Accepts a top-level list of records or an object with a ``puzzles``
    list. Records without an ``id`` (or ``lichess_id``) are skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._records: dict[str, dict] | None = None

    def _index(self) -> dict[str, dict]:
        if self._records is None:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                data = data.get("puzzles", [])
            records: dict[str, dict] = {}
            for record in data:
                puzzle_id = record.get("id") or record.get("lichess_id")
                if not puzzle_id:
                    logger.warning("Skipping record without id in %s", self._path)
                    continue
                records[str(puzzle_id)] = record
            self._records = records
        return self._records

    def fetch(self, puzzle_id: str) -> dict | None:
        record = self._index().get(puzzle_id)
        return dict(record) if record is not None else None

    def puzzle_ids(self) -> list[str]:
        return list(self._index())


class LichessDatabaseSource:
    """Puzzles streamed from the Lichess puzzle dump.

    The first ``limit`` matching rows are indexed on first use.

    Args:
        db_path: Path to lichess_db_puzzle.csv.zst.
        themes: Lichess theme tags to accept (None accepts all).
        min_rating: Minimum puzzle rating.
        max_rating: Maximum puzzle rating.
        min_popularity: Minimum popularity score.
        limit: Maximum number of puzzles to index.
    """

    def __init__(
        self,
        db_path: str | Path,
        themes: list[str] | None = None,
        min_rating: int = 0,
        max_rating: int = 9999,
        min_popularity: int = 80,
        limit: int = 1000,
    ) -> None:
        self._db_path = Path(db_path)
        self._themes = set(themes) if themes else None
        self._min_rating = min_rating
        self._max_rating = max_rating
        self._min_popularity = min_popularity
        self._limit = limit
        self._records: dict[str, dict] | None = None

    def _index(self) -> dict[str, dict]:
        if self._records is None:
            records: dict[str, dict] = {}
            for record in iter_records(
                self._db_path,
                self._themes,
                self._min_rating,
                self._max_rating,
                self._min_popularity,
            ):
                records[record["id"]] = record
                if len(records) >= self._limit:
                    break
            logger.info("Indexed %d puzzles from %s", len(records), self._db_path)
            self._records = records
        return self._records

    def fetch(self, puzzle_id: str) -> dict | None:
        record = self._index().get(puzzle_id)
        return dict(record) if record is not None else None

    def puzzle_ids(self) -> list[str]:
        return list(self._index())


def position_from_pgn(pgn: str, initial_ply: int) -> str:
    """FEN of the puzzle position inside a game.

    Plays the first ``initial_ply + 1`` mainline moves: the puzzle starts
    after the opponent's move at ``initial_ply``.

    Raises:
        ValueError: If the PGN cannot be parsed.
    """
    game = chess.pgn.read_game(io.StringIO(pgn))
    if game is None or game.errors:
        raise ValueError(f"Invalid PGN: {pgn[:60]!r}")
    board = game.board()
    for ply, move in enumerate(game.mainline_moves()):
        if ply > initial_ply:
            break
        board.push(move)
    return board.fen()


def normalize_http_record(data: dict, puzzle_id: str) -> dict:
    """Turn an HTTP puzzle payload into a puzzle record.

    Understands three shapes: a plain record with ``fen``; a flat record
    with ``pgn`` + ``initial_ply``; and the Lichess API shape with
    ``game.pgn`` and ``puzzle.initialPly``.

    Raises:
        ValueError: If no position can be derived.
    """
    if "game" in data and "puzzle" in data:
        puzzle = data["puzzle"]
        themes = puzzle.get("themes") or []
        data = {
            "id": puzzle.get("id"),
            "pgn": data["game"].get("pgn"),
            "initial_ply": puzzle.get("initialPly"),
            "solution": puzzle.get("solution"),
            "rating": puzzle.get("rating"),
            "theme": themes[0] if themes else None,
        }

    record = dict(data)
    record["id"] = str(data.get("id") or data.get("lichess_puzzle_id") or puzzle_id)
    if not record.get("fen"):
        pgn = data.get("pgn")
        initial_ply = data.get("initial_ply")
        if not pgn or initial_ply is None:
            raise ValueError(f"Puzzle {puzzle_id}: payload has neither fen nor pgn/initial_ply")
        record["fen"] = position_from_pgn(pgn, int(initial_ply))
    record["theme"] = data.get("theme") or DEFAULT_THEME
    record.setdefault("source", "http")
    return record


class HttpPuzzleSource:
    """Puzzles fetched one at a time from a puzzle backend.

    Args:
        base_url: Backend root, e.g. "https://example.org/api".
        ids: Puzzle ids available for sessions.
        collection_path: JSON file of ids (list, or category -> list),
            used when ``ids`` is not given.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        ids: list[str] | None = None,
        collection_path: str | Path | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._ids = list(ids) if ids is not None else None
        self._collection_path = Path(collection_path) if collection_path else None
        self._timeout = timeout

    def fetch(self, puzzle_id: str) -> dict | None:
        """GET one puzzle.

        Returns:
            The puzzle record, or None on HTTP 404.

        Raises:
            OSError: On network failures and non-404 HTTP errors.
            ValueError: If the payload is not a usable puzzle.
        """
        url = f"{self._base_url}/puzzles/{urllib.parse.quote(puzzle_id, safe='')}"
        try:
            with urllib.request.urlopen(url, timeout=self._timeout) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return None
            raise
        return normalize_http_record(data, puzzle_id)

    def puzzle_ids(self) -> list[str]:
        if self._ids is None:
            self._ids = _load_id_list(self._collection_path) if self._collection_path else []
        return list(self._ids)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class PuzzleCache:
    """Read-through puzzle cache: one JSON file per puzzle id.

    Unreadable or invalid entries are treated as misses.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._dir = Path(cache_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, puzzle_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_-]", "_", puzzle_id)
        return self._dir / f"{safe}.json"

    def get(self, puzzle_id: str) -> Puzzle | None:
        path = self._path_for(puzzle_id)
        if not path.exists():
            return None
        try:
            puzzle = Puzzle.from_record(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, InvalidPuzzle, AttributeError) as exc:
            logger.warning("Ignoring corrupt cache entry %s: %s", path.name, exc)
            return None
        if puzzle.id != puzzle_id:
            logger.warning("Cache entry %s holds puzzle %s", path.name, puzzle.id)
            return None
        return puzzle

    def store(self, puzzle: Puzzle) -> None:
        """Write a puzzle with an atomic replace.

        Raises:
            OSError: If the cache directory is not writable.
        """
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(puzzle.id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(puzzle.to_record(), indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    def clear(self) -> int:
        """Delete every cache entry. Returns the number removed."""
        removed = 0
        if not self._dir.exists():
            return 0
        for path in self._dir.glob("*.json"):
            path.unlink()
            removed += 1
        return removed

    def cached_ids(self) -> list[str]:
        if not self._dir.exists():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def inspect(self) -> dict:
        """Summarize the cache contents.

        Returns:
            Dict with keys: count, total_bytes, themes, corrupt.
        """
        count = 0
        total_bytes = 0
        corrupt = 0
        themes: dict[str, int] = {}
        for puzzle_id in self.cached_ids():
            path = self._path_for(puzzle_id)
            total_bytes += path.stat().st_size
            puzzle = self.get(puzzle_id)
            if puzzle is None:
                corrupt += 1
                continue
            count += 1
            themes[puzzle.theme] = themes.get(puzzle.theme, 0) + 1
        return {
            "count": count,
            "total_bytes": total_bytes,
            "themes": themes,
            "corrupt": corrupt,
        }


# ---------------------------------------------------------------------------
# Supply
# ---------------------------------------------------------------------------


class PuzzleSupply:
    """Cache-then-fetch puzzle lookup plus a per-session id queue.

    Args:
        source: Where puzzles come from on a cache miss.
        cache: Optional PuzzleCache. Write failures are logged, never raised.
        max_session_puzzles: Cap on the session queue length.
        rng: Random instance used to shuffle the session queue.
    """

    def __init__(
        self,
        source: PuzzleSource,
        cache: PuzzleCache | None = None,
        max_session_puzzles: int = MAX_SESSION_PUZZLES,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._max_session_puzzles = max_session_puzzles
        self._rng = rng or random.Random()
        self._queue: list[str] = []
        self._session_size = 0

    @property
    def source(self) -> PuzzleSource:
        return self._source

    @property
    def cache(self) -> PuzzleCache | None:
        return self._cache

    def get_puzzle(self, puzzle_id: str) -> Puzzle:
        """Look up a puzzle, cache first.

        Raises:
            PuzzleNotFound: If the source has no such puzzle.
            InvalidPuzzle: If the source record fails validation.
            OSError: If the source is unreachable.
        """
        if self._cache is not None:
            cached = self._cache.get(puzzle_id)
            if cached is not None:
                logger.debug("Cache hit for %s", puzzle_id)
                return cached

        try:
            record = self._source.fetch(puzzle_id)
        except ValueError as exc:
            raise InvalidPuzzle(f"Puzzle {puzzle_id}: {exc}") from exc
        if record is None:
            raise PuzzleNotFound(puzzle_id)

        puzzle = Puzzle.from_record(record)
        if self._cache is not None:
            try:
                self._cache.store(puzzle)
            except OSError as exc:
                logger.warning("Could not cache puzzle %s: %s", puzzle_id, exc)
        return puzzle

    def initialize_session(self, ids: list[str] | None = None) -> int:
        """Build a shuffled session queue.

        Args:
            ids: Puzzle ids to draw from. Defaults to every id the source
                offers. Duplicates are dropped.

        Returns:
            Number of puzzles queued (at most max_session_puzzles).
        """
        pool = list(dict.fromkeys(ids if ids is not None else self._source.puzzle_ids()))
        self._rng.shuffle(pool)
        self._queue = pool[: self._max_session_puzzles]
        self._session_size = len(self._queue)
        logger.info("Session initialized with %d puzzles", self._session_size)
        return self._session_size

    def get_next_in_session(self) -> Puzzle:
        """Pop the next playable puzzle from the session queue.

        Puzzles that cannot be fetched or fail validation are logged and
        skipped.

        Raises:
            SessionExhausted: When the queue is empty.
        """
        while self._queue:
            puzzle_id = self._queue.pop(0)
            try:
                return self.get_puzzle(puzzle_id)
            except (PuzzleNotFound, InvalidPuzzle, OSError) as exc:
                logger.warning("Skipping puzzle %s: %s", puzzle_id, exc)
        raise SessionExhausted("No more puzzles in this session")

    def remaining_count(self) -> int:
        return len(self._queue)

    @property
    def session_size(self) -> int:
        return self._session_size

    def clear_session(self) -> None:
        self._queue = []
        self._session_size = 0
