"""Shared test fixtures.

Usage:
    pytest tests/

Fixtures:
    opening_record     - Three-move puzzle from the starting position.
    promotion_record   - One-move promotion puzzle (e7e8q).
    pinned_record      - Bishop pinned to its king; one-move puzzle.
    black_record       - Black to move, two-move puzzle.
    scheduler          - ManualScheduler (virtual clock).
    timings            - Distinct, non-zero delays for sequencing tests.
    collection_file    - JSON collection with all of the above.
    isolated_data_dir  - PUZZLE_ROCKET_DATA_DIR pointed at tmp_path.
    enable_validation  - Sets PUZZLE_ROCKET_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import chess
import pytest

from puzzle_rocket.models import Puzzle
from puzzle_rocket.scheduler import ManualScheduler
from puzzle_rocket.settings import SessionTimings

PROMOTION_FEN = "2k5/4P3/8/8/8/8/8/4K3 w - - 0 1"
PINNED_FEN = "k3q3/8/8/8/8/8/4B3/4K3 w - - 0 1"
# After 1.e4 e5 2.Nf3: black to move
BLACK_FEN = "rnbqkbnr/pppp1ppp/8/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R b KQkq - 1 2"


# ---------------------------------------------------------------------------
# Puzzle records
# ---------------------------------------------------------------------------


@pytest.fixture()
def opening_record() -> dict:
    return {
        "id": "open1",
        "fen": chess.STARTING_FEN,
        "solution_moves": ["e2e4", "e7e5", "g1f3"],
        "theme": "Opening",
        "rating": 1200,
    }


@pytest.fixture()
def promotion_record() -> dict:
    return {
        "id": "promo1",
        "fen": PROMOTION_FEN,
        "solution_moves": ["e7e8q"],
        "theme": "Promotion",
        "rating": 800,
    }


@pytest.fixture()
def pinned_record() -> dict:
    # The bishop on e2 is pinned by the queen on e8; Ke1-d1 is the answer
    return {
        "id": "pin1",
        "fen": PINNED_FEN,
        "solution_moves": ["e1d1"],
        "theme": "Pin",
    }


@pytest.fixture()
def black_record() -> dict:
    return {
        "id": "black1",
        "fen": BLACK_FEN,
        "solution_moves": ["b8c6", "f1b5"],
        "theme": "Opening",
        "rating": 1000,
    }


@pytest.fixture()
def opening_puzzle(opening_record) -> Puzzle:
    return Puzzle.from_record(opening_record)


@pytest.fixture()
def promotion_puzzle(promotion_record) -> Puzzle:
    return Puzzle.from_record(promotion_record)


@pytest.fixture()
def black_puzzle(black_record) -> Puzzle:
    return Puzzle.from_record(black_record)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def timings() -> SessionTimings:
    return SessionTimings(
        opponent_delay=0.5,
        reset_delay=0.5,
        auto_solve_delay=1.0,
        next_puzzle_delay=2.0,
        success_delay=1.0,
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@pytest.fixture()
def collection_file(tmp_path, opening_record, promotion_record, pinned_record, black_record) -> Path:
    path = tmp_path / "puzzles.json"
    path.write_text(
        json.dumps([opening_record, promotion_record, pinned_record, black_record], indent=2),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def isolated_data_dir(tmp_path, monkeypatch) -> Path:
    """Point PUZZLE_ROCKET_DATA_DIR at a fresh directory."""
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("PUZZLE_ROCKET_DATA_DIR", str(data))
    return data


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set PUZZLE_ROCKET_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("PUZZLE_ROCKET_VALIDATE")
    os.environ["PUZZLE_ROCKET_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("PUZZLE_ROCKET_VALIDATE", None)
    else:
        os.environ["PUZZLE_ROCKET_VALIDATE"] = original
