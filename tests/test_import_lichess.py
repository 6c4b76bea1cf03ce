"""Tests for the Lichess puzzle database importer."""

from __future__ import annotations

import json

import zstandard

from puzzle_rocket.import_lichess_puzzles import (
    _normalize_fen,
    _pick_theme,
    import_puzzles,
    main,
    row_to_record,
)

_SETUP_FEN = "6k1/5ppp/8/8/8/p7/5PPP/3R2K1 b - - 0 1"


def _row(moves="a3a2 d1d8", rating="1000", popularity="95", themes="backRankMate mateIn1 short",
         fen=_SETUP_FEN, puzzle_id="br001"):
    return [puzzle_id, fen, moves, rating, "75", popularity, "500", themes, "https://lichess.org/x", ""]


def _write_db(path, rows):
    lines = ["PuzzleId,FEN,Moves,Rating,RatingDeviation,Popularity,NbPlays,Themes,GameUrl,OpeningTags"]
    lines += [",".join(r) for r in rows]
    path.write_bytes(zstandard.ZstdCompressor().compress(("\n".join(lines) + "\n").encode()))
    return path


class TestRowToRecord:

    def test_setup_move_applied(self):
        record = row_to_record(_row())
        assert record["id"] == "br001"
        assert record["fen"] == "6k1/5ppp/8/8/8/8/p4PPP/3R2K1 w - - 0 2"
        assert record["solution_moves"] == ["d1d8"]
        assert record["solution_san"] == ["Rd8#"]
        assert record["theme"] == "Back Rank Mate"
        assert record["rating"] == 1000
        assert record["source"] == "lichess"

    def test_theme_follows_filter(self):
        assert row_to_record(_row(), themes={"mateIn1"})["theme"] == "Mate in 1"

    def test_filters(self):
        assert row_to_record(_row(rating="2500"), max_rating=2000) is None
        assert row_to_record(_row(rating="500"), min_rating=800) is None
        assert row_to_record(_row(popularity="-20"), min_popularity=0) is None
        assert row_to_record(_row(), themes={"fork"}) is None

    def test_mate_theme_must_end_in_mate(self):
        assert row_to_record(_row(moves="a3a2 d1d7")) is None

    def test_illegal_setup_move(self):
        assert row_to_record(_row(moves="a3a4 d1d8")) is None

    def test_bad_rows(self):
        assert row_to_record(["x", "y"]) is None
        assert row_to_record(_row(rating="abc")) is None
        assert row_to_record(_row(moves="a3a2")) is None
        assert row_to_record(_row(fen="not a fen")) is None

    def test_unknown_themes_fall_back(self):
        record = row_to_record(_row(moves="a3a2 d1d7", themes="crushing"))
        assert record["theme"] == "Uncategorized"


class TestHelpers:

    def test_normalize_fen_drops_counters(self):
        assert _normalize_fen("8/8/8/8/8/8/8/K6k w - - 12 40") == "8/8/8/8/8/8/8/K6k w - -"

    def test_pick_theme_priority(self):
        assert _pick_theme(["fork", "mateIn2"]) == "Mate in 2"
        assert _pick_theme(["crushing"]) is None


class TestImport:

    def test_import_dedups_and_limits(self, tmp_path):
        db = _write_db(tmp_path / "db.csv.zst", [
            _row(puzzle_id="a"),
            _row(puzzle_id="b"),
            _row(puzzle_id="c", fen="7k/5ppp/8/8/8/p7/5PPP/3R2K1 b - - 0 1"),
        ])
        puzzles = import_puzzles(db, ["mateIn1"], min_popularity=0)
        assert [p["id"] for p in puzzles] == ["a", "c"]
        assert len(import_puzzles(db, ["mateIn1"], min_popularity=0, limit=1)) == 1

    def test_missing_db(self, tmp_path, capsys):
        assert import_puzzles(tmp_path / "missing.zst", ["fork"]) == []
        assert "not found" in capsys.readouterr().err

    def test_main_writes_collection(self, tmp_path):
        db = _write_db(tmp_path / "db.csv.zst", [_row()])
        out = tmp_path / "out" / "mates.json"
        code = main(["--themes", "mateIn1", "--db", str(db), "--output", str(out)])
        assert code == 0
        data = json.loads(out.read_text())
        assert data[0]["id"] == "br001"

    def test_main_no_matches(self, tmp_path):
        db = _write_db(tmp_path / "db.csv.zst", [_row()])
        assert main(["--themes", "fork", "--db", str(db)]) == 1
