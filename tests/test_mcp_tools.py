"""Per-tool MCP integration tests verifying minified response shapes.

Tests every MCP server tool for correct minification, TUI JSON integrity
and schema validation. Session delays run on a ManualScheduler swapped in
for the asyncio one, so each test advances time explicitly.

Run:
    pytest tests/test_mcp_tools.py -v
"""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

import pytest

from puzzle_rocket.scheduler import AsyncioScheduler, ManualScheduler

# Add project root so imports resolve
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

# Import server module from hyphenated directory via importlib
_server_path = _PROJECT_ROOT / "mcp-server" / "server.py"
_spec = importlib.util.spec_from_file_location("mcp_server_tools_test", _server_path)
_server = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(_server)

_session = _server._session

# Server tool functions
start_session = _server.start_session
load_puzzle = _server.load_puzzle
get_state = _server.get_state
submit_move = _server.submit_move
drag_move = _server.drag_move
next_puzzle = _server.next_puzzle
session_stats = _server.session_stats
square_coordinates = _server.square_coordinates
cache_info = _server.cache_info
pause_session = _server.pause_session

# Import response schemas for validation
sys.path.insert(0, str(_PROJECT_ROOT / "mcp-server"))
from response_schemas import (  # noqa: E402
    ERROR_SCHEMA,
    MOVE_OUTCOME_SCHEMA,
    PAUSE_SCHEMA,
    SESSION_STATE_SCHEMA,
    SQUARE_SCHEMA,
    STATS_SCHEMA,
    validate_response,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Fields that must NOT be in a minified session state
_REMOVED_FIELDS = {"board", "highlight_squares", "setup_state", "is_user_turn"}


def _assert_minified_state(response: dict) -> None:
    for field in _REMOVED_FIELDS:
        assert field not in response, f"Removed field '{field}' found in response"
    errors = validate_response(response, SESSION_STATE_SCHEMA)
    assert not errors, f"Schema validation errors: {errors}"


def _read_current_puzzle_json(data_dir: Path) -> dict:
    return json.loads((data_dir / "current_puzzle.json").read_text(encoding="utf-8"))


@pytest.fixture()
def manual_scheduler(monkeypatch) -> ManualScheduler:
    sched = ManualScheduler()
    monkeypatch.setattr(_server, "_new_scheduler", lambda: sched)
    return sched


@pytest.fixture(autouse=True)
def _clean_session(isolated_data_dir, monkeypatch):
    """Fresh data dir, default timings and no live session around each test."""
    for name in ("OPPONENT", "RESET", "AUTO_SOLVE", "NEXT_PUZZLE", "SUCCESS"):
        monkeypatch.delenv(f"PUZZLE_ROCKET_{name}_DELAY", raising=False)
    _session.clear()
    yield
    _session.clear()


@pytest.fixture()
def started(collection_file, manual_scheduler):
    """A session on the three-move opening puzzle."""
    return start_session(collection=str(collection_file), ids=["open1"])


# ---------------------------------------------------------------------------
# No session
# ---------------------------------------------------------------------------


class TestNoSession:

    @pytest.mark.parametrize("call", [
        lambda: get_state(),
        lambda: submit_move("e2e4"),
        lambda: drag_move("e2", 210, 210, 50),
        lambda: next_puzzle(),
        lambda: session_stats(),
        lambda: load_puzzle("open1"),
        lambda: pause_session(),
    ])
    def test_error_without_session(self, call):
        response = call()
        assert not validate_response(response, ERROR_SCHEMA)
        assert "start_session" in response["error"]

    def test_default_scheduler_is_asyncio(self):
        assert isinstance(_server._new_scheduler(), AsyncioScheduler)


# ---------------------------------------------------------------------------
# start_session / get_state
# ---------------------------------------------------------------------------


class TestStartSession:

    def test_minified_response_shape(self, started):
        _assert_minified_state(started)
        assert started["puzzle_id"] == "open1"
        assert started["queued"] == 1
        assert started["progress"] == "0/3"
        assert started["accepts_input"] is True
        assert started["session_finished"] is False

    def test_tui_json_has_full_state(self, started, isolated_data_dir):
        tui = _read_current_puzzle_json(isolated_data_dir)
        assert tui["puzzle_id"] == "open1"
        assert tui["board"]["e1"] == ["k", "white"]
        assert tui["setup_state"] == "SETUP_COMPLETE"
        assert tui["stats"]["total"] == 0
        assert not (isolated_data_dir / "current_puzzle.tmp").exists()

    def test_get_state_matches(self, started):
        assert get_state() == {k: v for k, v in started.items()
                               if k not in ("queued", "session_finished")}

    def test_missing_collection(self, tmp_path, manual_scheduler):
        response = start_session(collection=str(tmp_path / "missing.json"))
        assert "Could not start session" in response["error"]
        assert "error" in get_state()

    def test_bad_timing_env(self, collection_file, manual_scheduler, monkeypatch):
        monkeypatch.setenv("PUZZLE_ROCKET_OPPONENT_DELAY", "later")
        response = start_session(collection=str(collection_file))
        assert "Invalid timing configuration" in response["error"]

    def test_seeded_order(self, collection_file, manual_scheduler):
        first = start_session(collection=str(collection_file), seed=11)["puzzle_id"]
        again = start_session(collection=str(collection_file), seed=11)["puzzle_id"]
        assert first == again


# ---------------------------------------------------------------------------
# submit_move
# ---------------------------------------------------------------------------


class TestSubmitMove:

    def test_accepted_then_opponent_replies(self, started, manual_scheduler, isolated_data_dir):
        response = submit_move("e2e4")
        assert not validate_response(response, MOVE_OUTCOME_SCHEMA)
        assert response["status"] == "accepted"
        assert response["next_move"] == "e7e5"
        assert "reason" not in response
        assert response["state"]["accepts_input"] is False

        manual_scheduler.advance(0.5)
        state = get_state()
        assert state["last_move"] == "e7e5"
        assert state["accepts_input"] is True
        assert _read_current_puzzle_json(isolated_data_dir)["last_move"] == "e7e5"

    def test_solve_and_finish(self, started, manual_scheduler, isolated_data_dir):
        submit_move("e2e4")
        manual_scheduler.advance(0.5)
        response = submit_move("g1f3")
        assert response["status"] == "solved"
        assert response["state"]["transition_state"] == "TRANSITIONING"
        assert _read_current_puzzle_json(isolated_data_dir)["feedback"] == "success"

        manual_scheduler.run_until_idle()
        assert _read_current_puzzle_json(isolated_data_dir)["session_finished"] is True
        assert "Session finished" in submit_move("e2e4")["error"]

    def test_wrong_move(self, started, manual_scheduler, isolated_data_dir):
        response = submit_move("d2d4")
        assert response["status"] == "rejected"
        assert response["reason"] == "mismatch"
        assert response["state"]["transition_state"] == "RESETTING"
        assert _read_current_puzzle_json(isolated_data_dir)["feedback"] == "failure"

        manual_scheduler.advance(0.5)
        assert get_state()["transition_state"] == "AUTO_SOLVING"

    def test_ignored_while_replying(self, started):
        submit_move("e2e4")
        assert submit_move("d7d5")["status"] == "ignored"

    def test_malformed(self, started):
        response = submit_move("e2e9")
        assert response["status"] == "rejected"
        assert response["reason"] == "malformed"
        assert response["state"]["accepts_input"] is False
        assert response["state"]["transition_state"] == "RESETTING"


# ---------------------------------------------------------------------------
# drag_move / square_coordinates
# ---------------------------------------------------------------------------


class TestBoardGeometry:

    def test_drag_move_black_bottom(self, collection_file, manual_scheduler):
        state = start_session(collection=str(collection_file), ids=["black1"])
        assert state["orientation"] == "black-bottom"
        response = drag_move("b8", 260, 260, 50)
        assert response["status"] == "accepted"
        assert response["move"] == "b8c6"

    def test_drag_move_bad_cell_size(self, started):
        assert "error" in drag_move("e2", 0, 0, 0)

    def test_drag_move_bad_origin(self, started):
        assert "error" in drag_move("z9", 0, 0, 50)

    def test_square_coordinates(self):
        response = square_coordinates("e4", "black-bottom", 50)
        assert not validate_response(response, SQUARE_SCHEMA)
        assert (response["x"], response["y"]) == (150, 150)
        assert (response["center_x"], response["center_y"]) == (175, 175)

    @pytest.mark.parametrize("args", [("k9",), ("e4", "upside-down"), ("e4", "white-bottom", -1)])
    def test_square_coordinates_errors(self, args):
        assert "error" in square_coordinates(*args)


# ---------------------------------------------------------------------------
# Session navigation and stats
# ---------------------------------------------------------------------------


class TestNavigation:

    def test_next_puzzle_until_finished(self, collection_file, manual_scheduler):
        first = start_session(collection=str(collection_file), ids=["open1", "pin1"])
        second = next_puzzle()
        _assert_minified_state(second)
        assert {first["puzzle_id"], second["puzzle_id"]} == {"open1", "pin1"}
        assert second["session_finished"] is False
        assert next_puzzle()["session_finished"] is True

    def test_load_puzzle(self, started):
        response = load_puzzle("pin1")
        _assert_minified_state(response)
        assert response["puzzle_id"] == "pin1"
        assert "not found" in load_puzzle("nope")["error"].lower()

    def test_session_stats(self, started, manual_scheduler):
        submit_move("d2d4")
        manual_scheduler.run_until_idle()
        stats = session_stats()
        assert not validate_response(stats, STATS_SCHEMA)
        assert stats["failed"] == 1
        assert stats["by_theme"] == {"Opening": "0/1"}
        assert stats["reject_reasons"] == {"mismatch": 1}
        assert "elapsed_seconds" not in stats
        assert stats["paused"] is False
        assert "records" not in stats

    def test_session_stats_with_records(self, started):
        submit_move("e2e5")
        records = session_stats(include_records=True)["records"]
        assert len(records) == 1
        assert records[0]["puzzle_id"] == "open1"
        assert records[0]["solved"] is False
        assert records[0]["reason"] == "illegal"

    def test_pause_and_resume(self, started):
        paused = pause_session()
        assert not validate_response(paused, PAUSE_SCHEMA)
        assert paused["paused"] is True
        assert session_stats()["paused"] is True
        # Clock stopped: elapsed time does not move while paused
        assert pause_session()["elapsed_seconds"] == paused["elapsed_seconds"]
        assert pause_session(paused=False)["paused"] is False
        assert get_state()["accepts_input"] is True


# ---------------------------------------------------------------------------
# cache_info
# ---------------------------------------------------------------------------


class TestCacheInfo:

    def test_inspect_and_clear(self, started):
        load_puzzle("black1")
        info = cache_info()
        assert info["count"] == 2
        assert info["themes"] == {"Opening": 2}
        cleared = cache_info(clear=True)
        assert cleared["removed"] == 2
        assert cache_info()["count"] == 0
