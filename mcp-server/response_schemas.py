"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_puzzle.json (TUI sync) is NOT affected, only MCP return values.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session_state(state: dict) -> dict:
    """Minify a snapshot dict for MCP response.

    Drops the per-square board map (the FEN carries the same position),
    the highlight squares and the setup lifecycle.

    Args:
        state: Full snapshot dict (SessionSnapshot.to_dict()).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "puzzle_id", "fen", "theme", "side_to_move", "orientation",
        "transition_state", "attempt_state", "accepts_input", "last_move",
    ):
        if key in state:
            result[key] = state[key]

    # "2/5" instead of two integers
    result["progress"] = f"{state.get('move_index', 0)}/{state.get('solution_length', 0)}"

    # Removed fields: board, highlight_squares, setup_state, is_user_turn

    return result


def minify_move_outcome(outcome: dict, state: dict) -> dict:
    """Minify a move outcome plus the resulting state.

    Args:
        outcome: Dict with status, reason, move, san, next_move.
        state: Full snapshot dict after the move.

    Returns:
        Minified dict: outcome fields without nulls, plus minified state.
    """
    result = {"status": outcome.get("status")}
    for key in ("reason", "move", "san", "next_move"):
        if outcome.get(key) is not None:
            result[key] = outcome[key]
    result["state"] = minify_session_state(state)
    return result


def minify_stats(stats: dict) -> dict:
    """Minify session statistics.

    Keeps totals and the per-theme success counts only.

    Args:
        stats: Output of PuzzleTrainer.get_stats().

    Returns:
        Minified dict.
    """
    result = {}
    for key in (
        "total", "successful", "failed", "success_rate", "remaining", "reject_reasons", "paused",
    ):
        if key in stats:
            result[key] = stats[key]

    by_theme = stats.get("by_theme", {})
    result["by_theme"] = {
        theme: f"{counts.get('successful', 0)}/{counts.get('total', 0)}"
        for theme, counts in by_theme.items()
    }

    # Removed fields: elapsed_seconds, stale_discards, session_size

    return result


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_STATE_SCHEMA = {
    "puzzle_id": (str, type(None)),
    "fen": (str, type(None)),
    "theme": str,
    "side_to_move": str,
    "orientation": str,
    "transition_state": str,
    "attempt_state": str,
    "accepts_input": bool,
    "last_move": (str, type(None)),
    "progress": str,
}

MOVE_OUTCOME_SCHEMA = {
    "status": str,
    "state": dict,
}

STATS_SCHEMA = {
    "total": int,
    "successful": int,
    "failed": int,
    "success_rate": (int, float),
    "remaining": int,
    "reject_reasons": dict,
    "by_theme": dict,
    "paused": bool,
}

SQUARE_SCHEMA = {
    "square": str,
    "orientation": str,
    "x": (int, float),
    "y": (int, float),
    "center_x": (int, float),
    "center_y": (int, float),
}

PAUSE_SCHEMA = {
    "paused": bool,
    "elapsed_seconds": (int, float),
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when PUZZLE_ROCKET_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("PUZZLE_ROCKET_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
