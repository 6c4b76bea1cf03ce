"""Board orientation and coordinate mapping.

Maps square names to pixel coordinates (top-left corner of the square)
and back, for either orientation. Used to turn a drag release into a
destination square and a solution move into an animation path.
"""

from __future__ import annotations

import math

from puzzle_rocket.errors import InvalidCellSize
from puzzle_rocket.models import MoveRequest, Orientation, Point
from puzzle_rocket.move_codec import decode, square_indices, square_name

# Decimal places kept in a cell quotient; absorbs float error in k * c / c only
_CELL_DIGITS = 12


def _check_cell_size(cell_size: float) -> None:
    if not isinstance(cell_size, (int, float)) or not cell_size > 0:
        raise InvalidCellSize(cell_size)


def _cell_index(value: float, cell_size: float) -> int:
    cells = value / cell_size
    if math.isnan(cells):
        return 0
    return math.floor(min(max(round(cells, _CELL_DIGITS), 0.0), 7.0))


def square_to_coordinate(
    square: str,
    orientation: Orientation | str,
    cell_size: float,
) -> Point:
    """Map a square to the pixel coordinate of its top-left corner.

    White at the bottom: files grow to the right, rank 8 is at y=0.
    Black at the bottom: both axes are inverted.

    Args:
        square: Square name, e.g. "e4".
        orientation: Orientation enum or its string value.
        cell_size: Pixel size of one square.

    Returns:
        Point(x, y).

    Raises:
        InvalidSquare: If square is malformed.
        InvalidCellSize: If cell_size <= 0.
    """
    _check_cell_size(cell_size)
    file_index, rank_index = square_indices(square)

    if Orientation(orientation) is Orientation.WHITE_BOTTOM:
        return Point(file_index * cell_size, (7 - rank_index) * cell_size)
    return Point((7 - file_index) * cell_size, rank_index * cell_size)


def coordinate_to_square(
    point: Point | tuple[float, float],
    orientation: Orientation | str,
    cell_size: float,
) -> str:
    """Map a board point to the square under it.

    Points outside the board snap to the nearest edge square and a NaN
    coordinate counts as 0, so this never fails on the point itself.

    Raises:
        InvalidCellSize: If cell_size <= 0.
    """
    _check_cell_size(cell_size)
    x, y = point

    column = _cell_index(x, cell_size)
    row = _cell_index(y, cell_size)

    if Orientation(orientation) is Orientation.WHITE_BOTTOM:
        return square_name(column, 7 - row)
    return square_name(7 - column, row)


def square_center(
    square: str,
    orientation: Orientation | str,
    cell_size: float,
) -> Point:
    """Center point of a square, for hit-testing and animation targets."""
    corner = square_to_coordinate(square, orientation, cell_size)
    half = cell_size / 2
    return Point(corner.x + half, corner.y + half)


def drag_to_move(
    origin: str,
    release_point: Point | tuple[float, float],
    orientation: Orientation | str,
    cell_size: float,
    promotion: str | None = None,
) -> MoveRequest | None:
    """Resolve a drag from origin to a release point into a MoveRequest.

    Returns:
        The move, or None when the piece was released on its own square.
    """
    square_indices(origin)
    destination = coordinate_to_square(release_point, orientation, cell_size)
    if destination == origin:
        return None
    return MoveRequest(from_square=origin, to_square=destination, promotion=promotion)


def move_path(
    notation: str,
    orientation: Orientation | str,
    cell_size: float,
) -> tuple[Point, Point]:
    """Start and end corner coordinates for animating a compact move."""
    move = decode(notation)
    return (
        square_to_coordinate(move.from_square, orientation, cell_size),
        square_to_coordinate(move.to_square, orientation, cell_size),
    )
