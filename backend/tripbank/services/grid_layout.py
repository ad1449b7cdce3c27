"""Grid layout engine — pixel layout, free-slot search and reflow for the 2-column moment canvas.

Every function here is pure and total: degenerate input (unmeasurable canvas,
non-finite numbers, malformed positions) produces an empty or default result,
never an exception.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

GRID_COLUMNS = 2
ROW_STEP = 0.5


def snap_half(value: float) -> float:
    """Round to the nearest 0.5 (halves round up). Non-finite values become 0."""
    if not math.isfinite(value):
        return 0.0
    return math.floor(value * 2 + 0.5) / 2


def _finite(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


@dataclass(frozen=True)
class GridPosition:
    """Placement of a moment: column 0|1, row >= 0, width 1|2 columns, height in rows."""

    column: int = 0
    row: float = 0.0
    width: int = 1
    height: float = 1.0

    @property
    def bottom(self) -> float:
        return self.row + self.height

    def is_valid(self) -> bool:
        return (
            self.width in (1, 2)
            and self.column in (0, 1)
            and self.column + self.width <= GRID_COLUMNS
            and math.isfinite(self.row)
            and math.isfinite(self.height)
            and self.row >= 0
            and self.height > 0
        )

    def normalized(self) -> "GridPosition":
        """Clamp onto the grid: width 1..2, width-2 at column 0, rows and heights on 0.5 steps."""
        width = min(max(int(_finite(self.width, 1)), 1), GRID_COLUMNS)
        column = 0 if width == GRID_COLUMNS else min(max(int(_finite(self.column, 0)), 0), GRID_COLUMNS - width)
        row = max(0.0, snap_half(_finite(self.row, 0.0)))
        height = max(ROW_STEP, snap_half(_finite(self.height, 1.0)))
        return GridPosition(column=column, row=row, width=width, height=height)

    def overlaps(self, other: "GridPosition") -> bool:
        """True when the occupied cells (column range x row range) intersect."""
        shares_column = self.column < other.column + other.width and other.column < self.column + self.width
        shares_row = self.row < other.bottom and other.row < self.bottom
        return shares_column and shares_row

    def with_origin(self, column: int, row: float) -> "GridPosition":
        return replace(self, column=column, row=row)

    def to_dict(self) -> dict:
        return {
            "column": int(self.column),
            "row": float(self.row),
            "width": int(self.width),
            "height": float(self.height),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GridPosition":
        return cls(
            column=int(data.get("column", 0)),
            row=float(data.get("row", 0.0)),
            width=int(data.get("width", 1)),
            height=float(data.get("height", 1.0)),
        )


@dataclass(frozen=True)
class GridSize:
    width: int = 1
    height: float = 1.0


@dataclass(frozen=True)
class CanvasMoment:
    """The slice of a moment the canvas needs: identity, chronology and placement."""

    id: str
    grid_position: GridPosition
    timestamp: datetime
    date: datetime | None = None
    title: str = ""
    media_item_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def occurred_at(self) -> datetime:
        return self.date or self.timestamp


@dataclass(frozen=True)
class LayoutMetrics:
    side_margin: float = 16.0
    column_spacing: float = 10.0
    row_height: float = 150.0
    row_spacing: float = 10.0

    @property
    def row_unit(self) -> float:
        return self.row_height + self.row_spacing

    def column_width(self, canvas_width: float) -> float:
        usable = canvas_width - self.side_margin * 2
        return (usable - self.column_spacing * (GRID_COLUMNS - 1)) / GRID_COLUMNS


DEFAULT_METRICS = LayoutMetrics()


@dataclass(frozen=True)
class MomentLayout:
    x: float
    y: float
    width: float
    height: float
    z_index: int = 0

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    @property
    def size(self) -> tuple[float, float]:
        return (self.width, self.height)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


# ─── Helpers ───


def _position_of(item: Any) -> GridPosition:
    position = item if isinstance(item, GridPosition) else item.grid_position
    return position if position.is_valid() else position.normalized()


def _sort_value(moment: Any) -> float:
    occurred = getattr(moment, "date", None) or getattr(moment, "timestamp", None)
    if occurred is None:
        return 0.0
    if isinstance(occurred, datetime):
        if occurred.tzinfo is None:
            occurred = occurred.replace(tzinfo=timezone.utc)
        return occurred.timestamp()
    return _finite(occurred, 0.0)


def chronological(moments: Iterable[Any]) -> list:
    """Moments ordered by date (falling back to timestamp); ties keep input order."""
    return sorted(moments, key=_sort_value)


# ─── Pixel layout ───


def calculate_layout(
    moments: Iterable[Any],
    canvas_width: float,
    metrics: LayoutMetrics = DEFAULT_METRICS,
) -> dict[str, MomentLayout]:
    """
    Map each moment id to its pixel rectangle on a canvas `canvas_width` wide.

    Uses only each moment's own stored position; overlaps are not resolved here.
    An unmeasurable canvas (<= 0, NaN, infinite, or too narrow for a column)
    yields an empty dict.
    """
    width = _finite(canvas_width, 0.0)
    if width <= 0:
        return {}
    column_width = metrics.column_width(width)
    if column_width <= 0:
        return {}

    layouts: dict[str, MomentLayout] = {}
    for z_index, moment in enumerate(chronological(moments)):
        position = _position_of(moment)
        pixel_width = column_width if position.width == 1 else column_width * GRID_COLUMNS + metrics.column_spacing
        layouts[moment.id] = MomentLayout(
            x=metrics.side_margin + position.column * (column_width + metrics.column_spacing),
            y=position.row * metrics.row_unit,
            width=pixel_width,
            height=position.height * metrics.row_unit - metrics.row_spacing,
            z_index=z_index,
        )
    return layouts


def content_height(layouts: dict[str, MomentLayout], bottom_padding: float = 100.0) -> float:
    """Scrollable height needed to show every laid-out moment."""
    if not layouts:
        return 0.0
    return max(layout.y + layout.height for layout in layouts.values()) + bottom_padding


# ─── Placement ───


def calculate_next_grid_position(
    existing: Iterable[Any],
    desired_size: GridSize = GridSize(),
) -> GridPosition:
    """
    First free slot for a new moment, scanning rows top-down in 0.5 steps and
    columns left-to-right. The result overlaps no existing moment.
    """
    size = GridPosition(width=desired_size.width, height=desired_size.height).normalized()
    occupied = [_position_of(item) for item in existing]
    lowest = max((p.bottom for p in occupied), default=0.0)

    for step in range(int(math.ceil(lowest / ROW_STEP)) + 1):
        row = step * ROW_STEP
        for column in range(GRID_COLUMNS - size.width + 1):
            candidate = size.with_origin(column, row)
            if not any(candidate.overlaps(p) for p in occupied):
                return candidate

    # Unreachable: at `lowest` every column is clear.
    return size.with_origin(0, snap_half(lowest + ROW_STEP))


def _clear_of(row: float, column: int, size: GridPosition, obstacle: GridPosition | None) -> float:
    if obstacle is None:
        return row
    candidate = GridPosition(column=column, row=row, width=size.width, height=size.height)
    return obstacle.bottom if candidate.overlaps(obstacle) else row


def reflow_moments(moments: Sequence[Any], pinned_moment_id: str | None = None) -> list:
    """
    Repack every moment top-down with no gaps or overlaps.

    Moments are placed in chronological order using a shortest-column
    skyline: single-column moments go to the column where they can start
    highest (ties to the shorter column, then the left one); full-width
    moments start below both columns. A pinned moment keeps its current
    position and the others pack around it.

    Returns copies of the input moments, in input order, with new positions.
    """
    items = list(moments)
    pinned: GridPosition | None = None
    if pinned_moment_id is not None:
        for item in items:
            if item.id == pinned_moment_id:
                pinned = _position_of(item)
                break

    heights = [0.0] * GRID_COLUMNS
    placed: dict[int, GridPosition] = {}
    order = sorted(range(len(items)), key=lambda i: (_sort_value(items[i]), i))

    for index in order:
        item = items[index]
        if pinned is not None and item.id == pinned_moment_id:
            placed[index] = pinned
            continue

        size = _position_of(item)
        if size.width == GRID_COLUMNS:
            row = _clear_of(max(heights), 0, size, pinned)
            position = size.with_origin(0, row)
            heights = [position.bottom] * GRID_COLUMNS
        else:
            candidates = [
                (_clear_of(heights[column], column, size, pinned), heights[column], column)
                for column in range(GRID_COLUMNS)
            ]
            row, _, column = min(candidates)
            position = size.with_origin(column, row)
            heights[column] = position.bottom
        placed[index] = position

    return [replace(item, grid_position=placed[i]) for i, item in enumerate(items)]


def occupied_overlap(first: Any, second: Any) -> bool:
    """Whether two moments (or positions) share any cell once normalized."""
    return _position_of(first).overlaps(_position_of(second))


def find_overlaps(moments: Sequence[Any]) -> list[tuple[str, str]]:
    """Pairs of moment ids whose occupied cells intersect."""
    pairs = []
    for i, first in enumerate(moments):
        for second in moments[i + 1:]:
            if occupied_overlap(first, second):
                pairs.append((first.id, second.id))
    return pairs


# ─── Gesture snapping ───


def snap_row(y: float, metrics: LayoutMetrics = DEFAULT_METRICS) -> float:
    """Pixel top edge → nearest 0.5 row, never above the canvas."""
    return max(0.0, snap_half(_finite(y, 0.0) / metrics.row_unit))


def snap_column(
    x: float,
    width_units: int,
    canvas_width: float,
    metrics: LayoutMetrics = DEFAULT_METRICS,
) -> int:
    """Column whose side of the gutter holds the horizontal midpoint of the dragged rectangle."""
    if width_units >= GRID_COLUMNS:
        return 0
    column_width = metrics.column_width(_finite(canvas_width, 0.0))
    if column_width <= 0:
        return 0
    midpoint = _finite(x, 0.0) + column_width / 2
    boundary = metrics.side_margin + column_width + metrics.column_spacing / 2
    return 1 if midpoint >= boundary else 0


def pixel_to_grid_position(
    x: float,
    y: float,
    size: GridPosition,
    canvas_width: float,
    metrics: LayoutMetrics = DEFAULT_METRICS,
) -> GridPosition:
    """Grid position for a rectangle of `size` whose top-left corner sits at (x, y)."""
    size = size.normalized()
    return size.with_origin(snap_column(x, size.width, canvas_width, metrics), snap_row(y, metrics))
