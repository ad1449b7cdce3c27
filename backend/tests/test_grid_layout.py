import math
from dataclasses import replace

import pytest

from tripbank.services.grid_layout import (
    CanvasMoment,
    GridPosition,
    GridSize,
    calculate_layout,
    calculate_next_grid_position,
    content_height,
    find_overlaps,
    occupied_overlap,
    pixel_to_grid_position,
    reflow_moments,
    snap_column,
    snap_row,
)

from conftest import at


def moment(moment_id: str, minutes: int, column=0, row=0.0, width=1, height=1.0) -> CanvasMoment:
    return CanvasMoment(
        id=moment_id,
        grid_position=GridPosition(column=column, row=row, width=width, height=height),
        timestamp=at(minutes),
    )


def place_sequentially(sizes: list[tuple[int, float]]) -> list[CanvasMoment]:
    placed: list[CanvasMoment] = []
    for index, (width, height) in enumerate(sizes):
        position = calculate_next_grid_position(placed, GridSize(width=width, height=height))
        placed.append(CanvasMoment(id=f"m{index + 1}", grid_position=position, timestamp=at(index)))
    return placed


def positions(moments) -> dict[str, GridPosition]:
    return {m.id: m.grid_position for m in moments}


# ─── Positions ───


def test_grid_position_validity():
    assert GridPosition(0, 0.0, 2, 2.0).is_valid()
    assert GridPosition(1, 3.5, 1, 0.5).is_valid()
    assert not GridPosition(1, 0.0, 2, 1.0).is_valid()
    assert not GridPosition(0, -0.5, 1, 1.0).is_valid()
    assert not GridPosition(0, 0.0, 3, 1.0).is_valid()
    assert not GridPosition(0, math.nan, 1, 1.0).is_valid()


def test_normalized_pulls_full_width_to_column_zero():
    assert GridPosition(1, 0.3, 2, 1.2).normalized() == GridPosition(0, 0.5, 2, 1.0)
    assert GridPosition(5, -2, 0, 0).normalized() == GridPosition(1, 0.0, 1, 0.5)


def test_overlap_requires_shared_column_and_row():
    a = GridPosition(0, 0.0, 1, 1.5)
    assert not occupied_overlap(a, GridPosition(1, 0.0, 1, 1.5))
    assert not occupied_overlap(a, GridPosition(0, 1.5, 1, 1.0))
    assert occupied_overlap(a, GridPosition(0, 1.0, 2, 1.0))


# ─── Pixel layout ───


def test_layout_pixels_for_both_columns_and_full_width():
    moments = [
        moment("a", 0, column=0, row=0.0),
        moment("b", 1, column=1, row=0.0, height=1.5),
        moment("c", 2, column=0, row=1.5, width=2, height=2.0),
    ]
    layouts = calculate_layout(moments, 400)

    assert layouts["a"].x == 16 and layouts["a"].y == 0
    assert layouts["a"].width == 179 and layouts["a"].height == 150
    assert layouts["b"].x == 16 + 179 + 10
    assert layouts["b"].height == 1.5 * 160 - 10
    assert layouts["c"].y == 1.5 * 160
    assert layouts["c"].width == 179 * 2 + 10
    assert [layouts[k].z_index for k in "abc"] == [0, 1, 2]
    assert content_height(layouts) == layouts["c"].y + layouts["c"].height + 100


@pytest.mark.parametrize("width", [0, -10, math.nan, math.inf, 30])
def test_unmeasurable_canvas_gives_empty_layout(width):
    assert calculate_layout([moment("a", 0)], width) == {}


def test_empty_input_gives_empty_layout():
    assert calculate_layout([], 400) == {}
    assert content_height({}) == 0


# ─── Next position ───


def test_three_moments_pack_two_columns_then_full_width():
    placed = place_sequentially([(1, 1.5), (1, 1.5), (2, 2.0)])
    assert positions(placed) == {
        "m1": GridPosition(0, 0.0, 1, 1.5),
        "m2": GridPosition(1, 0.0, 1, 1.5),
        "m3": GridPosition(0, 1.5, 2, 2.0),
    }


def test_next_position_is_topmost_then_leftmost_free_slot():
    existing = [moment("a", 0, column=0, row=0.0, height=2.0), moment("b", 1, column=1, row=0.0, height=1.0)]
    assert calculate_next_grid_position(existing) == GridPosition(1, 1.0, 1, 1.0)
    assert calculate_next_grid_position([]) == GridPosition(0, 0.0, 1, 1.0)


def test_next_position_fills_gap_above_lower_moments():
    existing = [moment("a", 0, column=0, row=2.0), moment("b", 1, column=1, row=0.0)]
    assert calculate_next_grid_position(existing) == GridPosition(0, 0.0, 1, 1.0)


def test_sequential_placement_never_overlaps():
    sizes = [(1, 1.0), (2, 1.5), (1, 0.5), (1, 2.0), (2, 1.0), (1, 1.5), (1, 1.0)]
    placed = place_sequentially(sizes)
    assert find_overlaps(placed) == []
    assert all(m.grid_position.is_valid() for m in placed)


# ─── Reflow ───


def test_reflow_removes_overlaps_and_keeps_input_order():
    stacked = [moment(f"m{i}", i) for i in range(5)]
    reflowed = reflow_moments(stacked)

    assert [m.id for m in reflowed] == [m.id for m in stacked]
    assert find_overlaps(reflowed) == []
    assert positions(reflowed)["m0"] == GridPosition(0, 0.0, 1, 1.0)
    assert positions(reflowed)["m1"] == GridPosition(1, 0.0, 1, 1.0)
    assert positions(reflowed)["m2"] == GridPosition(0, 1.0, 1, 1.0)


def test_reflow_places_in_chronological_order():
    late = moment("late", 10)
    early = moment("early", 0)
    reflowed = positions(reflow_moments([late, early]))
    assert reflowed["early"] == GridPosition(0, 0.0, 1, 1.0)
    assert reflowed["late"] == GridPosition(1, 0.0, 1, 1.0)


def test_reflow_is_idempotent():
    mixed = [
        moment("a", 0, height=1.5),
        moment("b", 1, width=2, height=1.0),
        moment("c", 2, column=1, height=0.5),
        moment("d", 3, height=2.0),
    ]
    once = reflow_moments(mixed)
    twice = reflow_moments(once)
    assert positions(once) == positions(twice)


def test_reflow_keeps_pinned_moment_and_packs_around_it():
    m1 = moment("m1", 0, column=0, row=0.0, height=1.5)
    m2 = moment("m2", 1, column=0, row=0.0, height=1.5)  # dragged onto m1's slot
    m3 = moment("m3", 2, column=0, row=1.5, width=2, height=2.0)

    reflowed = positions(reflow_moments([m1, m2, m3], pinned_moment_id="m2"))

    assert reflowed["m2"] == GridPosition(0, 0.0, 1, 1.5)
    assert reflowed["m1"] == GridPosition(1, 0.0, 1, 1.5)
    assert not reflowed["m3"].overlaps(reflowed["m2"])
    assert not reflowed["m3"].overlaps(reflowed["m1"])


def test_reflow_bumps_full_width_moment_below_pinned():
    pinned = moment("p", 5, column=1, row=0.5, height=2.0)
    wide = moment("w", 0, width=2, height=1.0)
    reflowed = positions(reflow_moments([wide, pinned], pinned_moment_id="p"))
    assert reflowed["p"] == GridPosition(1, 0.5, 1, 2.0)
    assert reflowed["w"] == GridPosition(0, 2.5, 2, 1.0)


def test_reflow_repairs_malformed_positions():
    broken = replace(moment("x", 0), grid_position=GridPosition(1, -3, 2, math.nan))
    [fixed] = reflow_moments([broken])
    assert fixed.grid_position.is_valid()
    assert fixed.grid_position.column == 0


def test_reflow_of_nothing_is_nothing():
    assert reflow_moments([]) == []


# ─── Snapping ───


def test_snap_row_rounds_to_half_rows():
    assert snap_row(0) == 0.0
    assert snap_row(79) == 0.5
    assert snap_row(39) == 0.0
    assert snap_row(40) == 0.5
    assert snap_row(-200) == 0.0
    assert snap_row(math.nan) == 0.0


def test_snap_column_uses_rectangle_midpoint():
    # column width is 179 on a 400px canvas; gutter centre at 16 + 179 + 5 = 200
    assert snap_column(16, 1, 400) == 0
    assert snap_column(110, 1, 400) == 0
    assert snap_column(111, 1, 400) == 1
    assert snap_column(205, 2, 400) == 0
    assert snap_column(300, 1, 0) == 0


def test_pixel_to_grid_position_keeps_size():
    size = GridPosition(width=1, height=1.5)
    assert pixel_to_grid_position(205, 160, size, 400) == GridPosition(1, 1.0, 1, 1.5)
