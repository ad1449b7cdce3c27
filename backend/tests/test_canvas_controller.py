import asyncio

import pytest

from tripbank.client.canvas import CanvasController, CanvasStore, CommitOutcome, GestureState
from tripbank.errors import TransientRPCError, UnauthorizedError
from tripbank.services.grid_layout import CanvasMoment, GridPosition, find_overlaps
from tripbank.services.permission_service import Role

from conftest import at

CANVAS_WIDTH = 400  # columns start at x=16 and x=205


def moment(moment_id: str, minutes: int, column=0, row=0.0, width=1, height=1.5) -> CanvasMoment:
    return CanvasMoment(
        id=moment_id,
        grid_position=GridPosition(column=column, row=row, width=width, height=height),
        timestamp=at(minutes),
    )


def three_moments() -> list[CanvasMoment]:
    return [
        moment("m1", 0, column=0),
        moment("m2", 1, column=1),
        moment("m3", 2, column=0, row=1.5, width=2, height=2.0),
    ]


class RecordingCommitter:
    def __init__(self, error: Exception | None = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.batches: list[list[tuple[str, GridPosition]]] = []

    async def __call__(self, batch):
        self.batches.append(list(batch))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return len(batch)


def make_controller(committer, role=Role.OWNER, commit_timeout=1.0) -> CanvasController:
    controller = CanvasController(
        committer,
        role=role,
        canvas_width=CANVAS_WIDTH,
        commit_timeout=commit_timeout,
    )
    controller.on_server_snapshot(three_moments())
    return controller


def visible(controller) -> dict[str, GridPosition]:
    return {m.id: m.grid_position for m in controller.store.visible_moments}


# ─── Store ───


def test_store_layer_precedence():
    store = CanvasStore([moment("a", 0)])
    optimistic = [moment("a", 0, column=1)]
    preview = [moment("a", 0, row=3.0)]

    token = store.apply_optimistic(optimistic)
    assert store.visible_moments == optimistic
    store.set_preview(preview)
    assert store.visible_moments == preview
    store.clear_preview()
    assert store.visible_moments == optimistic
    assert store.rollback(token)
    assert store.visible_moments == [moment("a", 0)]


def test_store_ignores_stale_tokens():
    store = CanvasStore([moment("a", 0)])
    first = store.apply_optimistic([moment("a", 0, column=1)])
    store.apply_server_snapshot([moment("a", 0, row=2.0)])

    assert not store.rollback(first)
    assert not store.confirm(first)
    assert store.visible_moments == [moment("a", 0, row=2.0)]


def test_confirm_promotes_optimistic_layer():
    store = CanvasStore([moment("a", 0)])
    token = store.apply_optimistic([moment("a", 0, column=1)])
    assert store.confirm(token)
    assert not store.has_optimistic
    assert store.server_moments == [moment("a", 0, column=1)]


# ─── Drag ───


async def test_drag_onto_occupied_slot_reflows_around_pinned_moment():
    committer = RecordingCommitter()
    controller = make_controller(committer)

    assert controller.begin_drag("m2")
    assert controller.state == GestureState.DRAGGING
    candidate = controller.drag_moved(-189, 0)
    assert candidate == GridPosition(0, 0.0, 1, 1.5)

    preview = visible(controller)
    assert preview["m2"] == GridPosition(0, 0.0, 1, 1.5)
    assert preview["m1"] == GridPosition(1, 0.0, 1, 1.5)
    assert find_overlaps(controller.store.visible_moments) == []
    assert committer.batches == []

    outcome = await controller.end_drag()

    assert outcome == CommitOutcome(ok=True, updated=3)
    assert controller.state == GestureState.IDLE
    assert dict(committer.batches[0]) == preview
    assert visible(controller) == preview
    assert not controller.store.has_preview


async def test_viewer_cannot_start_gesture():
    committer = RecordingCommitter()
    controller = make_controller(committer, role=Role.VIEWER)

    assert not controller.begin_drag("m1")
    assert not controller.begin_resize("m1")
    assert controller.state == GestureState.IDLE
    assert controller.drag_moved(50, 50) is None
    assert committer.batches == []


def test_begin_drag_needs_known_moment_and_measured_canvas():
    controller = make_controller(RecordingCommitter())
    assert not controller.begin_drag("missing")
    controller.set_canvas_width(0)
    assert not controller.begin_drag("m1")


async def test_failed_commit_rolls_back_and_can_be_retried():
    committer = RecordingCommitter(error=TransientRPCError("server unavailable"))
    controller = make_controller(committer)
    before = visible(controller)

    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)
    outcome = await controller.end_drag()

    assert not outcome.ok
    assert outcome.retryable
    assert isinstance(outcome.error, TransientRPCError)
    assert visible(controller) == before
    assert controller.state == GestureState.IDLE
    assert controller.can_retry

    committer.error = None
    retried = await controller.retry_last_commit()

    assert retried.ok
    assert committer.batches[1] == committer.batches[0]
    assert visible(controller)["m2"] == GridPosition(0, 0.0, 1, 1.5)
    assert not controller.can_retry


async def test_rejected_commit_is_not_retryable():
    controller = make_controller(RecordingCommitter(error=UnauthorizedError("Role changed")))
    before = visible(controller)

    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)
    outcome = await controller.end_drag()

    assert not outcome.ok and not outcome.retryable
    assert visible(controller) == before
    assert not controller.can_retry


async def test_commit_timeout_rolls_back():
    controller = make_controller(RecordingCommitter(delay=1.0), commit_timeout=0.01)
    before = visible(controller)

    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)
    outcome = await controller.end_drag()

    assert not outcome.ok
    assert outcome.retryable
    assert visible(controller) == before
    assert controller.state == GestureState.IDLE


async def test_drag_without_movement_commits_nothing():
    committer = RecordingCommitter()
    controller = make_controller(committer)

    controller.begin_drag("m1")
    controller.drag_moved(3, 4)
    outcome = await controller.end_drag()

    assert outcome.ok and outcome.updated == 0
    assert committer.batches == []


async def test_no_second_gesture_while_committing():
    committer = RecordingCommitter(delay=0.05)
    controller = make_controller(committer)

    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)
    pending = asyncio.create_task(controller.end_drag())
    await asyncio.sleep(0)

    assert controller.state == GestureState.COMMITTING
    assert not controller.begin_drag("m1")
    assert (await pending).ok


def test_cancel_gesture_drops_preview():
    controller = make_controller(RecordingCommitter())
    before = visible(controller)

    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)
    assert controller.cancel_gesture()

    assert controller.state == GestureState.IDLE
    assert visible(controller) == before
    assert not controller.cancel_gesture()


# ─── Snapshots during gestures ───


def test_snapshot_during_drag_keeps_candidate():
    controller = make_controller(RecordingCommitter())
    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)

    snapshot = three_moments() + [moment("m4", 3, column=1, row=3.5, height=1.0)]
    controller.on_server_snapshot(snapshot)

    preview = visible(controller)
    assert controller.state == GestureState.DRAGGING
    assert preview["m2"] == GridPosition(0, 0.0, 1, 1.5)
    assert "m4" in preview
    assert find_overlaps(controller.store.visible_moments) == []


def test_snapshot_removing_dragged_moment_cancels_gesture():
    controller = make_controller(RecordingCommitter())
    controller.begin_drag("m2")
    controller.drag_moved(-189, 0)

    controller.on_server_snapshot([m for m in three_moments() if m.id != "m2"])

    assert controller.state == GestureState.IDLE
    assert set(visible(controller)) == {"m1", "m3"}


# ─── Resize ───


async def test_resize_to_full_width_pushes_neighbours_down():
    committer = RecordingCommitter()
    controller = make_controller(committer, role=Role.COLLABORATOR)

    assert controller.begin_resize("m1")
    assert controller.resize_to(2, 1.0) == GridPosition(0, 0.0, 2, 1.0)
    preview = visible(controller)
    assert preview["m1"] == GridPosition(0, 0.0, 2, 1.0)
    assert preview["m2"].row >= 1.0
    assert find_overlaps(controller.store.visible_moments) == []

    outcome = await controller.end_resize()
    assert outcome.ok
    assert dict(committer.batches[0])["m1"] == GridPosition(0, 0.0, 2, 1.0)


async def test_end_without_gesture_reports_error():
    controller = make_controller(RecordingCommitter())
    outcome = await controller.end_drag()
    assert not outcome.ok
    assert (await controller.retry_last_commit()).ok is False


@pytest.mark.parametrize("width", [0, 400, 1200])
def test_layout_follows_visible_layer(width):
    controller = make_controller(RecordingCommitter())
    controller.set_canvas_width(width)
    layouts = controller.layout()
    assert (len(layouts) == 3) == (width > 0)
