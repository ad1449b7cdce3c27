"""Canvas controller — drag/resize gestures over the moment grid with optimistic commits.

Everything here runs on one event loop. Gesture handlers are synchronous and
only touch in-memory state; the single awaited step is the batch commit at
the end of a gesture.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from tripbank.config import settings
from tripbank.errors import InvalidRequestError, TransientRPCError, TripBankError, UnauthorizedError
from tripbank.schemas.moment import MomentResponse
from tripbank.services.grid_layout import (
    DEFAULT_METRICS,
    CanvasMoment,
    GridPosition,
    LayoutMetrics,
    MomentLayout,
    calculate_layout,
    content_height,
    pixel_to_grid_position,
    reflow_moments,
)
from tripbank.services.permission_service import Role, role_can_edit

logger = logging.getLogger(__name__)

Committer = Callable[[list[tuple[str, GridPosition]]], Awaitable[Any]]


def canvas_moments_from(responses: Iterable[MomentResponse]) -> list[CanvasMoment]:
    return [
        CanvasMoment(
            id=m.id,
            grid_position=m.grid_position.to_position(),
            timestamp=m.timestamp,
            date=m.date,
            title=m.title,
            media_item_ids=tuple(m.media_item_ids),
        )
        for m in responses
    ]


# ─── State container ───


class CanvasStore:
    """
    Three layers of moments with fixed precedence: preview > optimistic > server.

    The server layer is replaced wholesale by snapshots, which also discard any
    optimistic layer. Optimistic layers are identified by a token so a late
    confirm or rollback for a superseded commit does nothing.
    """

    def __init__(self, moments: Iterable[CanvasMoment] = ()):
        self._server: list[CanvasMoment] = list(moments)
        self._optimistic: list[CanvasMoment] | None = None
        self._optimistic_token: int | None = None
        self._preview: list[CanvasMoment] | None = None
        self._next_token = 0

    @property
    def server_moments(self) -> list[CanvasMoment]:
        return list(self._server)

    @property
    def committed_moments(self) -> list[CanvasMoment]:
        """What the canvas shows outside a gesture."""
        return list(self._optimistic if self._optimistic is not None else self._server)

    @property
    def visible_moments(self) -> list[CanvasMoment]:
        if self._preview is not None:
            return list(self._preview)
        return self.committed_moments

    @property
    def has_preview(self) -> bool:
        return self._preview is not None

    @property
    def has_optimistic(self) -> bool:
        return self._optimistic is not None

    def apply_server_snapshot(self, moments: Iterable[CanvasMoment]) -> None:
        self._server = list(moments)
        self._optimistic = None
        self._optimistic_token = None

    def apply_optimistic(self, moments: Iterable[CanvasMoment]) -> int:
        self._next_token += 1
        self._optimistic = list(moments)
        self._optimistic_token = self._next_token
        return self._next_token

    def rollback(self, token: int) -> bool:
        if token != self._optimistic_token:
            return False
        self._optimistic = None
        self._optimistic_token = None
        return True

    def confirm(self, token: int) -> bool:
        """The server accepted the optimistic layer; it becomes the new baseline."""
        if token != self._optimistic_token:
            return False
        self._server = self._optimistic
        self._optimistic = None
        self._optimistic_token = None
        return True

    def set_preview(self, moments: Iterable[CanvasMoment]) -> None:
        self._preview = list(moments)

    def clear_preview(self) -> None:
        self._preview = None


# ─── Controller ───


class GestureState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    COMMITTING = "committing"


@dataclass
class CommitOutcome:
    ok: bool
    updated: int = 0
    error: TripBankError | None = None
    retryable: bool = False


class CanvasController:
    """Turns touch gestures into previews and batch grid commits for one trip canvas."""

    def __init__(
        self,
        committer: Committer,
        role: Role = Role.NONE,
        canvas_width: float = 0.0,
        metrics: LayoutMetrics = DEFAULT_METRICS,
        commit_timeout: float | None = None,
        store: CanvasStore | None = None,
    ):
        self._committer = committer
        self.role = role
        self.canvas_width = canvas_width
        self.metrics = metrics
        self.commit_timeout = commit_timeout if commit_timeout is not None else settings.commit_timeout_seconds
        self.store = store or CanvasStore()

        self._state = GestureState.IDLE
        self._active_id: str | None = None
        self._origin: tuple[float, float] = (0.0, 0.0)
        self._candidate: GridPosition | None = None
        self._start: GridPosition | None = None
        self._last_batch: list[tuple[str, GridPosition]] | None = None

    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def active_moment_id(self) -> str | None:
        return self._active_id

    @property
    def candidate(self) -> GridPosition | None:
        return self._candidate

    @property
    def can_retry(self) -> bool:
        return self._last_batch is not None

    def set_canvas_width(self, width: float) -> None:
        self.canvas_width = width

    def layout(self) -> dict[str, MomentLayout]:
        return calculate_layout(self.store.visible_moments, self.canvas_width, self.metrics)

    def content_height(self) -> float:
        return content_height(self.layout())

    def on_server_snapshot(self, moments: Iterable[CanvasMoment]) -> None:
        """Take a pushed snapshot; an active gesture keeps its candidate and re-previews over it."""
        self.store.apply_server_snapshot(moments)
        if self._state not in (GestureState.DRAGGING, GestureState.RESIZING):
            return
        if self._find(self._active_id) is None:
            logger.info(f"Moment {self._active_id} disappeared mid-gesture, cancelling")
            self.cancel_gesture()
            return
        if self.store.has_preview:
            self._update_preview()

    # ─── Gestures ───

    def _find(self, moment_id: str | None) -> CanvasMoment | None:
        for moment in self.store.committed_moments:
            if moment.id == moment_id:
                return moment
        return None

    def _begin(self, moment_id: str, state: GestureState) -> bool:
        if self._state != GestureState.IDLE or not role_can_edit(self.role):
            return False
        moment = self._find(moment_id)
        if moment is None:
            return False
        layout = self.layout().get(moment_id)
        if layout is None:
            return False

        self._state = state
        self._active_id = moment_id
        self._origin = layout.position
        self._start = moment.grid_position.normalized()
        self._candidate = self._start
        return True

    def begin_drag(self, moment_id: str) -> bool:
        """Start dragging; refused for read-only roles, during another gesture or a pending commit."""
        return self._begin(moment_id, GestureState.DRAGGING)

    def drag_moved(self, dx: float, dy: float) -> GridPosition | None:
        """Pointer moved by (dx, dy) from where the drag began. Returns the snapped candidate."""
        if self._state != GestureState.DRAGGING:
            return None
        x, y = self._origin
        candidate = pixel_to_grid_position(x + dx, y + dy, self._candidate, self.canvas_width, self.metrics)
        if candidate != self._candidate:
            self._candidate = candidate
            self._update_preview()
        return self._candidate

    async def end_drag(self) -> CommitOutcome:
        if self._state != GestureState.DRAGGING:
            return CommitOutcome(ok=False, error=InvalidRequestError("No drag in progress"))
        return await self._finish_gesture()

    def begin_resize(self, moment_id: str) -> bool:
        return self._begin(moment_id, GestureState.RESIZING)

    def resize_to(self, width: int, height: float) -> GridPosition | None:
        if self._state != GestureState.RESIZING:
            return None
        candidate = GridPosition(
            column=self._candidate.column if width == 1 else 0,
            row=self._candidate.row,
            width=width,
            height=height,
        ).normalized()
        if candidate != self._candidate:
            self._candidate = candidate
            self._update_preview()
        return self._candidate

    async def end_resize(self) -> CommitOutcome:
        if self._state != GestureState.RESIZING:
            return CommitOutcome(ok=False, error=InvalidRequestError("No resize in progress"))
        return await self._finish_gesture()

    def cancel_gesture(self) -> bool:
        if self._state not in (GestureState.DRAGGING, GestureState.RESIZING):
            return False
        self.store.clear_preview()
        self._reset()
        return True

    def _reset(self) -> None:
        self._state = GestureState.IDLE
        self._active_id = None
        self._candidate = None
        self._start = None

    def _update_preview(self) -> None:
        moments = [
            replace(m, grid_position=self._candidate) if m.id == self._active_id else m
            for m in self.store.committed_moments
        ]
        self.store.set_preview(reflow_moments(moments, pinned_moment_id=self._active_id))

    # ─── Commit ───

    async def _finish_gesture(self) -> CommitOutcome:
        if not self.store.has_preview or self._candidate == self._start:
            self.cancel_gesture()
            return CommitOutcome(ok=True)

        final = self.store.visible_moments
        self.store.clear_preview()
        token = self.store.apply_optimistic(final)
        self._reset()
        self._last_batch = [(m.id, m.grid_position) for m in final]
        return await self._commit(token, self._last_batch)

    async def retry_last_commit(self) -> CommitOutcome:
        """Resend the batch of the last failed commit over the current snapshot."""
        if self._state != GestureState.IDLE:
            return CommitOutcome(ok=False, error=InvalidRequestError("A gesture or commit is in progress"))
        if self._last_batch is None:
            return CommitOutcome(ok=False, error=InvalidRequestError("Nothing to retry"))

        positions = dict(self._last_batch)
        moments = [
            replace(m, grid_position=positions[m.id]) if m.id in positions else m
            for m in self.store.committed_moments
        ]
        token = self.store.apply_optimistic(moments)
        return await self._commit(token, self._last_batch)

    async def _commit(self, token: int, batch: list[tuple[str, GridPosition]]) -> CommitOutcome:
        self._state = GestureState.COMMITTING
        try:
            await asyncio.wait_for(self._committer(batch), timeout=self.commit_timeout)
        except asyncio.TimeoutError:
            self.store.rollback(token)
            logger.warning(f"Grid commit of {len(batch)} moments timed out after {self.commit_timeout}s")
            return CommitOutcome(
                ok=False,
                error=TransientRPCError("Saving the layout timed out"),
                retryable=True,
            )
        except TripBankError as e:
            self.store.rollback(token)
            logger.warning(f"Grid commit of {len(batch)} moments rejected: {e.detail}")
            if isinstance(e, UnauthorizedError):
                self._last_batch = None
            return CommitOutcome(ok=False, error=e, retryable=isinstance(e, TransientRPCError))
        except BaseException:
            self.store.rollback(token)
            raise
        finally:
            self._state = GestureState.IDLE

        self.store.confirm(token)
        self._last_batch = None
        return CommitOutcome(ok=True, updated=len(batch))
