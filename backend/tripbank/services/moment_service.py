"""Moment service — moment CRUD and grid position persistence."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.errors import ConflictError, InvalidRequestError, NotFoundError
from tripbank.models import MediaItem, Moment
from tripbank.schemas.moment import CreateMomentRequest, UpdateMomentRequest
from tripbank.services.grid_layout import GridPosition, GridSize, calculate_next_grid_position
from tripbank.services.permission_service import permission_service
from tripbank.services.realtime import trip_events

logger = logging.getLogger(__name__)


def _checked(position: GridPosition) -> GridPosition:
    if not position.is_valid():
        raise InvalidRequestError(
            "Invalid grid position: column must be 0 or 1, width 1 or 2 within the grid, "
            "row >= 0 and height > 0"
        )
    return position


class MomentService:
    """Moments live inside a trip; every write is gated on edit access to that trip."""

    async def _get_moment(self, db: AsyncSession, moment_id: str) -> Moment:
        moment = await db.get(Moment, moment_id)
        if moment is None:
            raise NotFoundError("Moment not found")
        return moment

    async def _check_media_ids(self, db: AsyncSession, trip_id: str, media_item_ids: list[str]) -> None:
        if not media_item_ids:
            return
        result = await db.execute(
            select(MediaItem.id).where(
                MediaItem.trip_id == trip_id,
                MediaItem.id.in_(media_item_ids),
            )
        )
        found = {row[0] for row in result.all()}
        missing = [media_id for media_id in media_item_ids if media_id not in found]
        if missing:
            raise InvalidRequestError(f"Media items not in this trip: {', '.join(missing)}")

    async def list_moments(self, db: AsyncSession, trip_id: str, user_id: str) -> list[Moment]:
        await permission_service.require_view(db, trip_id, user_id)
        result = await db.execute(
            select(Moment).where(Moment.trip_id == trip_id).order_by(Moment.timestamp)
        )
        return list(result.scalars().all())

    async def add_moment(
        self, db: AsyncSession, trip_id: str, user_id: str, data: CreateMomentRequest
    ) -> Moment:
        """Create a moment; without an explicit position it takes the first free slot."""
        await permission_service.require_edit(
            db, trip_id, user_id, "You don't have permission to add moments to this trip"
        )
        if data.id and await db.get(Moment, data.id) is not None:
            raise ConflictError("A moment with this id already exists")
        await self._check_media_ids(db, trip_id, data.media_item_ids)

        if data.grid_position is not None:
            position = _checked(data.grid_position.to_position())
        else:
            existing = await db.execute(select(Moment).where(Moment.trip_id == trip_id))
            size = data.size.to_size() if data.size else GridSize()
            position = calculate_next_grid_position(existing.scalars().all(), size)

        moment = Moment(
            trip_id=trip_id,
            user_id=user_id,
            title=data.title,
            note=data.note,
            media_item_ids=list(data.media_item_ids),
            timestamp=data.timestamp,
            date=data.date,
            place_name=data.place_name,
            event_name=data.event_name,
            voice_note_url=data.voice_note_url,
        )
        if data.id:
            moment.id = data.id
        moment.grid_position = position
        db.add(moment)
        await db.commit()
        logger.info(f"Added moment {moment.id} to trip {trip_id} at {position.to_dict()}")
        await trip_events.publish(trip_id, "moments_changed")
        return moment

    async def update_moment(
        self, db: AsyncSession, moment_id: str, user_id: str, changes: UpdateMomentRequest
    ) -> Moment:
        moment = await self._get_moment(db, moment_id)
        await permission_service.require_edit(
            db, moment.trip_id, user_id, "You don't have permission to edit this moment"
        )
        updates = changes.model_dump(exclude_unset=True)
        if updates.get("media_item_ids") is not None:
            await self._check_media_ids(db, moment.trip_id, updates["media_item_ids"])
        for field, value in updates.items():
            if field in ("title", "media_item_ids") and value is None:
                continue
            setattr(moment, field, value)
        await db.commit()
        await trip_events.publish(moment.trip_id, "moments_changed")
        return moment

    async def delete_moment(self, db: AsyncSession, moment_id: str, user_id: str) -> None:
        """Remove the moment; its media items stay in the trip."""
        moment = await self._get_moment(db, moment_id)
        trip_id = moment.trip_id
        await permission_service.require_edit(
            db, trip_id, user_id, "You don't have permission to delete this moment"
        )
        await db.delete(moment)
        await db.commit()
        logger.info(f"Deleted moment {moment_id} from trip {trip_id}")
        await trip_events.publish(trip_id, "moments_changed")

    # ─── Grid positions ───

    async def update_grid_position(
        self, db: AsyncSession, moment_id: str, user_id: str, position: GridPosition
    ) -> Moment:
        moment = await self._get_moment(db, moment_id)
        await permission_service.require_edit(
            db, moment.trip_id, user_id, "You don't have permission to edit this trip"
        )
        moment.grid_position = _checked(position)
        await db.commit()
        await trip_events.publish(moment.trip_id, "moments_changed")
        return moment

    async def batch_update_grid_positions(
        self, db: AsyncSession, user_id: str, updates: list[tuple[str, GridPosition]]
    ) -> int:
        """
        Apply many position changes all-or-nothing.

        Every item is validated (moment exists, caller may edit its trip, the
        position is well-formed) before anything is written; one failure
        rejects the whole batch.
        """
        if not updates:
            return 0

        moment_ids = [moment_id for moment_id, _ in updates]
        if len(set(moment_ids)) != len(moment_ids):
            raise InvalidRequestError("Each moment may appear only once in a batch")
        for _, position in updates:
            _checked(position)

        result = await db.execute(select(Moment).where(Moment.id.in_(moment_ids)))
        moments = {moment.id: moment for moment in result.scalars().all()}
        for moment_id in moment_ids:
            if moment_id not in moments:
                raise NotFoundError(f"Moment not found: {moment_id}")

        trip_ids = sorted({moment.trip_id for moment in moments.values()})
        for trip_id in trip_ids:
            await permission_service.require_edit(db, trip_id, user_id)

        for moment_id, position in updates:
            moments[moment_id].grid_position = position
        await db.commit()
        logger.info(f"Batch-updated {len(updates)} grid positions across {len(trip_ids)} trip(s)")

        for trip_id in trip_ids:
            await trip_events.publish(trip_id, "moments_changed")
        return len(updates)


moment_service = MomentService()
