"""Media service — photo/video items, storage charging and trip cover selection."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.errors import ConflictError, InvalidRequestError, NotFoundError
from tripbank.models import MediaItem, Moment
from tripbank.schemas.media import CreateMediaRequest, UpdateMediaRequest
from tripbank.services.object_storage import object_storage
from tripbank.services.permission_service import permission_service
from tripbank.services.realtime import trip_events
from tripbank.services.storage_service import storage_service

logger = logging.getLogger(__name__)


class MediaService:
    async def _get_item(self, db: AsyncSession, media_item_id: str) -> MediaItem:
        item = await db.get(MediaItem, media_item_id)
        if item is None:
            raise NotFoundError("Media item not found")
        return item

    async def _measured_size(self, db: AsyncSession, storage_id: str, user_id: str) -> int:
        await object_storage.require_owned(db, storage_id, user_id)
        size = object_storage.size_of(storage_id)
        if size is None:
            raise InvalidRequestError("Uploaded file is missing")
        return size

    async def list_media(self, db: AsyncSession, trip_id: str, user_id: str) -> list[MediaItem]:
        await permission_service.require_view(db, trip_id, user_id)
        result = await db.execute(
            select(MediaItem).where(MediaItem.trip_id == trip_id).order_by(MediaItem.timestamp)
        )
        return list(result.scalars().all())

    async def add_media_item(
        self, db: AsyncSession, trip_id: str, user_id: str, data: CreateMediaRequest
    ) -> MediaItem:
        """
        Record an uploaded file against a trip.

        The uploader is charged for file + thumbnail bytes in the same
        transaction; over the tier cap the item is refused with
        StorageLimitError. Sizes of stored files are measured rather than
        taken from the request, and only the uploader may attach them. The
        first photo of a trip without a cover becomes its cover.
        """
        trip, _ = await permission_service.require_edit(
            db, trip_id, user_id, "You don't have permission to add media to this trip"
        )
        if data.id and await db.get(MediaItem, data.id) is not None:
            raise ConflictError("A media item with this id already exists")

        file_size, thumbnail_size = data.file_size, data.thumbnail_size
        if data.storage_id:
            file_size = await self._measured_size(db, data.storage_id, user_id)
        if data.thumbnail_storage_id:
            thumbnail_size = await self._measured_size(db, data.thumbnail_storage_id, user_id)

        item = MediaItem(
            trip_id=trip_id,
            user_id=user_id,
            type=data.type,
            storage_id=data.storage_id,
            thumbnail_storage_id=data.thumbnail_storage_id,
            image_url=data.image_url,
            video_url=data.video_url,
            capture_date=data.capture_date,
            note=data.note,
            timestamp=data.timestamp,
            file_size=file_size,
            thumbnail_size=thumbnail_size,
        )
        if data.id:
            item.id = data.id

        await storage_service.charge(db, user_id, item.total_bytes)

        if item.type == "photo" and item.storage_id and not trip.cover_image_storage_id:
            trip.cover_image_storage_id = item.storage_id
            logger.info(f"Trip {trip_id} cover set from first photo")

        db.add(item)
        await db.commit()
        await trip_events.publish(trip_id, "media_changed")
        return item

    async def update_media_item(
        self, db: AsyncSession, media_item_id: str, user_id: str, changes: UpdateMediaRequest
    ) -> MediaItem:
        item = await self._get_item(db, media_item_id)
        await permission_service.require_edit(
            db, item.trip_id, user_id, "You don't have permission to edit this media"
        )
        for field, value in changes.model_dump(exclude_unset=True).items():
            setattr(item, field, value)
        await db.commit()
        await trip_events.publish(item.trip_id, "media_changed")
        return item

    async def delete_media_item(self, db: AsyncSession, media_item_id: str, user_id: str) -> None:
        """Delete the item and its files, drop it from every moment and refund the uploader."""
        item = await self._get_item(db, media_item_id)
        trip_id = item.trip_id
        trip, _ = await permission_service.require_edit(
            db, trip_id, user_id, "You don't have permission to delete this media"
        )

        moments = await db.execute(select(Moment).where(Moment.trip_id == trip_id))
        for moment in moments.scalars().all():
            if media_item_id in (moment.media_item_ids or []):
                moment.media_item_ids = [mid for mid in moment.media_item_ids if mid != media_item_id]

        if trip.cover_image_storage_id and trip.cover_image_storage_id == item.storage_id:
            trip.cover_image_storage_id = None

        await storage_service.release(db, item.user_id, item.total_bytes)
        storage_ids = [sid for sid in (item.storage_id, item.thumbnail_storage_id) if sid]
        await db.delete(item)
        await db.commit()

        await object_storage.release_files(db, storage_ids)
        logger.info(f"Deleted media item {media_item_id} from trip {trip_id}")
        await trip_events.publish(trip_id, "media_changed")


media_service = MediaService()
