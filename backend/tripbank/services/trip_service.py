"""Trip service — creation, updates, cascading deletes and the public preview."""

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.errors import ConflictError, InvalidRequestError, NotFoundError
from tripbank.models import MediaItem, Moment, Trip, TripPermission
from tripbank.schemas.trip import CreateTripRequest, UpdateTripRequest
from tripbank.services.grid_layout import chronological
from tripbank.services.object_storage import object_storage
from tripbank.services.permission_service import Role, permission_service
from tripbank.services.realtime import trip_events
from tripbank.services.storage_service import storage_service

logger = logging.getLogger(__name__)

PREVIEW_MEDIA_PER_MOMENT = 4
TRIP_IMAGE_FIELDS = ("cover_image_storage_id", "preview_image_storage_id")


@dataclass
class TripSnapshot:
    trip: Trip
    role: Role
    moments: list[Moment]
    media_items: list[MediaItem]


class TripService:
    """Owns the trip aggregate: the trip row, its permissions, moments and media."""

    async def create_trip(self, db: AsyncSession, owner_id: str, data: CreateTripRequest) -> Trip:
        """Insert the trip and its owner permission row in one transaction."""
        if data.end_date < data.start_date:
            raise InvalidRequestError("end_date must not be before start_date")
        if data.id and await db.get(Trip, data.id) is not None:
            raise ConflictError("A trip with this id already exists")
        if data.cover_image_storage_id:
            await object_storage.require_owned(db, data.cover_image_storage_id, owner_id)

        trip = Trip(
            owner_id=owner_id,
            title=data.title,
            start_date=data.start_date,
            end_date=data.end_date,
            cover_image_name=data.cover_image_name,
            cover_image_storage_id=data.cover_image_storage_id,
        )
        if data.id:
            trip.id = data.id
        db.add(trip)
        await db.flush()
        db.add(TripPermission(
            trip_id=trip.id,
            user_id=owner_id,
            role=Role.OWNER.value,
            granted_via="owner",
            invited_by=owner_id,
        ))
        await db.commit()
        logger.info(f"Created trip {trip.id} for user {owner_id}")
        return trip

    async def update_trip(
        self, db: AsyncSession, trip_id: str, user_id: str, changes: UpdateTripRequest
    ) -> Trip:
        trip, _ = await permission_service.require_edit(db, trip_id, user_id)
        updates = {
            field: value
            for field, value in changes.model_dump(exclude_unset=True).items()
            if value is not None or field not in ("title", "start_date", "end_date")
        }
        start = updates.get("start_date", trip.start_date)
        end = updates.get("end_date", trip.end_date)
        if end < start:
            raise InvalidRequestError("end_date must not be before start_date")

        replaced = []
        for field in TRIP_IMAGE_FIELDS:
            new_id, old_id = updates.get(field), getattr(trip, field)
            if field not in updates or new_id == old_id:
                continue
            if new_id:
                await object_storage.require_attachable(db, new_id, user_id, trip_id)
            if old_id:
                replaced.append(old_id)

        for field, value in updates.items():
            setattr(trip, field, value)
        await db.commit()
        await object_storage.release_files(db, replaced)
        await trip_events.publish(trip_id, "trip_updated")
        return trip

    async def delete_trip(self, db: AsyncSession, trip_id: str, user_id: str) -> None:
        """Delete the trip with everything hanging off it and give uploaders their bytes back."""
        trip, _ = await permission_service.require_owner(
            db, trip_id, user_id, "Only the trip owner can delete the trip"
        )

        media_result = await db.execute(select(MediaItem).where(MediaItem.trip_id == trip_id))
        media_items = media_result.scalars().all()

        released: dict[str, int] = defaultdict(int)
        storage_ids: list[str] = []
        for item in media_items:
            released[item.user_id] += item.total_bytes
            storage_ids.extend(sid for sid in (item.storage_id, item.thumbnail_storage_id) if sid)
        storage_ids.extend(sid for sid in (trip.cover_image_storage_id, trip.preview_image_storage_id) if sid)

        for uploader_id, num_bytes in released.items():
            await storage_service.release(db, uploader_id, num_bytes)

        await db.execute(delete(MediaItem).where(MediaItem.trip_id == trip_id))
        await db.execute(delete(Moment).where(Moment.trip_id == trip_id))
        await db.execute(delete(TripPermission).where(TripPermission.trip_id == trip_id))
        await db.delete(trip)
        await db.commit()

        deleted_files = await object_storage.release_files(db, storage_ids)
        logger.info(
            f"Deleted trip {trip_id}: {len(media_items)} media items, "
            f"{deleted_files} stored files, {sum(released.values())} bytes released"
        )
        await trip_events.publish(trip_id, "trip_deleted")

    async def get_trip(self, db: AsyncSession, trip_id: str, user_id: str) -> TripSnapshot:
        trip, role = await permission_service.require_view(db, trip_id, user_id)
        moments = await db.execute(
            select(Moment).where(Moment.trip_id == trip_id).order_by(Moment.timestamp)
        )
        media = await db.execute(
            select(MediaItem).where(MediaItem.trip_id == trip_id).order_by(MediaItem.timestamp)
        )
        return TripSnapshot(trip, role, list(moments.scalars().all()), list(media.scalars().all()))

    async def list_trips(self, db: AsyncSession, user_id: str) -> list[Trip]:
        """Trips the user owns, newest first."""
        result = await db.execute(
            select(Trip).where(Trip.owner_id == user_id).order_by(Trip.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_public_preview(self, db: AsyncSession, slug_or_code: str) -> dict:
        """Read-only view of a shared trip for people without an account."""
        trip = await permission_service.find_trip_by_share_token(db, slug_or_code)
        if trip is None or not trip.share_link_enabled:
            raise NotFoundError("Trip not found")

        moments_result = await db.execute(select(Moment).where(Moment.trip_id == trip.id))
        moments = chronological(moments_result.scalars().all())
        media_result = await db.execute(select(MediaItem).where(MediaItem.trip_id == trip.id))
        media_by_id = {item.id: item for item in media_result.scalars().all()}

        preview_moments = []
        for moment in moments:
            urls = []
            for media_id in (moment.media_item_ids or [])[:PREVIEW_MEDIA_PER_MOMENT]:
                item = media_by_id.get(media_id)
                if item is None:
                    continue
                urls.append(object_storage.get_url(item.storage_id) or item.image_url)
            preview_moments.append({
                "moment_id": moment.id,
                "title": moment.title,
                "grid_position": moment.grid_position.to_dict(),
                "media_count": len(moment.media_item_ids or []),
                "media_urls": urls,
            })

        return {
            "trip": {
                "trip_id": trip.id,
                "title": trip.title,
                "start_date": trip.start_date,
                "end_date": trip.end_date,
                "share_slug": trip.share_slug,
                "share_code": trip.share_code,
                "cover_image_url": object_storage.get_url(trip.cover_image_storage_id),
                "preview_image_url": object_storage.get_url(trip.preview_image_storage_id),
            },
            "moments": preview_moments,
            "total_moments": len(preview_moments),
        }


trip_service = TripService()
