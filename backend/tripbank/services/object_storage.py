"""Object storage — upload slots, byte storage and URLs for trip media files."""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from jose import JWTError, jwt
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.config import settings
from tripbank.database import utcnow
from tripbank.errors import InvalidRequestError, UnauthorizedError
from tripbank.models import MediaItem, StoredFile, Trip

logger = logging.getLogger(__name__)

_STORAGE_ID = re.compile(r"^[0-9a-f]{32}$")
_UPLOAD_PURPOSE = "upload"


@dataclass
class UploadSlot:
    token: str
    upload_url: str
    expires_at: datetime


class ObjectStorage:
    """Directory-backed store addressed by opaque storage ids."""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root) if root else None

    @property
    def root(self) -> Path:
        root = self._root or Path(settings.storage_dir)
        root.mkdir(parents=True, exist_ok=True)
        return root

    def path_for(self, storage_id: str) -> Path | None:
        if not storage_id or not _STORAGE_ID.match(storage_id):
            return None
        return self.root / storage_id

    def request_upload_slot(self, user_id: str) -> UploadSlot:
        """Signed, short-lived permission to upload one file; the slot id makes it single use."""
        expires_at = utcnow() + timedelta(minutes=settings.upload_token_expire_minutes)
        payload = {
            "sub": user_id,
            "purpose": _UPLOAD_PURPOSE,
            "slot": uuid.uuid4().hex,
            "exp": expires_at,
        }
        token = jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)
        return UploadSlot(
            token=token,
            upload_url=f"{settings.public_base_url}/api/files/upload/{token}",
            expires_at=expires_at,
        )

    def verify_upload_token(self, token: str) -> dict:
        try:
            claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        except JWTError:
            raise UnauthorizedError("Upload link is invalid or has expired")
        if claims.get("purpose") != _UPLOAD_PURPOSE:
            raise UnauthorizedError("Upload link is invalid or has expired")
        return claims

    async def put_bytes(self, db: AsyncSession, token: str, data: bytes) -> StoredFile:
        """
        Store `data` under a fresh storage id and record who uploaded it.

        Each upload token carries a random slot id that is spent by the first
        successful upload; presenting the same token again is refused.
        """
        claims = self.verify_upload_token(token)
        if not data:
            raise InvalidRequestError("Upload is empty")
        slot = claims.get("slot")
        if not slot:
            raise UnauthorizedError("Upload link is invalid or has expired")
        used = await db.execute(select(StoredFile.id).where(StoredFile.upload_slot == slot))
        if used.scalar_one_or_none() is not None:
            raise UnauthorizedError("Upload link has already been used")

        storage_id = uuid.uuid4().hex
        path = self.root / storage_id
        await asyncio.to_thread(path.write_bytes, data)
        record = StoredFile(id=storage_id, user_id=claims["sub"], upload_slot=slot, size=len(data))
        db.add(record)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            await self.delete(storage_id)
            raise UnauthorizedError("Upload link has already been used")
        logger.info(f"Stored {len(data)} bytes as {storage_id} for user {claims['sub']}")
        return record

    # ─── Ownership ───

    async def require_owned(self, db: AsyncSession, storage_id: str, user_id: str) -> StoredFile:
        """The upload record for `storage_id`, provided `user_id` uploaded it."""
        record = await db.get(StoredFile, storage_id)
        if record is None or record.user_id != user_id:
            raise UnauthorizedError("You can only attach files you uploaded")
        return record

    async def require_attachable(
        self, db: AsyncSession, storage_id: str, user_id: str, trip_id: str | None = None
    ) -> None:
        """Trip images may be the caller's own uploads or files already used by the trip's media."""
        if trip_id is not None:
            in_trip = await db.execute(
                select(MediaItem.id).where(
                    MediaItem.trip_id == trip_id,
                    or_(MediaItem.storage_id == storage_id, MediaItem.thumbnail_storage_id == storage_id),
                ).limit(1)
            )
            if in_trip.scalar_one_or_none() is not None:
                return
        await self.require_owned(db, storage_id, user_id)

    async def unreferenced(self, db: AsyncSession, storage_ids: list[str]) -> list[str]:
        """Those of `storage_ids` no media item or trip points at any more."""
        candidates = {sid for sid in storage_ids if sid}
        if not candidates:
            return []
        referenced: set[str] = set()
        for column in (
            MediaItem.storage_id,
            MediaItem.thumbnail_storage_id,
            Trip.cover_image_storage_id,
            Trip.preview_image_storage_id,
        ):
            result = await db.execute(select(column).where(column.in_(candidates)))
            referenced.update(result.scalars().all())
        return sorted(candidates - referenced)

    async def release_files(self, db: AsyncSession, storage_ids: list[str]) -> int:
        """Delete the files among `storage_ids` that nothing references. Returns how many went."""
        orphaned = await self.unreferenced(db, storage_ids)
        if not orphaned:
            return 0
        await db.execute(delete(StoredFile).where(StoredFile.id.in_(orphaned)))
        await db.commit()
        return await self.delete_many(orphaned)

    # ─── Files ───

    def exists(self, storage_id: str) -> bool:
        path = self.path_for(storage_id)
        return path is not None and path.is_file()

    def size_of(self, storage_id: str) -> int | None:
        path = self.path_for(storage_id)
        if path is None or not path.is_file():
            return None
        return path.stat().st_size

    def get_url(self, storage_id: str | None) -> str | None:
        if not storage_id or not self.exists(storage_id):
            return None
        return f"{settings.public_base_url}/api/files/{storage_id}"

    async def delete(self, storage_id: str | None) -> bool:
        path = self.path_for(storage_id) if storage_id else None
        if path is None or not path.is_file():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def delete_many(self, storage_ids: list[str]) -> int:
        deleted = 0
        for storage_id in storage_ids:
            try:
                if await self.delete(storage_id):
                    deleted += 1
            except OSError as e:
                logger.warning(f"Could not delete stored file {storage_id}: {e}")
        return deleted


object_storage = ObjectStorage()
