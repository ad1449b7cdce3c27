"""Storage service — per-user byte accounting, tier limits and subscription state."""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.config import settings
from tripbank.database import utcnow
from tripbank.errors import NotFoundError, StorageLimitError
from tripbank.models import MediaItem, User

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StorageService:
    """Tracks how many bytes each user's uploads occupy against their tier cap."""

    # ─── Tiers ───

    def is_expired(self, user: User) -> bool:
        expires_at = _as_utc(user.subscription_expires_at)
        return expires_at is not None and expires_at < utcnow()

    def effective_tier(self, user: User) -> str:
        """An expired subscription counts as free."""
        tier = user.subscription_tier or "free"
        if tier not in settings.storage_limits or self.is_expired(user):
            return "free"
        return tier

    def limit_for(self, user: User) -> int:
        return settings.storage_limits[self.effective_tier(user)]

    # ─── Usage ───

    def get_usage(self, user: User) -> dict:
        used = user.storage_used_bytes or 0
        limit = self.limit_for(user)
        return {
            "used_bytes": used,
            "limit_bytes": limit,
            "tier": self.effective_tier(user),
            "percent_used": min(100.0, used / limit * 100) if limit else 100.0,
            "remaining_bytes": max(0, limit - used),
            "is_at_limit": used >= limit,
        }

    def check_upload(self, user: User, file_size: int) -> dict:
        """Whether `file_size` more bytes fit under the user's cap."""
        usage = self.get_usage(user)
        remaining = usage["remaining_bytes"]
        if file_size > remaining:
            return {
                "can_upload": False,
                "reason": (
                    f"Storage limit exceeded. You have {remaining / MB:.1f}MB remaining, "
                    f"but this file is {file_size / MB:.1f}MB."
                ),
                "remaining_bytes": remaining,
                "upgrade": usage["tier"] == "free",
            }
        return {"can_upload": True, "reason": None, "remaining_bytes": remaining, "upgrade": False}

    async def _load(self, db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def charge(self, db: AsyncSession, user_id: str, num_bytes: int) -> User:
        """Reserve bytes for an upload in the caller's transaction, or raise StorageLimitError."""
        user = await self._load(db, user_id)
        if num_bytes <= 0:
            return user
        check = self.check_upload(user, num_bytes)
        if not check["can_upload"]:
            logger.info(f"Upload of {num_bytes} bytes refused for user {user_id}")
            raise StorageLimitError(
                check["reason"],
                required_bytes=num_bytes,
                remaining_bytes=check["remaining_bytes"],
                upgrade=check["upgrade"],
            )
        user.storage_used_bytes = (user.storage_used_bytes or 0) + num_bytes
        return user

    async def release(self, db: AsyncSession, user_id: str, num_bytes: int) -> None:
        """Give bytes back in the caller's transaction; usage never drops below zero."""
        if num_bytes <= 0:
            return
        user = await db.get(User, user_id)
        if user is None:
            logger.warning(f"Cannot release {num_bytes} bytes for unknown user {user_id}")
            return
        user.storage_used_bytes = max(0, (user.storage_used_bytes or 0) - num_bytes)

    async def add_usage(self, db: AsyncSession, user_id: str, num_bytes: int) -> int:
        user = await self._load(db, user_id)
        user.storage_used_bytes = (user.storage_used_bytes or 0) + max(0, num_bytes)
        await db.commit()
        return user.storage_used_bytes

    async def subtract_usage(self, db: AsyncSession, user_id: str, num_bytes: int) -> int:
        await self.release(db, user_id, num_bytes)
        await db.commit()
        user = await self._load(db, user_id)
        return user.storage_used_bytes

    async def recalculate(self, db: AsyncSession, user_id: str) -> dict:
        """Recompute usage from the media the user uploaded."""
        user = await self._load(db, user_id)
        result = await db.execute(
            select(
                func.coalesce(func.sum(func.coalesce(MediaItem.file_size, 0) + func.coalesce(MediaItem.thumbnail_size, 0)), 0),
                func.count(MediaItem.id),
            ).where(MediaItem.user_id == user_id)
        )
        total, count = result.one()
        total = int(total or 0)
        if total != (user.storage_used_bytes or 0):
            logger.info(f"Storage for user {user_id} corrected {user.storage_used_bytes} → {total}")
        user.storage_used_bytes = total
        await db.commit()
        return {"total_bytes": total, "media_item_count": int(count or 0)}

    async def reconcile_all(self, db: AsyncSession) -> int:
        """Recalculate every user's usage. Returns how many users were checked."""
        result = await db.execute(select(User.id))
        user_ids = [row[0] for row in result.all()]
        for user_id in user_ids:
            await self.recalculate(db, user_id)
        return len(user_ids)

    # ─── Subscription ───

    async def update_subscription(
        self,
        db: AsyncSession,
        user_id: str,
        tier: str,
        expires_at: datetime | None = None,
        revenuecat_user_id: str | None = None,
    ) -> User:
        user = await self._load(db, user_id)
        user.subscription_tier = tier
        user.subscription_expires_at = expires_at
        if revenuecat_user_id:
            user.revenuecat_user_id = revenuecat_user_id
        await db.commit()
        logger.info(f"User {user_id} subscription set to {tier}")
        return user

    def get_subscription(self, user: User) -> dict:
        return {
            "tier": self.effective_tier(user),
            "expires_at": user.subscription_expires_at,
            "is_expired": self.is_expired(user),
            "storage_limit": self.limit_for(user),
        }


storage_service = StorageService()
