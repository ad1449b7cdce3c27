"""Permission service — trip roles, share links, joining and access management."""

import logging
import re
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from tripbank.config import settings
from tripbank.errors import ConflictError, InvalidRequestError, NotFoundError, UnauthorizedError
from tripbank.models import Trip, TripPermission, User
from tripbank.services.realtime import trip_events

logger = logging.getLogger(__name__)


class Role(str, Enum):
    OWNER = "owner"
    COLLABORATOR = "collaborator"
    VIEWER = "viewer"
    NONE = "none"


_RANK = {Role.NONE: 0, Role.VIEWER: 1, Role.COLLABORATOR: 2, Role.OWNER: 3}

GRANTABLE_ROLES = (Role.COLLABORATOR, Role.VIEWER)


def _as_role(role: Role | str | None) -> Role:
    try:
        return Role(role) if role else Role.NONE
    except ValueError:
        return Role.NONE


def role_can_view(role: Role | str | None) -> bool:
    return _RANK[_as_role(role)] >= _RANK[Role.VIEWER]


def role_can_edit(role: Role | str | None) -> bool:
    return _RANK[_as_role(role)] >= _RANK[Role.COLLABORATOR]


def role_can_manage_access(role: Role | str | None) -> bool:
    return _as_role(role) == Role.OWNER


# ─── Share tokens ───

_SLUG_ALPHABET = string.ascii_lowercase + string.digits


def generate_slug(title: str, suffix_length: int = 4) -> str:
    """'Summer in Rome!' → 'summer-in-rome-x7k2'."""
    base = re.sub(r"[^a-z0-9\s-]", "", title.strip().lower())
    base = re.sub(r"\s+", "-", base)[:20].strip("-") or "trip"
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(suffix_length))
    return f"{base}-{suffix}"


def generate_share_code(title: str, digits: int = 2) -> str:
    """'Summer in Rome' → 'SUMMER47'."""
    words = title.split()
    prefix = re.sub(r"[^A-Za-z0-9]", "", words[0]).upper()[:6] if words else ""
    low = 10 ** (digits - 1)
    number = secrets.randbelow(9 * low) + low
    return f"{prefix or 'TRIP'}{number}"


def share_url(slug: str) -> str:
    return f"https://{settings.share_domain}/trip/{slug}"


@dataclass
class ShareLink:
    share_slug: str
    share_code: str
    url: str
    share_link_enabled: bool = True


@dataclass
class JoinResult:
    trip_id: str
    already_member: bool
    role: Role


class PermissionService:
    """Resolves roles and enforces the owner > collaborator > viewer > none lattice."""

    # ─── Lookups ───

    async def get_trip(self, db: AsyncSession, trip_id: str) -> Trip | None:
        result = await db.execute(select(Trip).where(Trip.id == trip_id))
        return result.scalar_one_or_none()

    async def get_permission(self, db: AsyncSession, trip_id: str, user_id: str) -> TripPermission | None:
        result = await db.execute(
            select(TripPermission).where(
                TripPermission.trip_id == trip_id,
                TripPermission.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def resolve_role(
        self, db: AsyncSession, trip_id: str, user_id: str | None, trip: Trip | None = None
    ) -> Role:
        """The effective role of `user_id` on a trip; anonymous or unknown users get NONE."""
        if not user_id:
            return Role.NONE
        trip = trip or await self.get_trip(db, trip_id)
        if trip is None:
            return Role.NONE
        if trip.owner_id == user_id:
            return Role.OWNER
        permission = await self.get_permission(db, trip.id, user_id)
        return _as_role(permission.role) if permission else Role.NONE

    async def can_view(self, db: AsyncSession, trip_id: str, user_id: str | None) -> bool:
        return role_can_view(await self.resolve_role(db, trip_id, user_id))

    async def can_edit(self, db: AsyncSession, trip_id: str, user_id: str | None) -> bool:
        return role_can_edit(await self.resolve_role(db, trip_id, user_id))

    async def can_manage_access(self, db: AsyncSession, trip_id: str, user_id: str | None) -> bool:
        return role_can_manage_access(await self.resolve_role(db, trip_id, user_id))

    # ─── Gates ───

    async def _require(
        self,
        db: AsyncSession,
        trip_id: str,
        user_id: str | None,
        allowed: Callable[[Role], bool],
        message: str,
    ) -> tuple[Trip, Role]:
        trip = await self.get_trip(db, trip_id)
        if trip is None:
            raise NotFoundError("Trip not found")
        role = await self.resolve_role(db, trip_id, user_id, trip=trip)
        if not allowed(role):
            logger.info(f"Denied user {user_id} ({role.value}) on trip {trip_id}: {message}")
            raise UnauthorizedError(message)
        return trip, role

    async def require_view(
        self, db: AsyncSession, trip_id: str, user_id: str | None,
        message: str = "You don't have access to this trip",
    ) -> tuple[Trip, Role]:
        return await self._require(db, trip_id, user_id, role_can_view, message)

    async def require_edit(
        self, db: AsyncSession, trip_id: str, user_id: str | None,
        message: str = "You don't have permission to edit this trip",
    ) -> tuple[Trip, Role]:
        return await self._require(db, trip_id, user_id, role_can_edit, message)

    async def require_owner(
        self, db: AsyncSession, trip_id: str, user_id: str | None,
        message: str = "Only the trip owner can do this",
    ) -> tuple[Trip, Role]:
        return await self._require(db, trip_id, user_id, role_can_manage_access, message)

    # ─── Share links ───

    async def _unused(
        self,
        db: AsyncSession,
        column: InstrumentedAttribute,
        make: Callable[[], str],
    ) -> str | None:
        for _ in range(settings.share_max_attempts):
            candidate = make()
            result = await db.execute(select(Trip.id).where(column == candidate))
            if result.first() is None:
                return candidate
        return None

    async def generate_share_link(self, db: AsyncSession, trip_id: str, requester_id: str) -> ShareLink:
        """Mint a slug and code once; later calls return the same pair and re-enable sharing."""
        trip, _ = await self.require_owner(
            db, trip_id, requester_id, "Only the trip owner can generate share links"
        )

        if trip.share_slug and trip.share_code:
            if not trip.share_link_enabled:
                trip.share_link_enabled = True
                await db.commit()
                logger.info(f"Re-enabled share link for trip {trip_id}")
            return ShareLink(trip.share_slug, trip.share_code, share_url(trip.share_slug))

        slug = trip.share_slug or (
            await self._unused(db, Trip.share_slug, lambda: generate_slug(trip.title))
            or await self._unused(db, Trip.share_slug, lambda: generate_slug(trip.title, suffix_length=8))
        )
        code = trip.share_code or (
            await self._unused(db, Trip.share_code, lambda: generate_share_code(trip.title))
            or await self._unused(db, Trip.share_code, lambda: generate_share_code(trip.title, digits=4))
        )
        if not slug or not code:
            logger.error(f"Could not allocate a unique share link for trip {trip_id}")
            raise ConflictError("Could not create a unique share link, please try again")

        trip.share_slug = slug
        trip.share_code = code
        trip.share_link_enabled = True
        await db.commit()
        logger.info(f"Generated share link {slug} ({code}) for trip {trip_id}")
        return ShareLink(slug, code, share_url(slug))

    async def disable_share_link(self, db: AsyncSession, trip_id: str, requester_id: str) -> None:
        """Stop accepting new members; the slug and code are kept for later re-enabling."""
        trip, _ = await self.require_owner(
            db, trip_id, requester_id, "Only the trip owner can disable share links"
        )
        trip.share_link_enabled = False
        await db.commit()
        logger.info(f"Disabled share link for trip {trip_id}")

    async def find_trip_by_share_token(self, db: AsyncSession, slug_or_code: str) -> Trip | None:
        """Slug first, then the (case-insensitive) code."""
        token = slug_or_code.strip()
        if not token:
            return None
        result = await db.execute(select(Trip).where(Trip.share_slug == token.lower()))
        trip = result.scalar_one_or_none()
        if trip is None:
            result = await db.execute(select(Trip).where(Trip.share_code == token.upper()))
            trip = result.scalar_one_or_none()
        return trip

    async def join_via_link(self, db: AsyncSession, slug_or_code: str, user_id: str) -> JoinResult:
        """Add `user_id` as a viewer; existing members keep their role."""
        trip = await self.find_trip_by_share_token(db, slug_or_code)
        if trip is None:
            raise NotFoundError("Trip not found. Check the link or code and try again.")
        if not trip.share_link_enabled:
            raise UnauthorizedError("This trip is no longer accepting new members")

        if trip.owner_id == user_id:
            return JoinResult(trip.id, already_member=True, role=Role.OWNER)
        existing = await self.get_permission(db, trip.id, user_id)
        if existing is not None:
            return JoinResult(trip.id, already_member=True, role=_as_role(existing.role))

        db.add(TripPermission(
            trip_id=trip.id,
            user_id=user_id,
            role=Role.VIEWER.value,
            granted_via="share_link",
            invited_by=trip.owner_id,
        ))
        await db.commit()
        logger.info(f"User {user_id} joined trip {trip.id} as viewer")
        await trip_events.publish(trip.id, "permissions_changed")
        return JoinResult(trip.id, already_member=False, role=Role.VIEWER)

    # ─── Access management ───

    async def update_permission(
        self,
        db: AsyncSession,
        trip_id: str,
        target_user_id: str,
        new_role: Role | str,
        requester_id: str,
    ) -> TripPermission:
        """
        Change a member's role between collaborator and viewer.

        The owner can change anyone but themselves. A collaborator can only act
        on viewer rows (promoting them), never on other collaborators.
        """
        role = _as_role(new_role)
        if role not in GRANTABLE_ROLES:
            raise InvalidRequestError("Role must be 'collaborator' or 'viewer'")

        trip, requester_role = await self.require_edit(
            db, trip_id, requester_id, "You don't have permission to manage access for this trip"
        )
        if target_user_id == trip.owner_id:
            raise UnauthorizedError("The owner's role cannot be changed")

        permission = await self.get_permission(db, trip_id, target_user_id)
        if permission is None:
            raise NotFoundError("User does not have access to this trip")
        if requester_role == Role.COLLABORATOR and permission.role != Role.VIEWER.value:
            raise UnauthorizedError("Only the trip owner can change a collaborator's role")

        permission.role = role.value
        permission.granted_via = "upgraded"
        permission.invited_by = requester_id
        await db.commit()
        logger.info(f"User {requester_id} set {target_user_id} to {role.value} on trip {trip_id}")
        await trip_events.publish(trip_id, "permissions_changed")
        return permission

    async def remove_access(
        self, db: AsyncSession, trip_id: str, target_user_id: str, requester_id: str
    ) -> None:
        trip, _ = await self.require_owner(
            db, trip_id, requester_id, "Only the trip owner can remove access"
        )
        if target_user_id == trip.owner_id:
            raise UnauthorizedError("The owner cannot be removed from their own trip")

        permission = await self.get_permission(db, trip_id, target_user_id)
        if permission is None:
            raise NotFoundError("User does not have access to this trip")

        await db.delete(permission)
        await db.commit()
        logger.info(f"Removed {target_user_id} from trip {trip_id}")
        await trip_events.publish(trip_id, "permissions_changed")

    async def list_permissions(self, db: AsyncSession, trip_id: str, requester_id: str) -> list[dict]:
        """Members of a trip with their display details, oldest first."""
        await self.require_view(db, trip_id, requester_id)
        result = await db.execute(
            select(TripPermission, User)
            .outerjoin(User, User.id == TripPermission.user_id)
            .where(TripPermission.trip_id == trip_id)
            .order_by(TripPermission.created_at)
        )
        members = []
        for permission, user in result.all():
            members.append({
                "id": permission.id,
                "user_id": permission.user_id,
                "role": permission.role,
                "granted_via": permission.granted_via,
                "invited_by": permission.invited_by,
                "accepted_at": permission.accepted_at,
                "user": {
                    "name": user.name,
                    "email": user.email,
                    "image_url": user.image_url,
                } if user else None,
            })
        return members

    async def shared_trips(self, db: AsyncSession, user_id: str) -> list[tuple[Trip, Role]]:
        """Trips other people own that `user_id` has been granted access to."""
        result = await db.execute(
            select(Trip, TripPermission.role)
            .join(TripPermission, TripPermission.trip_id == Trip.id)
            .where(
                TripPermission.user_id == user_id,
                Trip.owner_id != user_id,
            )
            .order_by(Trip.created_at.desc())
        )
        return [(trip, _as_role(role)) for trip, role in result.all()]


permission_service = PermissionService()
