"""Sharing router — share links, joining and per-trip access management."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.sharing import (
    JoinRequest,
    JoinResponse,
    PermissionResponse,
    ShareLinkResponse,
    SuccessResponse,
    UpdatePermissionRequest,
)
from tripbank.services.permission_service import permission_service

router = APIRouter()


# ─── Share links ───

@router.post("/trips/{trip_id}/share-link", response_model=ShareLinkResponse)
async def generate_share_link(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create (or return the existing) slug and code for a trip. Owner only."""
    link = await permission_service.generate_share_link(db, trip_id, user.id)
    return ShareLinkResponse(
        share_slug=link.share_slug,
        share_code=link.share_code,
        url=link.url,
        share_link_enabled=link.share_link_enabled,
    )


@router.delete("/trips/{trip_id}/share-link", response_model=SuccessResponse)
async def disable_share_link(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await permission_service.disable_share_link(db, trip_id, user.id)
    return SuccessResponse()


@router.post("/join", response_model=JoinResponse)
async def join_trip(
    req: JoinRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Join a shared trip as a viewer using its link slug or share code."""
    result = await permission_service.join_via_link(db, req.slug_or_code, user.id)
    return JoinResponse(trip_id=result.trip_id, already_member=result.already_member, role=result.role.value)


# ─── Permissions ───

@router.get("/trips/{trip_id}/permissions", response_model=list[PermissionResponse])
async def list_permissions(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await permission_service.list_permissions(db, trip_id, user.id)


@router.patch("/trips/{trip_id}/permissions/{user_id}", response_model=SuccessResponse)
async def update_permission(
    trip_id: str,
    user_id: str,
    req: UpdatePermissionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await permission_service.update_permission(db, trip_id, user_id, req.new_role, user.id)
    return SuccessResponse()


@router.delete("/trips/{trip_id}/permissions/{user_id}", response_model=SuccessResponse)
async def remove_access(
    trip_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await permission_service.remove_access(db, trip_id, user_id, user.id)
    return SuccessResponse()
