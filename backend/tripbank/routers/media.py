from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.media import CreateMediaRequest, MediaItemResponse, UpdateMediaRequest
from tripbank.schemas.sharing import SuccessResponse
from tripbank.services.media_service import media_service

router = APIRouter()


@router.post("/trips/{trip_id}/media", status_code=201, response_model=MediaItemResponse)
async def add_media_item(
    trip_id: str,
    req: CreateMediaRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Register an uploaded photo or video; charged to the uploader's storage."""
    item = await media_service.add_media_item(db, trip_id, user.id, req)
    return MediaItemResponse.model_validate(item)


@router.get("/trips/{trip_id}/media", response_model=list[MediaItemResponse])
async def list_media(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    items = await media_service.list_media(db, trip_id, user.id)
    return [MediaItemResponse.model_validate(i) for i in items]


@router.patch("/media/{media_item_id}", response_model=MediaItemResponse)
async def update_media_item(
    media_item_id: str,
    req: UpdateMediaRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    item = await media_service.update_media_item(db, media_item_id, user.id, req)
    return MediaItemResponse.model_validate(item)


@router.delete("/media/{media_item_id}", response_model=SuccessResponse)
async def delete_media_item(
    media_item_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await media_service.delete_media_item(db, media_item_id, user.id)
    return SuccessResponse()
