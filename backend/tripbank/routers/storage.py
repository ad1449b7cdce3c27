from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.storage import (
    RecalculateResponse,
    StorageUsageResponse,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    UploadCheckRequest,
    UploadCheckResponse,
)
from tripbank.services.storage_service import storage_service

router = APIRouter()


@router.get("/usage", response_model=StorageUsageResponse)
async def get_usage(user: User = Depends(get_current_user)):
    return storage_service.get_usage(user)


@router.post("/check", response_model=UploadCheckResponse)
async def check_upload(req: UploadCheckRequest, user: User = Depends(get_current_user)):
    """Ask before uploading whether a file of this size still fits."""
    return storage_service.check_upload(user, req.file_size)


@router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await storage_service.recalculate(db, user.id)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(user: User = Depends(get_current_user)):
    return storage_service.get_subscription(user)


@router.put("/subscription", response_model=SubscriptionResponse)
async def update_subscription(
    req: SubscriptionUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Record the tier after an in-app purchase or renewal."""
    user = await storage_service.update_subscription(
        db, user.id, req.tier, expires_at=req.expires_at, revenuecat_user_id=req.revenuecat_user_id
    )
    return storage_service.get_subscription(user)
