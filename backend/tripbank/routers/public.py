from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.schemas.trip import PublicPreviewResponse
from tripbank.services.trip_service import trip_service

router = APIRouter()


@router.get("/trips/{slug_or_code}", response_model=PublicPreviewResponse)
async def get_public_preview(slug_or_code: str, db: AsyncSession = Depends(get_db)):
    """Unauthenticated read-only preview of a trip whose share link is enabled."""
    return await trip_service.get_public_preview(db, slug_or_code)
