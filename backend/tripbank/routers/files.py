"""Files router — upload slots and stored file access."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.storage import FileUrlResponse, UploadResponse, UploadSlotResponse
from tripbank.services.object_storage import object_storage

router = APIRouter()


@router.post("/upload-url", response_model=UploadSlotResponse)
async def generate_upload_url(user: User = Depends(get_current_user)):
    slot = object_storage.request_upload_slot(user.id)
    return UploadSlotResponse(upload_url=slot.upload_url, token=slot.token, expires_at=slot.expires_at)


@router.post("/upload/{token}", response_model=UploadResponse)
async def upload_file(token: str, request: Request, db: AsyncSession = Depends(get_db)):
    """Raw request body is stored as-is; the signed token stands in for auth and works once."""
    data = await request.body()
    stored = await object_storage.put_bytes(db, token, data)
    return UploadResponse(storage_id=stored.id, size=stored.size)


@router.get("/{storage_id}/url", response_model=FileUrlResponse)
async def get_file_url(storage_id: str, user: User = Depends(get_current_user)):
    url = object_storage.get_url(storage_id)
    if url is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileUrlResponse(url=url)


@router.get("/{storage_id}")
async def get_file(storage_id: str):
    path = object_storage.path_for(storage_id)
    if path is None or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)
