from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CreateMediaRequest(BaseModel):
    id: str | None = None
    type: Literal["photo", "video"] = "photo"
    storage_id: str | None = None
    thumbnail_storage_id: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    capture_date: datetime | None = None
    note: str | None = None
    timestamp: datetime
    file_size: int | None = Field(None, ge=0)
    thumbnail_size: int | None = Field(None, ge=0)


class UpdateMediaRequest(BaseModel):
    note: str | None = None
    capture_date: datetime | None = None


class MediaItemResponse(BaseModel):
    id: str
    trip_id: str
    user_id: str
    type: str
    storage_id: str | None = None
    thumbnail_storage_id: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    capture_date: datetime | None = None
    note: str | None = None
    timestamp: datetime
    file_size: int | None = None
    thumbnail_size: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
