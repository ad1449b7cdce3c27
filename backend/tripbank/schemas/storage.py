from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class StorageUsageResponse(BaseModel):
    used_bytes: int
    limit_bytes: int
    tier: str
    percent_used: float
    remaining_bytes: int
    is_at_limit: bool


class UploadCheckRequest(BaseModel):
    file_size: int = Field(ge=0)


class UploadCheckResponse(BaseModel):
    can_upload: bool
    reason: str | None = None
    remaining_bytes: int | None = None
    upgrade: bool = False


class RecalculateResponse(BaseModel):
    total_bytes: int
    media_item_count: int


class SubscriptionUpdateRequest(BaseModel):
    tier: Literal["free", "pro"]
    expires_at: datetime | None = None
    revenuecat_user_id: str | None = None


class SubscriptionResponse(BaseModel):
    tier: str
    expires_at: datetime | None = None
    is_expired: bool
    storage_limit: int


# ─── Files ───


class UploadSlotResponse(BaseModel):
    upload_url: str
    token: str
    expires_at: datetime


class UploadResponse(BaseModel):
    storage_id: str
    size: int


class FileUrlResponse(BaseModel):
    url: str
