from datetime import date, datetime

from pydantic import BaseModel, Field

from tripbank.schemas.media import MediaItemResponse
from tripbank.schemas.moment import MomentResponse


class CreateTripRequest(BaseModel):
    id: str | None = None
    title: str = Field(min_length=1, max_length=255)
    start_date: date
    end_date: date
    cover_image_name: str | None = None
    cover_image_storage_id: str | None = None


class UpdateTripRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    start_date: date | None = None
    end_date: date | None = None
    cover_image_name: str | None = None
    cover_image_storage_id: str | None = None
    preview_image_storage_id: str | None = None


class TripResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    start_date: date
    end_date: date
    cover_image_name: str | None = None
    cover_image_storage_id: str | None = None
    preview_image_storage_id: str | None = None
    share_slug: str | None = None
    share_code: str | None = None
    share_link_enabled: bool = False
    created_at: datetime
    updated_at: datetime
    user_role: str | None = None

    model_config = {"from_attributes": True}


class TripDetailResponse(BaseModel):
    trip: TripResponse
    moments: list[MomentResponse]
    media_items: list[MediaItemResponse]


# ─── Public preview (read-only web view) ───


class PreviewMoment(BaseModel):
    moment_id: str
    title: str
    grid_position: dict
    media_count: int
    media_urls: list[str | None]


class PreviewTrip(BaseModel):
    trip_id: str
    title: str
    start_date: date
    end_date: date
    share_slug: str | None = None
    share_code: str | None = None
    cover_image_url: str | None = None
    preview_image_url: str | None = None


class PublicPreviewResponse(BaseModel):
    trip: PreviewTrip
    moments: list[PreviewMoment]
    total_moments: int
