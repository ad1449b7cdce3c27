from datetime import datetime

from pydantic import BaseModel, Field

from tripbank.schemas.grid import GridPositionModel, GridSizeModel


class CreateMomentRequest(BaseModel):
    id: str | None = None
    title: str = Field(min_length=1, max_length=255)
    note: str | None = None
    media_item_ids: list[str] = []
    timestamp: datetime
    date: datetime | None = None
    place_name: str | None = None
    event_name: str | None = None
    voice_note_url: str | None = None
    # Omit to let the server pick the first free slot for `size`
    grid_position: GridPositionModel | None = None
    size: GridSizeModel | None = None


class UpdateMomentRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    note: str | None = None
    media_item_ids: list[str] | None = None
    date: datetime | None = None
    place_name: str | None = None
    event_name: str | None = None


class MomentResponse(BaseModel):
    id: str
    trip_id: str
    user_id: str
    title: str
    note: str | None = None
    media_item_ids: list[str]
    timestamp: datetime
    date: datetime | None = None
    place_name: str | None = None
    event_name: str | None = None
    voice_note_url: str | None = None
    grid_position: GridPositionModel
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
