from datetime import datetime

from pydantic import BaseModel, EmailStr


class SyncUserRequest(BaseModel):
    email: EmailStr | None = None
    name: str | None = None
    image_url: str | None = None


class UserResponse(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    image_url: str | None = None
    storage_used_bytes: int = 0
    subscription_tier: str = "free"
    created_at: datetime

    model_config = {"from_attributes": True}
