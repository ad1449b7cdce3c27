from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ShareLinkResponse(BaseModel):
    share_slug: str
    share_code: str
    url: str
    share_link_enabled: bool = True


class JoinRequest(BaseModel):
    slug_or_code: str = Field(min_length=1, max_length=64)


class JoinResponse(BaseModel):
    trip_id: str
    already_member: bool
    role: str


class UpdatePermissionRequest(BaseModel):
    new_role: Literal["collaborator", "viewer"]


class PermissionUser(BaseModel):
    name: str | None = None
    email: str | None = None
    image_url: str | None = None


class PermissionResponse(BaseModel):
    id: str
    user_id: str
    role: str
    granted_via: str
    invited_by: str
    accepted_at: datetime
    user: PermissionUser | None = None


class SuccessResponse(BaseModel):
    success: bool = True
