from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.auth import SyncUserRequest, UserResponse

router = APIRouter()


@router.post("/sync", response_model=UserResponse)
async def sync_user(
    req: SyncUserRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Refresh profile details from the identity provider after sign-in."""
    for field, value in req.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    await db.commit()
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)
