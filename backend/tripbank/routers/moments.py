"""Moments router — moment CRUD and canvas grid positions."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import User
from tripbank.schemas.grid import BatchGridUpdateRequest, BatchGridUpdateResponse, GridPositionModel
from tripbank.schemas.moment import CreateMomentRequest, MomentResponse, UpdateMomentRequest
from tripbank.schemas.sharing import SuccessResponse
from tripbank.services.moment_service import moment_service

router = APIRouter()


# ─── Per trip ───

@router.post("/trips/{trip_id}/moments", status_code=201, response_model=MomentResponse)
async def add_moment(
    trip_id: str,
    req: CreateMomentRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add a moment; without grid_position it is placed in the first free slot."""
    moment = await moment_service.add_moment(db, trip_id, user.id, req)
    return MomentResponse.model_validate(moment)


@router.get("/trips/{trip_id}/moments", response_model=list[MomentResponse])
async def list_moments(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    moments = await moment_service.list_moments(db, trip_id, user.id)
    return [MomentResponse.model_validate(m) for m in moments]


# ─── Grid positions ───
# Declared before /moments/{moment_id} so "grid-positions" is not read as an id.

@router.put("/moments/grid-positions", response_model=BatchGridUpdateResponse)
async def batch_update_grid_positions(
    req: BatchGridUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Save a whole reflow at once; nothing is written unless every update is allowed."""
    updated = await moment_service.batch_update_grid_positions(
        db, user.id, [(u.moment_id, u.grid_position.to_position()) for u in req.updates]
    )
    return BatchGridUpdateResponse(updated=updated)


@router.put("/moments/{moment_id}/grid-position", response_model=MomentResponse)
async def update_grid_position(
    moment_id: str,
    req: GridPositionModel,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    moment = await moment_service.update_grid_position(db, moment_id, user.id, req.to_position())
    return MomentResponse.model_validate(moment)


# ─── Per moment ───

@router.patch("/moments/{moment_id}", response_model=MomentResponse)
async def update_moment(
    moment_id: str,
    req: UpdateMomentRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    moment = await moment_service.update_moment(db, moment_id, user.id, req)
    return MomentResponse.model_validate(moment)


@router.delete("/moments/{moment_id}", response_model=SuccessResponse)
async def delete_moment(
    moment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await moment_service.delete_moment(db, moment_id, user.id)
    return SuccessResponse()
