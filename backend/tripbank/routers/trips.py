"""Trips router — trip CRUD and the full trip snapshot."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import get_current_user
from tripbank.models import Trip, User
from tripbank.schemas.media import MediaItemResponse
from tripbank.schemas.moment import MomentResponse
from tripbank.schemas.sharing import SuccessResponse
from tripbank.schemas.trip import CreateTripRequest, TripDetailResponse, TripResponse, UpdateTripRequest
from tripbank.services.permission_service import Role, permission_service
from tripbank.services.trip_service import trip_service

router = APIRouter()


def _trip_response(trip: Trip, role: Role) -> TripResponse:
    response = TripResponse.model_validate(trip)
    response.user_role = role.value
    return response


@router.post("", status_code=201, response_model=TripResponse)
async def create_trip(
    req: CreateTripRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    trip = await trip_service.create_trip(db, user.id, req)
    return _trip_response(trip, Role.OWNER)


@router.get("", response_model=list[TripResponse])
async def list_trips(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Trips the current user owns, newest first."""
    trips = await trip_service.list_trips(db, user.id)
    return [_trip_response(trip, Role.OWNER) for trip in trips]


@router.get("/shared", response_model=list[TripResponse])
async def list_shared_trips(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Trips shared with the current user by other owners."""
    shared = await permission_service.shared_trips(db, user.id)
    return [_trip_response(trip, role) for trip, role in shared]


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    snapshot = await trip_service.get_trip(db, trip_id, user.id)
    return TripDetailResponse(
        trip=_trip_response(snapshot.trip, snapshot.role),
        moments=[MomentResponse.model_validate(m) for m in snapshot.moments],
        media_items=[MediaItemResponse.model_validate(m) for m in snapshot.media_items],
    )


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    trip_id: str,
    req: UpdateTripRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    trip = await trip_service.update_trip(db, trip_id, user.id, req)
    role = await permission_service.resolve_role(db, trip_id, user.id, trip=trip)
    return _trip_response(trip, role)


@router.delete("/{trip_id}", response_model=SuccessResponse)
async def delete_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete a trip with its moments, media, stored files and permissions (owner only)."""
    await trip_service.delete_trip(db, trip_id, user.id)
    return SuccessResponse()
