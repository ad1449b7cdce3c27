"""Live router — pushes fresh trip snapshots to connected canvases."""

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from tripbank.database import get_db
from tripbank.dependencies import decode_access_token
from tripbank.errors import TripBankError
from tripbank.schemas.media import MediaItemResponse
from tripbank.schemas.moment import MomentResponse
from tripbank.schemas.trip import TripResponse
from tripbank.services.realtime import trip_events
from tripbank.services.trip_service import trip_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _snapshot(db: AsyncSession, trip_id: str, user_id: str) -> dict:
    db.expire_all()
    snapshot = await trip_service.get_trip(db, trip_id, user_id)
    trip = TripResponse.model_validate(snapshot.trip)
    trip.user_role = snapshot.role.value
    return {
        "event": "snapshot",
        "trip": trip.model_dump(mode="json"),
        "moments": [MomentResponse.model_validate(m).model_dump(mode="json") for m in snapshot.moments],
        "media_items": [MediaItemResponse.model_validate(m).model_dump(mode="json") for m in snapshot.media_items],
    }


@router.websocket("/trips/{trip_id}/live")
async def trip_live(websocket: WebSocket, trip_id: str, token: str = "", db: AsyncSession = Depends(get_db)):
    """
    Send the trip snapshot on connect, then again after every committed change.

    Authenticates with `?token=`; closes with 1008 when the caller may not
    view the trip and 1013 when live updates are unavailable.
    """
    try:
        user_id = decode_access_token(token)["sub"]
        first = await _snapshot(db, trip_id, user_id)
    except (HTTPException, TripBankError) as e:
        logger.info(f"Live connection to trip {trip_id} refused: {getattr(e, 'detail', e)}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await websocket.send_json(first)
    try:
        async for event in trip_events.listen(trip_id):
            if event.get("event") == "trip_deleted":
                await websocket.send_json({"event": "trip_deleted", "trip_id": trip_id})
                await websocket.close()
                return
            try:
                await websocket.send_json(await _snapshot(db, trip_id, user_id))
            except TripBankError as e:
                # Access was revoked or the trip vanished between events.
                await websocket.send_json({"event": "access_lost", "detail": e.detail})
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
    except WebSocketDisconnect:
        logger.debug(f"Live client left trip {trip_id}")
        return
    await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
