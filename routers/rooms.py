from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from errors import InvalidCredential
from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(
    room_id: str,
    request: Request,
    credential: Optional[str] = Query(None, description="Shared signaling credential"),
):
    """
    Get room details for a live room.

    Returns:
    - room_id: Room key chosen by the first joiner
    - created_at: Room creation timestamp (ISO, UTC)
    - max_users: Effective room capacity
    - online_users_count: Current number of members
    - users: Member identities in join order
    - is_full: Whether the room has reached its capacity
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room details request for {room_id} from {client_host}")

    engine = request.app.state.engine
    try:
        engine.check_credential(credential)
    except InvalidCredential:
        logger.warning(f"Room details failed: Invalid credential for room {room_id} from {client_host}")
        raise HTTPException(status_code=401, detail="Invalid credential")

    room = engine.directory.get(room_id)
    if room is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room_id=room.room_id,
        created_at=datetime.fromtimestamp(room.created_at, tz=timezone.utc).isoformat(),
        max_users=room.capacity,
        online_users_count=len(room),
        users=room.members(),
        is_full=room.is_full,
    )
