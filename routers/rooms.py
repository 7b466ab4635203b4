from fastapi import APIRouter, Depends, Request

from logging_config import get_logger
from registry import RoomRegistry
from schemas.rooms import RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


@rooms_router.get("/{room}", response_model=RoomDetailsResponse)
async def get_room_details(room: str, registry: RoomRegistry = Depends(get_registry)):
    """
    Get the current members of a room.

    Unknown rooms are reported as empty rather than 404: a room only exists
    while someone is in it.
    """
    members = registry.members_of(room)
    logger.debug(f"Room details for {room}: {len(members)} members")
    return RoomDetailsResponse(
        room=room,
        member_count=len(members),
        members=sorted(connection.user_id for connection in members),
    )
