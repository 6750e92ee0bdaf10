"""Room REST API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from radio.errors import RoomNotFound
from radio.service import RadioService

from gateway.dependencies import get_service
from gateway.models import GetRoomResponse, ListRoomsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.get("", response_model=ListRoomsResponse)
async def list_rooms(service: RadioService = Depends(get_service)) -> ListRoomsResponse:
    """List the fixed room catalog with live member counts."""
    return ListRoomsResponse(rooms=service.rooms_snapshot().rooms)


@router.get("/{room_id}", response_model=GetRoomResponse)
async def get_room(room_id: str, service: RadioService = Depends(get_service)) -> GetRoomResponse:
    """Get one room, its members and the current speaker.

    Legacy aliases resolve to the canonical room.
    """
    try:
        room, users, speaker = service.room_detail(room_id)
    except RoomNotFound as e:
        logger.info("Room lookup failed: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message)
    return GetRoomResponse(room=room, users=users, current_speaker=speaker)
