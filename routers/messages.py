from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from backend import RedisGateway
from constants import HISTORY_LIMIT
from dependencies import get_gateway, get_registry
from exceptions import PersistenceError
from logging_config import get_logger
from registry import RoomRegistry
from schemas.messages import ChannelSummary, ChatMessage

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/api", tags=["messages"])


@messages_router.get("/messages/{room}", response_model=List[ChatMessage])
def get_history(
    room: str,
    limit: Optional[int] = Query(None, ge=1, le=HISTORY_LIMIT, description="Return only the newest messages"),
    gateway: RedisGateway = Depends(get_gateway),
):
    """Persisted messages of a room, oldest first."""
    room = room.strip()
    if not room:
        raise HTTPException(status_code=400, detail="Room name is required")
    try:
        messages = gateway.query_messages(room, limit=limit)
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Failed to load messages")
    logger.debug(f"History for room {room}: {len(messages)} messages")
    return messages


@messages_router.get("/channels", response_model=List[ChannelSummary])
def list_channels(
    gateway: RedisGateway = Depends(get_gateway),
    registry: RoomRegistry = Depends(get_registry),
):
    try:
        rooms = gateway.list_rooms()
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Failed to load channels")
    return [ChannelSummary(name=room, online_count=registry.online_count(room)) for room in rooms]
