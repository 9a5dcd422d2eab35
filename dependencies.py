from typing import Optional

from fastapi import HTTPException, Request

from backend import RedisGateway
from constants import ACTOR_HEADER
from registry import RoomRegistry
from toggles import ToggleCoordinator


def get_gateway(request: Request) -> RedisGateway:
    return request.app.state.gateway


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_likes(request: Request) -> ToggleCoordinator:
    return request.app.state.likes


def get_optional_actor(request: Request) -> Optional[str]:
    """Verified caller identity from the auth layer, if any. Not re-validated here."""
    actor_id = request.headers.get(ACTOR_HEADER)
    if actor_id and actor_id.strip():
        return actor_id.strip()
    return None


def get_actor(request: Request) -> str:
    actor_id = get_optional_actor(request)
    if actor_id is None:
        raise HTTPException(status_code=401, detail="Missing verified identity")
    return actor_id
