from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_actor, get_likes, get_optional_actor
from exceptions import PersistenceError, ValidationError
from logging_config import get_logger
from schemas.toggles import ToggleCountResponse, ToggleResponse
from toggles import ToggleCoordinator

logger = get_logger(__name__)

likes_router = APIRouter(prefix="/api/articles", tags=["likes"])


@likes_router.post("/{article_id}/like", response_model=ToggleResponse)
def toggle_like(
    article_id: str,
    actor_id: str = Depends(get_actor),
    likes: ToggleCoordinator = Depends(get_likes),
):
    try:
        state = likes.toggle(actor_id, article_id)
        count = likes.count_active(article_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Failed to toggle like")
    return ToggleResponse(target_id=state.target_id, active=state.active, count=count)


@likes_router.get("/{article_id}/likes", response_model=ToggleCountResponse)
def get_likes_count(
    article_id: str,
    actor_id: Optional[str] = Depends(get_optional_actor),
    likes: ToggleCoordinator = Depends(get_likes),
):
    try:
        count = likes.count_active(article_id)
        active = likes.is_active(actor_id, article_id) if actor_id else False
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Failed to get likes")
    return ToggleCountResponse(target_id=article_id.strip(), count=count, active=active)
