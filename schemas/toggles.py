from datetime import datetime

from pydantic import BaseModel


class ToggleRelationship(BaseModel):
    id: str
    kind: str
    actor_id: str
    target_id: str
    created_at: datetime

class ToggleState(BaseModel):
    actor_id: str
    target_id: str
    active: bool

class ToggleResponse(BaseModel):
    target_id: str
    active: bool
    count: int

class ToggleCountResponse(BaseModel):
    target_id: str
    count: int
    active: bool = False
