from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ChatMessage(BaseModel):
    id: Optional[str] = None
    room: str
    sender: str
    anonymous: bool = False
    content: str
    created_at: datetime

class ChannelSummary(BaseModel):
    name: str
    online_count: int
