from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter


class JoinEvent(BaseModel):
    type: Literal["join"]
    room: str

class LeaveEvent(BaseModel):
    type: Literal["leave"]
    room: str

class ChatMessageEvent(BaseModel):
    type: Literal["chat_message"]
    room: str
    # "message" is what older clients send
    content: Optional[str] = Field(default=None, validation_alias=AliasChoices("content", "message"))
    sender: Optional[str] = None


InboundEvent = Annotated[Union[JoinEvent, LeaveEvent, ChatMessageEvent], Field(discriminator="type")]

inbound_event_adapter = TypeAdapter(InboundEvent)
