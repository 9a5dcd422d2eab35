import asyncio
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from backend import RedisGateway
from broadcaster import Connection, MessageBroadcaster
from constants import ANONYMOUS_SENDER, INBOUND_QUEUE_SIZE, MAX_MESSAGE_LENGTH, MAX_ROOM_NAME_LENGTH
from exceptions import PersistenceError, ValidationError
from logging_config import get_logger
from registry import RoomRegistry
from schemas.events import ChatMessageEvent, JoinEvent, LeaveEvent, inbound_event_adapter
from schemas.messages import ChatMessage

logger = get_logger(__name__)


class ChatSession:
    """Protocol handler for one chat socket.

    Frames are queued by the socket reader with ``submit`` and handled one at a
    time by the session's worker, so events from one connection are processed
    in arrival order while other connections run concurrently.
    """

    def __init__(
        self,
        connection: Connection,
        registry: RoomRegistry,
        broadcaster: MessageBroadcaster,
        gateway: RedisGateway,
        display_name: Optional[str] = None,
        anonymous_sender: str = ANONYMOUS_SENDER,
        max_inbox: int = INBOUND_QUEUE_SIZE,
    ):
        self.connection = connection
        self.registry = registry
        self.broadcaster = broadcaster
        self.gateway = gateway
        self.display_name = display_name.strip() if display_name and display_name.strip() else None
        self.anonymous_sender = anonymous_sender
        self.disconnected = False
        self._inbox: asyncio.Queue = asyncio.Queue(maxsize=max_inbox)
        self._worker: Optional[asyncio.Task] = None

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    async def open(self) -> None:
        self.registry.attach(self.connection)
        self.connection.start()
        self.connection.deliver({
            "type": "system",
            "message": "Connected",
            "connection_id": self.connection_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        self._worker = asyncio.create_task(self._run())
        logger.info(f"Session opened for connection {self.connection_id}")

    async def submit(self, raw: str) -> None:
        """Queue a frame for the worker, waiting while the inbox is full."""
        if self.disconnected:
            logger.debug(f"Dropping frame for disconnected connection {self.connection_id}")
            return
        await self._inbox.put(raw)

    async def close(self) -> None:
        """Handle the disconnect as the connection's last event.

        Already queued events are still processed (a queued chat message is
        persisted and broadcast), then every membership is dropped and the
        writer is flushed and stopped.
        """
        if self._worker is not None and not self._worker.done():
            await self._inbox.put(None)
            await self._worker
        self.on_disconnect()
        await self.connection.close()

    async def _run(self) -> None:
        while True:
            raw = await self._inbox.get()
            if raw is None:
                break
            await self.handle_frame(raw)

    async def handle_frame(self, raw: str) -> None:
        try:
            event = self._parse(raw)
            if isinstance(event, JoinEvent):
                self.on_join(event.room)
            elif isinstance(event, LeaveEvent):
                self.on_leave(event.room)
            elif isinstance(event, ChatMessageEvent):
                await self.on_chat_message(event.room, event.content, event.sender)
        except ValidationError as e:
            logger.info(f"Rejected event from connection {self.connection_id}: {e}")
            self._report("validation_error", str(e))
        except PersistenceError as e:
            logger.warning(f"Message from connection {self.connection_id} not persisted: {e}")
            self._report("persistence_error", "Message could not be saved")
        except Exception as e:
            logger.error(f"Error handling event from connection {self.connection_id}: {e}", exc_info=True)
            self._report("internal_error", "Internal error")

    def on_join(self, room: str) -> bool:
        room = self._validate_room(room)
        if self.disconnected:
            logger.debug(f"Ignoring join of {room} from disconnected connection {self.connection_id}")
            return False
        joined = self.registry.join(self.connection_id, room)
        self.connection.deliver({
            "type": "joined",
            "room": room,
            "online_count": self.registry.online_count(room),
        })
        return joined

    def on_leave(self, room: str) -> bool:
        room = self._validate_room(room)
        left = self.registry.leave(self.connection_id, room)
        self.connection.deliver({"type": "left", "room": room})
        return left

    async def on_chat_message(self, room: str, content: Optional[str], sender: Optional[str] = None) -> ChatMessage:
        """Persist a chat message, then broadcast it to the room.

        Nothing is broadcast if the write fails; the PersistenceError propagates
        to the caller.
        """
        room = self._validate_room(room)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message content exceeds {MAX_MESSAGE_LENGTH} characters")
        sender_name, anonymous = self._resolve_sender(sender)

        loop = asyncio.get_running_loop()
        async with self.broadcaster.room_lock(room):
            message = ChatMessage(
                room=room,
                sender=sender_name,
                anonymous=anonymous,
                content=content,
                created_at=datetime.now(timezone.utc),
            )
            message_id = await loop.run_in_executor(None, self.gateway.insert_message, message)
            message = message.model_copy(update={"id": message_id})
            self.broadcaster.broadcast(room, {"type": "chat_message", **message.model_dump(mode="json")})
        return message

    def on_disconnect(self) -> None:
        if self.disconnected:
            return
        self.disconnected = True
        rooms = self.registry.leave_all(self.connection_id)
        logger.info(f"Connection {self.connection_id} disconnected (left {len(rooms)} rooms)")

    def _parse(self, raw: str):
        try:
            return inbound_event_adapter.validate_json(raw)
        except PydanticValidationError as e:
            errors = e.errors()
            detail = errors[0]["msg"] if errors else "Malformed event"
            raise ValidationError(f"Malformed event: {detail}") from e

    def _validate_room(self, room: str) -> str:
        if not isinstance(room, str) or not room.strip():
            raise ValidationError("Room name is required")
        room = room.strip()
        if len(room) > MAX_ROOM_NAME_LENGTH:
            raise ValidationError(f"Room name exceeds {MAX_ROOM_NAME_LENGTH} characters")
        return room

    def _resolve_sender(self, sender: Optional[str]) -> Tuple[str, bool]:
        if sender and sender.strip():
            return sender.strip(), False
        if self.display_name:
            return self.display_name, False
        return self.anonymous_sender, True

    def _report(self, code: str, detail: str) -> None:
        self.connection.deliver({"type": "error", "code": code, "detail": detail})
