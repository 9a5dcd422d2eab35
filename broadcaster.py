import asyncio
import json
import weakref
from typing import Awaitable, Callable, Optional

from logging_config import get_logger
from registry import RoomRegistry

logger = get_logger(__name__)


class Connection:
    """Delivery handle for one live socket.

    Frames are queued and written by a dedicated task, so a slow socket only
    backs up its own queue. Once the queue is full, further frames for this
    connection are dropped.
    """

    def __init__(self, connection_id: str, send_text: Callable[[str], Awaitable[None]], max_pending: int = 256):
        self.connection_id = connection_id
        self._send_text = send_text
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None
        self.closed = False

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def deliver(self, payload: dict) -> bool:
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(json.dumps(payload))
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for connection {self.connection_id}, dropping frame")
            return False
        return True

    async def close(self) -> None:
        """Flush queued frames and stop the writer. Idempotent."""
        if self.closed:
            return
        self.closed = True
        if self._writer is None:
            return
        try:
            self._outbox.put_nowait(None)
        except asyncio.QueueFull:
            self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            logger.debug(f"Writer for connection {self.connection_id} cancelled with frames pending")

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                break
            try:
                await self._send_text(frame)
            except Exception as e:
                logger.warning(f"Error sending to connection {self.connection_id}: {e}")
                self.closed = True
                break


class MessageBroadcaster:
    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self._room_locks = weakref.WeakValueDictionary()

    def room_lock(self, room: str) -> asyncio.Lock:
        """Lock serialising persist-then-broadcast for ``room``."""
        lock = self._room_locks.get(room)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[room] = lock
        return lock

    def broadcast(self, room: str, payload: dict) -> int:
        """Queue ``payload`` for every current member of ``room``.

        Never waits on a socket. Returns how many connections accepted the frame.
        """
        members = self.registry.members_of(room)
        delivered = 0
        for connection_id in members:
            connection = self.registry.connection(connection_id)
            if connection is None:
                logger.debug(f"No delivery handle for connection {connection_id} in room {room}")
                continue
            if connection.deliver(payload):
                delivered += 1
        logger.debug(f"Broadcast to {delivered}/{len(members)} connections in room {room}")
        return delivered
