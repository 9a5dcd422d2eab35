import threading
from typing import Dict, Optional, Set

from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """Process-local room membership.

    Format: {room: {connection_id}} plus the reverse index
    {connection_id: {room}}. Nothing here survives a restart; clients
    re-join after reconnecting.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._members: Dict[str, Set[str]] = {}
        self._rooms_by_connection: Dict[str, Set[str]] = {}
        # connection_id -> delivery handle (broadcaster.Connection)
        self._connections: Dict[str, object] = {}

    def attach(self, connection) -> None:
        with self._lock:
            self._connections[connection.connection_id] = connection
        logger.debug(f"Attached connection {connection.connection_id}")

    def connection(self, connection_id: str) -> Optional[object]:
        with self._lock:
            return self._connections.get(connection_id)

    def join(self, connection_id: str, room: str) -> bool:
        """Add ``connection_id`` to ``room``. Returns False if it was already a member."""
        with self._lock:
            members = self._members.setdefault(room, set())
            if connection_id in members:
                return False
            members.add(connection_id)
            self._rooms_by_connection.setdefault(connection_id, set()).add(room)
            count = len(members)
        logger.info(f"Connection {connection_id} joined room {room} (members: {count})")
        return True

    def leave(self, connection_id: str, room: str) -> bool:
        with self._lock:
            members = self._members.get(room)
            if not members or connection_id not in members:
                return False
            self._remove(connection_id, room)
        logger.info(f"Connection {connection_id} left room {room}")
        return True

    def leave_all(self, connection_id: str) -> Set[str]:
        """Drop every membership of ``connection_id`` and its delivery handle.

        Returns the rooms it was removed from; calling it again returns an empty set.
        """
        with self._lock:
            rooms = set(self._rooms_by_connection.get(connection_id, ()))
            for room in rooms:
                self._remove(connection_id, room)
            self._connections.pop(connection_id, None)
        if rooms:
            logger.info(f"Connection {connection_id} removed from rooms {sorted(rooms)}")
        return rooms

    def members_of(self, room: str) -> Set[str]:
        with self._lock:
            return set(self._members.get(room, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        with self._lock:
            return set(self._rooms_by_connection.get(connection_id, ()))

    def online_count(self, room: str) -> int:
        with self._lock:
            return len(self._members.get(room, ()))

    def _remove(self, connection_id: str, room: str) -> None:
        # caller holds the lock
        members = self._members.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._members[room]
        joined = self._rooms_by_connection.get(connection_id)
        if joined is not None:
            joined.discard(room)
            if not joined:
                del self._rooms_by_connection[connection_id]
