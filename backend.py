import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

import redis

from constants import REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT
from exceptions import PersistenceError
from logging_config import get_logger
from redis_keys import (
    MESSAGE_ID_WIDTH,
    REDIS_MESSAGE_KEY,
    REDIS_MESSAGE_SEQ_KEY,
    REDIS_ROOM_MESSAGES_KEY,
    REDIS_ROOMS_KEY,
    REDIS_TOGGLE_PAIR_KEY,
    REDIS_TOGGLE_ROW_KEY,
    REDIS_TOGGLE_TARGET_KEY,
)
from schemas.messages import ChatMessage
from schemas.toggles import ToggleRelationship

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    client = redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        password=REDIS_PASSWORD,
        db=REDIS_DB,
        decode_responses=True,
    )
    try:
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
    except redis.RedisError as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise
    return client


@contextmanager
def _store_call(operation: str):
    try:
        yield
    except redis.RedisError as e:
        logger.error(f"Redis {operation} failed: {e}", exc_info=True)
        raise PersistenceError(operation, e) from e


def _key_part(value) -> str:
    # ids are caller supplied and may contain the ":" key separator
    return quote(str(value), safe="")


def _room_key(room: str) -> str:
    return REDIS_ROOM_MESSAGES_KEY.format(room=_key_part(room))


def _pair_key(kind: str, actor_id: str, target_id: str) -> str:
    return REDIS_TOGGLE_PAIR_KEY.format(
        kind=_key_part(kind), actor_id=_key_part(actor_id), target_id=_key_part(target_id)
    )


def _row_key(kind: str, toggle_id: str) -> str:
    return REDIS_TOGGLE_ROW_KEY.format(kind=_key_part(kind), toggle_id=_key_part(toggle_id))


def _target_key(kind: str, target_id: str) -> str:
    return REDIS_TOGGLE_TARGET_KEY.format(kind=_key_part(kind), target_id=_key_part(target_id))


class RedisGateway:
    """Durable store for chat history and toggle relationships.

    The client is synchronous; callers on the event loop should run these
    methods in an executor or a threadpool route.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def ping(self) -> bool:
        with _store_call("ping"):
            return bool(self.redis_client.ping())

    # Messages

    def insert_message(self, message: ChatMessage) -> str:
        """Persist ``message`` and return its id. The room is registered as a side effect."""
        with _store_call("insert_message"):
            seq = self.redis_client.incr(REDIS_MESSAGE_SEQ_KEY)
            message_id = str(seq)
            record = message.model_copy(update={"id": message_id})

            pipe = self.redis_client.pipeline(transaction=True)
            pipe.set(REDIS_MESSAGE_KEY.format(message_id=message_id), record.model_dump_json())
            pipe.zadd(
                _room_key(message.room),
                {str(seq).zfill(MESSAGE_ID_WIDTH): message.created_at.timestamp()},
            )
            pipe.sadd(REDIS_ROOMS_KEY, message.room)
            pipe.execute()
        logger.debug(f"Stored message {message_id} in room {message.room}")
        return message_id

    def query_messages(self, room: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Messages of ``room`` ordered by created_at, oldest first.

        With ``limit`` only the newest ``limit`` messages are returned, still oldest first.
        """
        index_key = _room_key(room)
        with _store_call("query_messages"):
            if limit is None:
                ids = self.redis_client.zrange(index_key, 0, -1)
            elif limit <= 0:
                return []
            else:
                ids = self.redis_client.zrange(index_key, -limit, -1)
            if not ids:
                return []
            raw = self.redis_client.mget(
                [REDIS_MESSAGE_KEY.format(message_id=int(i)) for i in ids]
            )

        messages = []
        for message_id, value in zip(ids, raw):
            if value is None:
                logger.warning(f"Message {message_id} indexed in room {room} has no record")
                continue
            messages.append(ChatMessage.model_validate_json(value))
        return messages

    def list_rooms(self) -> List[str]:
        with _store_call("list_rooms"):
            return sorted(self.redis_client.smembers(REDIS_ROOMS_KEY))

    # Toggle relationships
    def find_toggle(self, kind: str, actor_id: str, target_id: str) -> Optional[ToggleRelationship]:
        pair_key = _pair_key(kind, actor_id, target_id)
        with _store_call("find_toggle"):
            toggle_id = self.redis_client.get(pair_key)
            if toggle_id is None:
                return None
            value = self.redis_client.get(_row_key(kind, toggle_id))
        if value is None:
            # claimed but not yet written, or deleted between the two reads
            return None
        return ToggleRelationship.model_validate_json(value)

    def insert_toggle(self, kind: str, actor_id: str, target_id: str) -> Optional[ToggleRelationship]:
        """Insert the (actor, target) row if absent.

        The pair key is claimed with SET NX, so at most one row exists per pair.
        The row and its target index entry are then written in one transaction;
        if that fails the claim is released and nothing stays behind.
        Returns ``None`` when a row for the pair already exists.
        """
        relationship = ToggleRelationship(
            id=uuid.uuid4().hex,
            kind=kind,
            actor_id=actor_id,
            target_id=target_id,
            created_at=datetime.now(timezone.utc),
        )
        pair_key = _pair_key(kind, actor_id, target_id)
        with _store_call("insert_toggle"):
            if not self.redis_client.set(pair_key, relationship.id, nx=True):
                logger.debug(f"Toggle {kind} for ({actor_id}, {target_id}) already exists")
                return None
            pipe = self.redis_client.pipeline(transaction=True)
            pipe.set(_row_key(kind, relationship.id), relationship.model_dump_json())
            pipe.sadd(_target_key(kind, target_id), relationship.id)
            try:
                pipe.execute()
            except redis.RedisError:
                self._release_pair(pair_key, relationship.id)
                raise
        return relationship

    def delete_toggle(self, kind: str, toggle_id: str) -> bool:
        """Delete a row by id. Returns ``False`` if it was already gone."""
        row_key = _row_key(kind, toggle_id)
        with _store_call("delete_toggle"):
            value = self.redis_client.get(row_key)
            if value is None:
                return False
            relationship = ToggleRelationship.model_validate_json(value)
            pair_key = _pair_key(kind, relationship.actor_id, relationship.target_id)
            owns_pair = self.redis_client.get(pair_key) == toggle_id

            pipe = self.redis_client.pipeline(transaction=True)
            pipe.delete(row_key)
            pipe.srem(_target_key(kind, relationship.target_id), toggle_id)
            if owns_pair:
                pipe.delete(pair_key)
            results = pipe.execute()
        return bool(results[0])

    def count_toggles(self, kind: str, target_id: str) -> int:
        with _store_call("count_toggles"):
            return int(self.redis_client.scard(_target_key(kind, target_id)))

    def _release_pair(self, pair_key: str, toggle_id: str) -> None:
        try:
            if self.redis_client.get(pair_key) == toggle_id:
                self.redis_client.delete(pair_key)
        except redis.RedisError as e:
            logger.error(f"Could not release toggle claim {pair_key}: {e}", exc_info=True)
