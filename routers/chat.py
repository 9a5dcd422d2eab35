import uuid
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from broadcaster import Connection
from constants import OUTBOUND_QUEUE_SIZE
from logging_config import get_logger
from session import ChatSession

logger = get_logger(__name__)

chat_router = APIRouter(tags=["chat"])


@chat_router.websocket("/ws")
async def chat_socket(websocket: WebSocket, display_name: Optional[str] = None):
    """Chat socket. One connection may join any number of rooms.

    Query parameters:
    - display_name: Optional sender name used when a chat event carries none
    """
    state = websocket.app.state
    await websocket.accept()

    connection = Connection(uuid.uuid4().hex, websocket.send_text, max_pending=OUTBOUND_QUEUE_SIZE)
    session = ChatSession(
        connection,
        state.registry,
        state.broadcaster,
        state.gateway,
        display_name=display_name,
    )
    await session.open()
    logger.info(f"WebSocket connection {connection.connection_id} accepted, display_name: {display_name}")

    try:
        while True:
            data = await websocket.receive_text()
            await session.submit(data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
    except Exception as e:
        logger.error(f"Error receiving from connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        await session.close()
