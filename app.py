from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import RedisGateway, create_redis_client
from broadcaster import MessageBroadcaster
from constants import CORS_ORIGINS, LIKE_KIND, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.chat import chat_router
from routers.likes import likes_router
from routers.messages import messages_router
from toggles import ToggleCoordinator

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(gateway: Optional[RedisGateway] = None) -> FastAPI:
    """Build the application.

    Components are created per app on startup and dropped on shutdown; room
    membership starts empty every time. Pass ``gateway`` to use an existing
    store instead of connecting to the configured Redis.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis_client = None
        store = gateway
        if store is None:
            redis_client = create_redis_client()
            store = RedisGateway(redis_client)

        registry = RoomRegistry()
        app.state.gateway = store
        app.state.registry = registry
        app.state.broadcaster = MessageBroadcaster(registry)
        app.state.likes = ToggleCoordinator(store, kind=LIKE_KIND)
        logger.info("Chat core started")
        try:
            yield
        finally:
            if redis_client is not None:
                redis_client.close()
            logger.info("Chat core stopped")

    app = FastAPI(title="StarHub chat core", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(messages_router)
    app.include_router(likes_router)
    app.include_router(chat_router)
    return app


app = create_app()
