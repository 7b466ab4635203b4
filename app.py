from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

from broker import Broker
from constants import BROKER_MODE, CORS_ORIGINS, EVICT_EMPTY_ROOMS, LOG_FILE, LOG_LEVEL, WS_PATH
from lifecycle import ConnectionLifecycleManager
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.chat import chat_router
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(evict_empty_rooms: bool = EVICT_EMPTY_ROOMS) -> FastAPI:
    """Build an application with its own registry, broker and lifecycle manager."""
    app = FastAPI(title="Room broker")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    registry = RoomRegistry(evict_empty_rooms=evict_empty_rooms)
    broker = Broker(registry)
    app.state.registry = registry
    app.state.broker = broker
    app.state.lifecycle = ConnectionLifecycleManager(registry, broker)

    app.include_router(chat_router)
    app.include_router(rooms_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        state = request.app.state
        return HealthResponse(
            status="ok",
            mode=BROKER_MODE,
            connections=state.lifecycle.connection_count,
            rooms=state.registry.stats()["rooms"],
        )

    @app.websocket(WS_PATH)
    async def websocket_endpoint(websocket: WebSocket, user: Optional[str] = None):
        """Room broker socket.

        Query parameters:
        - user: optional identity; an anonymous id is generated when absent
        """
        logger.info(f"WebSocket connection attempt, user: {user}")
        await websocket.app.state.lifecycle.serve(websocket, user_id=user)

    logger.info(f"FastAPI application initialized (mode: {BROKER_MODE}, origins: {CORS_ORIGINS})")
    return app


app = create_app()
